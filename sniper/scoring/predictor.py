"""Heuristic success predictor.

A fixed weighted sum over normalised token features stands in for a trained
model. When ``ml.enabled`` is off the predictor returns a neutral 0.5
probability with low confidence.
"""

from __future__ import annotations

import logging
from typing import Optional

from sniper.config import MLConfig
from sniper.discovery.models import TokenMetadata
from sniper.scoring.base import Prediction

logger = logging.getLogger(__name__)

FEATURE_WEIGHTS: dict[str, float] = {
    "liquidity_ratio": 0.20,
    "holder_concentration": 0.15,
    "buy_sell_ratio_1min": 0.15,
    "volume_acceleration": 0.15,
    "tweet_velocity": 0.10,
    "sentiment_score": 0.10,
    "influencer_mentions": 0.05,
    "community_growth": 0.05,
    "mint_revoked": 0.03,
    "liquidity_burned": 0.02,
}


class HeuristicPredictor:
    """Weighted-feature probability estimate for a freshly listed token."""

    def __init__(self, ml: MLConfig) -> None:
        self.ml = ml
        self._model_loaded = False

    async def initialize(self) -> None:
        if not self.ml.enabled:
            logger.info("predictor_disabled")
            return
        self._model_loaded = True
        logger.info("predictor_initialized", extra={"model_path": self.ml.model_path})

    async def predict(
        self,
        token: TokenMetadata,
        live_features: Optional[dict[str, float]] = None,
    ) -> Prediction:
        if not self._model_loaded:
            return Prediction(probability=0.5, confidence=0.3, factors=[("default", 50.0)])

        features = extract_features(token, live_features or {})

        probability = 0.0
        factors: list[tuple[str, float]] = []
        for name, weight in FEATURE_WEIGHTS.items():
            impact = features.get(name, 0.0) * weight
            probability += impact
            factors.append((name, impact * 100))

        factors.sort(key=lambda f: f[1], reverse=True)

        return Prediction(
            probability=max(0.0, min(1.0, probability)),
            confidence=_confidence(features),
            factors=factors,
        )

    def meets_threshold(self, probability: float) -> bool:
        return probability >= self.ml.probability_threshold


def extract_features(token: TokenMetadata, live: dict[str, float]) -> dict[str, float]:
    """Normalise token metadata (and optional live stream stats) into [0, 1]."""
    liquidity_ratio = token.liquidity / token.market_cap if token.market_cap > 0 else 0.0
    concentration = min(100.0, token.top10_holder_percent)

    return {
        "liquidity_ratio": min(1.0, liquidity_ratio * 10),
        # fraction of supply outside the top 10 holders
        "holder_concentration": (100.0 - concentration) / 100.0,
        "buy_sell_ratio_1min": min(2.0, live.get("buy_sell_ratio_1min", 1.0)) / 2.0,
        "volume_acceleration": min(1.0, live.get("volume_acceleration", 0.0) / 10),
        "tweet_velocity": min(1.0, live.get("tweet_velocity", 0.0) / 20),
        "sentiment_score": (live.get("sentiment_score", 0.0) + 1) / 2,
        "influencer_mentions": min(1.0, live.get("influencer_mentions", 0.0) / 10),
        "community_growth": min(1.0, live.get("community_growth", 0.0) / 100),
        "mint_revoked": 1.0 if token.is_mint_revoked else 0.0,
        "liquidity_burned": 1.0 if token.is_liquidity_burned else 0.0,
    }


def _confidence(features: dict[str, float]) -> float:
    """Share of features carrying information beyond their neutral default."""
    neutral = {"buy_sell_ratio_1min": 0.5, "sentiment_score": 0.5}
    informative = sum(
        1 for name, value in features.items() if value != neutral.get(name, 0.0)
    )
    return informative / len(features)
