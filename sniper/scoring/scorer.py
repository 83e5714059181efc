"""Rule-based token scorer: must-have filter, weighted score, trade signal.

Six factors, each scored 0-100, combine into a weighted total:

    liquidity            0.25
    holder_distribution  0.20
    security             0.20
    social               0.15
    ml_prediction        0.10
    sentiment            0.10

A trade signal is only produced when the total reaches
SIGNAL_SCORE_THRESHOLD.
"""

from __future__ import annotations

from sniper.config import SIGNAL_SCORE_THRESHOLD, TradingConfig
from sniper.discovery.models import TokenMetadata
from sniper.scoring.base import MustHaveCheck, ScoreFactor, TokenScore, TradeSignal

# Liquidity at this multiple of the floor scores a full 100
_GOOD_LIQUIDITY_MULTIPLE = 10


class TokenScorer:
    """Score newly discovered tokens against the trading floors."""

    def __init__(self, trading: TradingConfig, threshold: float = SIGNAL_SCORE_THRESHOLD) -> None:
        self.trading = trading
        self.threshold = threshold

    def passes_must_have(self, token: TokenMetadata) -> MustHaveCheck:
        reasons: list[str] = []
        if token.liquidity < self.trading.min_liquidity:
            reasons.append(
                f"Insufficient liquidity: ${token.liquidity:,.0f} < ${self.trading.min_liquidity:,.0f}"
            )
        if token.market_cap < self.trading.min_market_cap:
            reasons.append(
                f"Insufficient market cap: ${token.market_cap:,.0f} < ${self.trading.min_market_cap:,.0f}"
            )
        return MustHaveCheck(passes=not reasons, reasons=reasons)

    async def score(
        self,
        token: TokenMetadata,
        probability: float = 0.5,
        sentiment: float = 0.0,
    ) -> TokenScore:
        factors = [
            ScoreFactor(
                name="liquidity",
                value=self._liquidity_score(token),
                weight=0.25,
                description="Liquidity score based on USD value",
            ),
            ScoreFactor(
                name="holder_distribution",
                value=self._holder_score(token),
                weight=0.20,
                description="Score based on holder concentration",
            ),
            ScoreFactor(
                name="security",
                value=self._security_score(token),
                weight=0.20,
                description="Mint/freeze authority revoked, liquidity burned",
            ),
            ScoreFactor(
                name="social",
                value=self._social_score(token),
                weight=0.15,
                description="Social media presence and engagement",
            ),
            ScoreFactor(
                name="ml_prediction",
                value=probability * 100,
                weight=0.10,
                description="Predicted success probability",
            ),
            ScoreFactor(
                name="sentiment",
                value=(sentiment + 1) * 50,
                weight=0.10,
                description="Social sentiment, -1..1 mapped to 0..100",
            ),
        ]

        total = sum(f.value * f.weight for f in factors)

        return TokenScore(
            token_address=token.address,
            total_score=total,
            ml_probability=probability,
            sentiment_score=sentiment,
            risk_score=self._risk_score(token, factors),
            factors=factors,
        )

    def generate_signal(self, token: TokenMetadata, score: TokenScore) -> TradeSignal | None:
        if score.total_score < self.threshold:
            return None

        reasons: list[str] = []
        for f in score.factors:
            if f.name == "liquidity" and f.value >= 70:
                reasons.append(f"High liquidity: ${token.liquidity:,.0f}")
            elif f.name == "holder_distribution" and f.value >= 70:
                reasons.append("Well distributed holders")
            elif f.name == "security" and f.value >= 70:
                reasons.append("Strong security (mint revoked, etc.)")
            elif f.name == "social" and f.value >= 50:
                reasons.append("Strong social presence")

        return TradeSignal(
            token=token,
            score=score.total_score,
            probability=score.ml_probability,
            reasons=tuple(reasons),
        )

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def _liquidity_score(self, token: TokenMetadata) -> float:
        floor = self.trading.min_liquidity
        good = floor * _GOOD_LIQUIDITY_MULTIPLE
        if token.liquidity >= good:
            return 100.0
        if token.liquidity >= floor and good > floor:
            return (token.liquidity - floor) / (good - floor) * 100
        return 0.0

    @staticmethod
    def _holder_score(token: TokenMetadata) -> float:
        top10 = token.top10_holder_percent
        if top10 <= 30:
            return 100.0
        if top10 <= 50:
            return 80.0
        if top10 <= 70:
            return 50.0
        if top10 <= 90:
            return 20.0
        return 0.0

    @staticmethod
    def _security_score(token: TokenMetadata) -> float:
        score = 50.0
        if token.is_mint_revoked:
            score += 25
        if token.is_freeze_revoked:
            score += 15
        if token.is_liquidity_burned:
            score += 10
        return min(score, 100.0)

    @staticmethod
    def _social_score(token: TokenMetadata) -> float:
        score = 50.0
        social = token.social
        if social is not None:
            if social.twitter_followers > 1000:
                score += 25
            if social.tweet_velocity > 5:
                score += 15
            if social.telegram_members > 500:
                score += 10
        return min(score, 100.0)

    @staticmethod
    def _risk_score(token: TokenMetadata, factors: list[ScoreFactor]) -> float:
        risk = 50.0
        if token.top10_holder_percent > 80:
            risk += 30
        if not token.is_mint_revoked:
            risk += 20
        by_name = {f.name: f.value for f in factors}
        if by_name.get("liquidity", 100.0) < 30:
            risk += 15
        if by_name.get("social", 100.0) < 30:
            risk += 10
        return min(risk, 100.0)
