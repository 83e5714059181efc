"""Collaborator contracts for scoring, prediction, sentiment and pricing.

The orchestrator only depends on the numeric contract of these objects, so
each one can be swapped independently (a fixed-value stub in tests, a real
model in production).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from sniper.discovery.models import TokenMetadata


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ScoreFactor(BaseModel):
    name: str
    value: float = Field(..., description="Factor score 0-100.")
    weight: float
    description: str = ""


class TokenScore(BaseModel):
    token_address: str
    total_score: float = Field(..., description="Weighted score 0-100.")
    ml_probability: float = 0.0
    sentiment_score: float = 0.0
    risk_score: float = 0.0
    factors: list[ScoreFactor] = Field(default_factory=list)

    def factor(self, name: str) -> ScoreFactor | None:
        return next((f for f in self.factors if f.name == name), None)


class MustHaveCheck(BaseModel):
    passes: bool
    reasons: list[str] = Field(default_factory=list)


class Prediction(BaseModel):
    probability: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    factors: list[tuple[str, float]] = Field(default_factory=list)


class SentimentResult(BaseModel):
    score: float = Field(default=0.0, ge=-1.0, le=1.0)
    mentions: int = 0
    keywords: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TradeSignal(BaseModel):
    """Immutable trade recommendation produced by the scorer."""

    model_config = ConfigDict(frozen=True)

    token: TokenMetadata
    score: float
    probability: float
    reasons: tuple[str, ...] = ()
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PriceUnavailable(Exception):
    """Raised by a price feed that cannot price an instrument right now."""


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@runtime_checkable
class Scorer(Protocol):
    def passes_must_have(self, token: TokenMetadata) -> MustHaveCheck: ...

    async def score(
        self, token: TokenMetadata, probability: float, sentiment: float
    ) -> TokenScore: ...

    def generate_signal(self, token: TokenMetadata, score: TokenScore) -> TradeSignal | None: ...


@runtime_checkable
class Predictor(Protocol):
    async def initialize(self) -> None: ...

    async def predict(self, token: TokenMetadata) -> Prediction: ...

    def meets_threshold(self, probability: float) -> bool: ...


@runtime_checkable
class SentimentSource(Protocol):
    async def sentiment(self, token: TokenMetadata) -> SentimentResult: ...


@runtime_checkable
class PriceFeed(Protocol):
    async def get_price(self, address: str) -> float:
        """Return the current USD price or raise PriceUnavailable."""
        ...
