"""Candidate evaluation: rule-based scoring, heuristic prediction, sentiment."""
from .base import (
    Prediction,
    PriceFeed,
    PriceUnavailable,
    Predictor,
    Scorer,
    SentimentResult,
    SentimentSource,
    TokenScore,
    TradeSignal,
)
from .predictor import HeuristicPredictor
from .scorer import TokenScorer
from .sentiment import CachedSentiment

__all__ = [
    "Prediction",
    "PriceFeed",
    "PriceUnavailable",
    "Predictor",
    "Scorer",
    "SentimentResult",
    "SentimentSource",
    "TokenScore",
    "TradeSignal",
    "HeuristicPredictor",
    "TokenScorer",
    "CachedSentiment",
]
