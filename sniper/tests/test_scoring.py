"""Tests for the scorer, heuristic predictor and sentiment cache."""

import pydantic
import pytest

from sniper.config import MLConfig, SentimentConfig, TradingConfig
from sniper.scoring.predictor import HeuristicPredictor
from sniper.scoring.scorer import TokenScorer
from sniper.scoring.sentiment import CachedSentiment

from conftest import make_token


class TestTokenScorer:

    def setup_method(self):
        self.scorer = TokenScorer(TradingConfig())

    def test_must_have_passes(self):
        assert self.scorer.passes_must_have(make_token()).passes

    def test_must_have_reports_every_floor(self):
        check = self.scorer.passes_must_have(make_token(liquidity=1_000.0, market_cap=2_000.0))
        assert not check.passes
        assert len(check.reasons) == 2
        assert check.reasons[0].startswith("Insufficient liquidity")

    @pytest.mark.asyncio
    async def test_strong_token_scores_and_signals(self):
        token = make_token()
        score = await self.scorer.score(token, probability=0.7, sentiment=0.2)

        # 100*.25 + 100*.20 + 100*.20 + 50*.15 + 70*.10 + 60*.10
        assert score.total_score == pytest.approx(85.5)
        assert score.factor("social").value == 50.0
        assert score.factor("sentiment").value == pytest.approx(60.0)

        signal = self.scorer.generate_signal(token, score)
        assert signal is not None
        assert signal.probability == 0.7
        assert "High liquidity: $60,000" in signal.reasons
        assert "Well distributed holders" in signal.reasons

    @pytest.mark.asyncio
    async def test_weak_token_has_no_signal(self):
        token = make_token(
            liquidity=5_000.0,
            top10_holder_percent=95.0,
            is_mint_revoked=False,
            is_freeze_revoked=False,
            is_liquidity_burned=False,
        )
        score = await self.scorer.score(token, probability=0.0, sentiment=-1.0)

        assert score.total_score == pytest.approx(17.5)
        assert score.risk_score == 100.0
        assert self.scorer.generate_signal(token, score) is None

    @pytest.mark.asyncio
    async def test_signal_is_immutable(self):
        token = make_token()
        signal = self.scorer.generate_signal(token, await self.scorer.score(token, 0.9, 0.5))
        with pytest.raises(pydantic.ValidationError):
            signal.score = 1.0


class TestHeuristicPredictor:

    @pytest.mark.asyncio
    async def test_disabled_is_neutral(self):
        predictor = HeuristicPredictor(MLConfig(enabled=False))
        await predictor.initialize()
        prediction = await predictor.predict(make_token())
        assert prediction.probability == 0.5
        assert prediction.confidence == 0.3
        assert prediction.factors == [("default", 50.0)]

    @pytest.mark.asyncio
    async def test_weighted_features(self):
        predictor = HeuristicPredictor(MLConfig(enabled=True, model_path="heuristic"))
        await predictor.initialize()
        prediction = await predictor.predict(make_token())

        # liquidity .20 + holders .75*.15 + neutral buy/sell .075
        # + neutral sentiment .05 + mint .03 + burn .02
        assert prediction.probability == pytest.approx(0.4875)
        assert prediction.factors[0][0] == "liquidity_ratio"

    def test_threshold(self):
        predictor = HeuristicPredictor(MLConfig(probability_threshold=0.5))
        assert predictor.meets_threshold(0.5)
        assert not predictor.meets_threshold(0.49)


class TestCachedSentiment:

    @pytest.mark.asyncio
    async def test_neutral_and_cached(self):
        source = CachedSentiment(SentimentConfig(cache_ttl=60))
        first = await source.sentiment(make_token())
        second = await source.sentiment(make_token())

        assert first.score == 0.0
        assert first.keywords == ["meme", "meme", "$meme"]
        assert second is first

    @pytest.mark.asyncio
    async def test_disabled(self):
        source = CachedSentiment(SentimentConfig(enabled=False))
        result = await source.sentiment(make_token())
        assert result.score == 0.0
        assert result.mentions == 0
