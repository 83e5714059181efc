"""Shared fixtures and in-memory collaborators for the sniper tests."""

import asyncio

import pytest

from sniper.config import (
    NetworkConfig,
    RpcEndpoint,
    SOL_MINT,
    TradingConfig,
    parse_config,
)
from sniper.discovery.models import DiscoveryEvent, Token, TokenMetadata
from sniper.execution.position_manager import Position
from sniper.execution.risk_manager import RiskManager
from sniper.scoring.base import (
    MustHaveCheck,
    Prediction,
    PriceUnavailable,
    SentimentResult,
    TokenScore,
    TradeSignal,
)

RPC_URLS = ["https://rpc-a.test/rpc", "https://rpc-b.test/rpc", "https://rpc-c.test/rpc"]


def make_token(address: str = "MintAAA111", **overrides) -> TokenMetadata:
    fields = dict(
        token=Token(address=address, symbol="MEME", name="Meme Coin", decimals=6),
        price=0.002,
        liquidity=60_000.0,
        market_cap=250_000.0,
        volume_24h=40_000.0,
        holders=800,
        top10_holder_percent=25.0,
        is_mint_revoked=True,
        is_freeze_revoked=True,
        is_liquidity_burned=True,
    )
    fields.update(overrides)
    return TokenMetadata(**fields)


def make_event(address: str = "MintAAA111", **overrides) -> DiscoveryEvent:
    return DiscoveryEvent(token=make_token(address, **overrides))


def make_position(rm: RiskManager, address: str = "MintAAA111", entry: float = 100.0,
                  value: float = 1_000.0, **overrides) -> Position:
    fields = dict(
        address=address,
        symbol="MEME",
        entry_price=entry,
        quantity=value / 150.0,
        value_usd=value,
        take_profit_levels=rm.build_take_profit_levels(),
    )
    fields.update(overrides)
    return Position(**fields)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakePriceFeed:
    def __init__(self, prices=None):
        self.prices = dict(prices or {})
        self.calls = []

    async def get_price(self, address):
        self.calls.append(address)
        price = self.prices.get(address)
        if isinstance(price, Exception):
            raise price
        if price is None:
            raise PriceUnavailable(address)
        return price


class FakePredictor:
    def __init__(self, probability=0.7, delay=0.0, threshold=0.5):
        self.probability = probability
        self.delay = delay
        self.threshold = threshold
        self.initialized = False

    async def initialize(self):
        self.initialized = True

    async def predict(self, token):
        if self.delay:
            await asyncio.sleep(self.delay)
        return Prediction(probability=self.probability, confidence=0.8)

    def meets_threshold(self, probability):
        return probability >= self.threshold


class FakeSentiment:
    def __init__(self, score=0.2):
        self.score = score

    async def sentiment(self, token):
        return SentimentResult(score=self.score, mentions=10)


class FakeScorer:
    def __init__(self, total=80.0, passes=True):
        self.total = total
        self.passes = passes

    def passes_must_have(self, token):
        return MustHaveCheck(passes=self.passes, reasons=[] if self.passes else ["too thin"])

    async def score(self, token, probability, sentiment):
        return TokenScore(
            token_address=token.address,
            total_score=self.total,
            ml_probability=probability,
            sentiment_score=sentiment,
        )

    def generate_signal(self, token, score):
        if score.total_score < 50:
            return None
        return TradeSignal(token=token, score=score.total_score, probability=score.ml_probability)


class FakeJupiter:
    """Swap router double: every quote fills at a fixed rate."""

    def __init__(self, rate=500.0, fail_quotes=False, delay=0.0):
        self.rate = rate
        self.fail_quotes = fail_quotes
        self.delay = delay
        self.quote_calls = []

    async def get_quote(self, input_mint, output_mint, amount, slippage):
        self.quote_calls.append((input_mint, output_mint, amount))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_quotes:
            return None
        rate = self.rate if input_mint == SOL_MINT else 1.0 / self.rate
        return {"inAmount": str(amount), "outAmount": str(int(amount * rate))}

    async def get_swap_transaction(self, quote, user_public_key):
        return "dW5zaWduZWQ="

    async def close(self):
        pass


class FakeDiscovery:
    def __init__(self):
        self.channel = None
        self.started = False
        self.stopped = False

    async def start(self, channel):
        self.channel = channel
        self.started = True

    async def stop(self):
        self.stopped = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def trading():
    return TradingConfig(max_position_size=0.1, max_positions=5, stop_loss=0.10, soft_stop_loss=0.05)


@pytest.fixture
def risk_manager(trading):
    return RiskManager(trading, initial_capital=10_000.0)


@pytest.fixture
def network():
    return NetworkConfig(rpc=[RpcEndpoint(url=u) for u in RPC_URLS])


@pytest.fixture
def raw_config():
    return {
        "system": {"health_port": 0, "collaborator_timeout": 0.2},
        "network": {"rpc": [{"url": u} for u in RPC_URLS]},
        "trading": {"max_position_size": 0.1, "max_positions": 5},
        "execution": {"dry_run": True},
        "initial_capital": 10_000,
    }


@pytest.fixture
def sniper_config(raw_config):
    return parse_config(raw_config)
