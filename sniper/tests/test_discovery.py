"""Tests for the discovery channel and the pump.fun feed plumbing."""

import asyncio

import pytest

from sniper.config import DiscoveryConfig
from sniper.discovery.channel import DiscoveryChannel
from sniper.discovery.pumpfun import PumpFunFeed, extract_new_mint

from conftest import make_event, make_token


class TestDiscoveryChannel:

    def test_requires_capacity(self):
        with pytest.raises(ValueError):
            DiscoveryChannel(0)

    @pytest.mark.asyncio
    async def test_drops_oldest_when_full(self):
        channel = DiscoveryChannel(maxsize=2)

        assert channel.put(make_event("Mint1"))
        assert channel.put(make_event("Mint2"))
        assert not channel.put(make_event("Mint3"))

        assert channel.dropped == 1
        assert channel.qsize() == 2
        assert (await channel.get()).token.address == "Mint2"
        assert (await channel.get()).token.address == "Mint3"

    @pytest.mark.asyncio
    async def test_fifo_below_capacity(self):
        channel = DiscoveryChannel(maxsize=8)
        for i in range(3):
            channel.put(make_event(f"Mint{i}"))
        got = [(await channel.get()).token.address for _ in range(3)]
        assert got == ["Mint0", "Mint1", "Mint2"]
        assert channel.dropped == 0


class TestExtractNewMint:

    def test_pumpportal_create(self):
        msg = {"txType": "create", "mint": "MintNew", "symbol": "NEW", "marketCapSol": 30.1}
        assert extract_new_mint(msg) == "MintNew"

    def test_wrapped_new_token(self):
        msg = {"method": "newToken", "data": {"tokenAddress": "MintWrapped"}}
        assert extract_new_mint(msg) == "MintWrapped"

    @pytest.mark.parametrize(
        "msg",
        [
            {"message": "Successfully subscribed to token creation events."},
            {"txType": "buy", "mint": "MintOld"},
            {"method": "newToken", "data": {}},
            ["not", "a", "dict"],
        ],
    )
    def test_ignores_everything_else(self, msg):
        assert extract_new_mint(msg) is None


class FakeMetadata:
    def __init__(self, known, gate=None, error=None):
        self.known = known
        self.gate = gate
        self.error = error
        self.closed = False

    async def fetch_token(self, address):
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.known.get(address)

    async def close(self):
        self.closed = True


class TestPumpFunFeed:

    @pytest.mark.asyncio
    async def test_enrich_pushes_event(self):
        channel = DiscoveryChannel(maxsize=4)
        feed = PumpFunFeed(DiscoveryConfig(), metadata=FakeMetadata({"MintA": make_token("MintA")}))
        feed._channel = channel

        await feed._enrich("MintA")
        await feed._enrich("MintUnknown")

        assert channel.qsize() == 1
        event = await channel.get()
        assert event.token.address == "MintA"
        assert event.source == "pumpfun"

    @pytest.mark.asyncio
    async def test_disabled_feed_never_connects(self):
        metadata = FakeMetadata({})
        feed = PumpFunFeed(DiscoveryConfig(enabled=False), metadata=metadata)

        await feed.start(DiscoveryChannel())
        assert feed._task is None

        await feed.stop()
        assert metadata.closed

    @pytest.mark.asyncio
    async def test_lookups_in_flight_are_capped(self):
        gate = asyncio.Event()
        known = {f"Mint{i}": make_token(f"Mint{i}") for i in range(5)}
        channel = DiscoveryChannel(maxsize=8)
        feed = PumpFunFeed(DiscoveryConfig(max_pending=2), metadata=FakeMetadata(known, gate=gate))
        feed._channel = channel

        for i in range(5):
            feed._dispatch({"txType": "create", "mint": f"Mint{i}"})

        assert len(feed._pending) == 2
        assert feed.skipped == 3

        gate.set()
        await asyncio.gather(*list(feed._pending))
        assert [(await channel.get()).token.address for _ in range(2)] == ["Mint0", "Mint1"]

        feed._dispatch({"txType": "create", "mint": "Mint4"})
        assert len(feed._pending) == 1
        await feed.stop()

    @pytest.mark.asyncio
    async def test_lookup_error_is_contained(self, caplog):
        channel = DiscoveryChannel(maxsize=4)
        feed = PumpFunFeed(DiscoveryConfig(), metadata=FakeMetadata({}, error=RuntimeError("client closed")))
        feed._channel = channel

        await feed._enrich("MintA")

        assert channel.qsize() == 0
        assert "pumpfun_enrich_error" in caplog.text
