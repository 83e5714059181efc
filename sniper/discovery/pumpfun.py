"""WebSocket listener for new pump.fun token launches.

Subscribes to the PumpPortal new-token stream, enriches every announced
mint with Birdeye metadata and pushes a DiscoveryEvent into the channel.
Enrichment runs in its own task so a slow metadata call never stalls the
socket. At most ``max_pending`` lookups are in flight; mints announced
beyond that are skipped and counted.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

import websockets
import websockets.exceptions

from sniper.api import birdeye_client
from sniper.config import WS_RECONNECT_BASE_DELAY, WS_RECONNECT_MAX_DELAY, DiscoveryConfig
from sniper.discovery.channel import DiscoveryChannel
from sniper.discovery.models import DiscoveryEvent

logger = logging.getLogger(__name__)


class PumpFunFeed:
    """Discovery source backed by the PumpPortal websocket."""

    def __init__(self, cfg: DiscoveryConfig, metadata: Optional[birdeye_client.BirdeyeClient] = None) -> None:
        self.cfg = cfg
        self.metadata = metadata or birdeye_client.BirdeyeClient(cfg.metadata_url, api_key=cfg.api_key)
        self._channel: Optional[DiscoveryChannel] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()
        self.connected = False
        self.skipped = 0

    async def start(self, channel: DiscoveryChannel) -> None:
        if not self.cfg.enabled:
            logger.info("pumpfun_disabled")
            return
        self._channel = channel
        self._running = True
        self._task = asyncio.create_task(self._listen_forever(), name="pumpfun-ws")
        logger.info("pumpfun_started", extra={"url": self.cfg.ws_url})

    async def stop(self) -> None:
        self._running = False
        tasks = [t for t in (self._task, *self._pending) if t is not None]
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._pending.clear()
        self.connected = False
        await self.metadata.close()
        logger.info("pumpfun_stopped")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _listen_forever(self) -> None:
        delay = WS_RECONNECT_BASE_DELAY
        while self._running:
            try:
                async with websockets.connect(self.cfg.ws_url) as ws:
                    delay = WS_RECONNECT_BASE_DELAY
                    self.connected = True
                    await ws.send(json.dumps({"method": "subscribeNewToken"}))
                    logger.info("pumpfun_subscribed")

                    async for raw_msg in ws:
                        if not self._running:
                            break
                        try:
                            msg = json.loads(raw_msg)
                        except json.JSONDecodeError:
                            continue
                        self._dispatch(msg)

            except asyncio.CancelledError:
                return
            except (
                websockets.exceptions.ConnectionClosed,
                websockets.exceptions.WebSocketException,
                OSError,
            ):
                self.connected = False
                if not self._running:
                    return
                logger.warning("pumpfun_reconnecting", extra={"delay": delay})
                await asyncio.sleep(delay)
                delay = min(delay * 2, WS_RECONNECT_MAX_DELAY)

    def _dispatch(self, msg: dict[str, Any]) -> None:
        address = extract_new_mint(msg)
        if address is None:
            return
        if len(self._pending) >= self.cfg.max_pending:
            self.skipped += 1
            logger.debug(
                "pumpfun_mint_skipped",
                extra={"address": address, "pending": len(self._pending)},
            )
            return
        task = asyncio.create_task(self._enrich(address))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _enrich(self, address: str) -> None:
        try:
            info = await self.metadata.fetch_token(address)
        except Exception:
            logger.warning("pumpfun_enrich_error", extra={"address": address}, exc_info=True)
            return
        if info is None:
            logger.debug("pumpfun_metadata_missing", extra={"address": address})
            return
        if self._channel is not None:
            self._channel.put(DiscoveryEvent(token=info, source="pumpfun"))


def extract_new_mint(msg: Any) -> Optional[str]:
    """Mint address of a new-token announcement, or None for anything else.

    Accepts both the flat PumpPortal create message and the wrapped
    ``{"method": "newToken", "data": {...}}`` form.
    """
    if not isinstance(msg, dict):
        return None
    if msg.get("method") == "newToken":
        data = msg.get("data") or {}
        return data.get("tokenAddress") or data.get("mint")
    if msg.get("txType") == "create" and msg.get("mint"):
        return msg["mint"]
    return None
