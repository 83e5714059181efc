"""Ranked RPC endpoint set with a lock-guarded rotation cursor."""

from __future__ import annotations

import asyncio
import logging

from sniper.api.rpc_client import RpcClient

logger = logging.getLogger(__name__)


class EndpointSet:
    """Fixed, ordered list of interchangeable RPC endpoints.

    The cursor always satisfies ``0 <= cursor < len(urls)``. ``rotate`` is
    the only writer and runs under a lock. A failure reported against an
    endpoint that is no longer current leaves the cursor alone, so several
    in-flight submissions failing on the same endpoint advance it once.
    """

    def __init__(self, urls: list[str], commitment: str = "confirmed") -> None:
        if not urls:
            raise ValueError("EndpointSet needs at least one endpoint")
        self._urls = list(urls)
        self._commitment = commitment
        self._cursor = 0
        self._lock = asyncio.Lock()
        self._clients: dict[str, RpcClient] = {}

    def __len__(self) -> int:
        return len(self._urls)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current_url(self) -> str:
        return self._urls[self._cursor]

    def current(self) -> RpcClient:
        """Client for the currently selected endpoint (created lazily)."""
        url = self.current_url
        client = self._clients.get(url)
        if client is None:
            client = RpcClient(url, commitment=self._commitment)
            self._clients[url] = client
        return client

    async def rotate(self, failed_url: str | None = None) -> int:
        """Advance to the next endpoint round-robin and return the cursor.

        With ``failed_url`` set, only advances if that endpoint is still the
        current one.
        """
        async with self._lock:
            previous = self._urls[self._cursor]
            if failed_url is not None and failed_url != previous:
                logger.debug(
                    "rpc_rotation_skipped",
                    extra={"failed": failed_url, "current": previous},
                )
                return self._cursor
            self._cursor = (self._cursor + 1) % len(self._urls)
            logger.debug(
                "rpc_rotated",
                extra={
                    "failed": previous,
                    "next": self._urls[self._cursor],
                    "cursor": self._cursor,
                },
            )
            return self._cursor

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
