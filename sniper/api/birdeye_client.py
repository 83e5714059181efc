"""Client for the Birdeye token metadata API (discovery enrichment)."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from sniper.config import BIRDEYE_API_URL, QUOTE_TIMEOUT
from sniper.discovery.models import Token, TokenMetadata

logger = logging.getLogger(__name__)


class BirdeyeClient:
    """Fetch price, liquidity and authority info for a mint."""

    def __init__(self, base_url: str = BIRDEYE_API_URL, api_key: str = "") -> None:
        self.base_url = base_url
        self.api_key = api_key
        self._client = self._new_client()

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=QUOTE_TIMEOUT,
            headers={"x-api-key": self.api_key, "x-chain": "solana"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_token(self, address: str) -> Optional[TokenMetadata]:
        """GET /defi/token_overview. Returns None on any failure.

        A client closed by an earlier ``close`` is replaced on first use.
        """
        if self._client.is_closed:
            self._client = self._new_client()
        try:
            resp = await self._client.get("/defi/token_overview", params={"address": address})
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.debug("token_info_failed", extra={"address": address}, exc_info=True)
            return None

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data:
            return None
        try:
            return parse_token_overview(address, data)
        except (TypeError, ValueError):
            logger.debug("token_info_unparseable", extra={"address": address}, exc_info=True)
            return None


def parse_token_overview(address: str, data: dict) -> TokenMetadata:
    mint_authority = data.get("mintAuthority") or data.get("mint_authority")
    freeze_authority = data.get("freezeAuthority") or data.get("freeze_authority")

    liquidity = data.get("liquidity") or 0
    if isinstance(liquidity, dict):
        liquidity = liquidity.get("usd") or 0

    return TokenMetadata(
        token=Token(
            address=address,
            symbol=data.get("symbol") or "UNKNOWN",
            name=data.get("name") or "Unknown Token",
            decimals=int(data.get("decimals") or 9),
            mint_authority=mint_authority,
            freeze_authority=freeze_authority,
            is_mutable=bool(data.get("isMutable", True)),
            supply=float(data.get("supply") or 0),
        ),
        price=float(data.get("price") or 0),
        liquidity=float(liquidity),
        market_cap=float(data.get("mc") or data.get("marketCap") or 0),
        volume_24h=float(data.get("v24hUSD") or data.get("v24h") or 0),
        holders=int(data.get("holder") or 0),
        top10_holder_percent=float(data.get("top10HolderPercent") or 0),
        is_mint_revoked=not mint_authority,
        is_freeze_revoked=not freeze_authority,
    )
