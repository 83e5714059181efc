"""Client for the Jupiter swap-routing API (quotes, swap transactions, prices)."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from sniper.config import HTTP_TIMEOUT, JUPITER_API_URL, JUPITER_PRICE_URL, QUOTE_TIMEOUT
from sniper.scoring.base import PriceUnavailable

logger = logging.getLogger(__name__)


class JupiterClient:
    """Async client for quote, swap and price endpoints."""

    def __init__(
        self,
        base_url: str = JUPITER_API_URL,
        price_url: str = JUPITER_PRICE_URL,
        quote_timeout: float = QUOTE_TIMEOUT,
    ) -> None:
        self._quote_timeout = quote_timeout
        self._price_url = price_url
        self._client = httpx.AsyncClient(base_url=base_url, timeout=HTTP_TIMEOUT)

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage: float,
    ) -> Optional[dict[str, Any]]:
        """GET /quote for ``amount`` raw units of ``input_mint``.

        Returns the route dict, or None on timeout, non-2xx or a malformed
        body. Never raises.
        """
        try:
            resp = await self._client.get(
                "/quote",
                params={
                    "inputMint": input_mint,
                    "outputMint": output_mint,
                    "amount": amount,
                    "slippageBps": int(round(slippage * 10_000)),
                },
                timeout=self._quote_timeout,
            )
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.debug(
                "quote_failed",
                extra={"input_mint": input_mint, "output_mint": output_mint},
                exc_info=True,
            )
            return None

        # Older API versions wrapped routes in {"data": [...]}
        if isinstance(body, dict) and isinstance(body.get("data"), list):
            body = body["data"][0] if body["data"] else None

        if not isinstance(body, dict) or "outAmount" not in body:
            logger.debug("quote_malformed", extra={"input_mint": input_mint})
            return None
        return body

    # ------------------------------------------------------------------
    # Swaps
    # ------------------------------------------------------------------

    async def get_swap_transaction(self, quote: dict[str, Any], user_public_key: str) -> str:
        """POST /swap and return the base64 serialized transaction.

        Raises:
            httpx.HTTPError: transport failure or non-2xx.
            ValueError: response without a transaction payload.
        """
        resp = await self._client.post(
            "/swap",
            json={
                "quoteResponse": quote,
                "userPublicKey": user_public_key,
                "wrapAndUnwrapSol": True,
                "dynamicComputeUnitLimit": True,
            },
        )
        resp.raise_for_status()
        tx = resp.json().get("swapTransaction")
        if not tx:
            raise ValueError("swap response missing swapTransaction")
        return tx

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    async def get_prices(self, mints: list[str]) -> dict[str, float]:
        """USD prices for ``mints``. Unknown mints are omitted."""
        if not mints:
            return {}
        try:
            resp = await self._client.get(self._price_url, params={"ids": ",".join(mints)})
            resp.raise_for_status()
            data = resp.json().get("data") or {}
        except (httpx.HTTPError, ValueError):
            logger.debug("price_fetch_failed", extra={"mints": len(mints)}, exc_info=True)
            return {}

        prices: dict[str, float] = {}
        for mint, entry in data.items():
            if not entry or entry.get("price") is None:
                continue
            try:
                prices[mint] = float(entry["price"])
            except (TypeError, ValueError):
                continue
        return prices

    async def get_price(self, address: str) -> float:
        """Price feed contract: current USD price or PriceUnavailable."""
        prices = await self.get_prices([address])
        price = prices.get(address)
        if price is None or price <= 0:
            raise PriceUnavailable(address)
        return price
