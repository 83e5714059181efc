"""Client for a Jito-style block-engine relay (bundle submission)."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from sniper.config import HTTP_TIMEOUT, JITO_BLOCK_ENGINE_URL

logger = logging.getLogger(__name__)


class RelayUnavailable(Exception):
    """The relay could not be reached or rejected the bundle."""


class JitoClient:
    """Submit tipped bundles and poll their landing status."""

    def __init__(self, url: str = JITO_BLOCK_ENGINE_URL) -> None:
        self.url = url
        self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, params: list[Any]) -> Any:
        try:
            resp = await self._client.post(
                self.url,
                json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
            )
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RelayUnavailable(f"{method}: {e}") from e

        if not isinstance(body, dict):
            raise RelayUnavailable(f"{method}: malformed response")
        if body.get("error"):
            raise RelayUnavailable(f"{method}: {body['error']}")
        return body.get("result")

    async def send_bundle(self, tx_base64: str, tip_lamports: int) -> str:
        """Submit one signed transaction with a tip; returns the bundle id."""
        bundle_id = await self._call(
            "sendBundle",
            [[tx_base64], {"encoding": "base64", "tipLamports": tip_lamports}],
        )
        if not isinstance(bundle_id, str) or not bundle_id:
            raise RelayUnavailable("sendBundle: missing bundle id")
        return bundle_id

    async def get_bundle_status(self, bundle_id: str) -> Optional[dict[str, Any]]:
        """Bundle status dict (``confirmation_status``, ``err``) or None."""
        result = await self._call("getBundleStatuses", [[bundle_id]])
        if not isinstance(result, dict):
            return None
        statuses = result.get("value") or [None]
        status = statuses[0]
        return status if isinstance(status, dict) else None
