"""JSON-RPC client for a single Solana RPC endpoint."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Optional

import httpx

from sniper.config import HTTP_TIMEOUT

logger = logging.getLogger(__name__)


class RpcError(Exception):
    """The endpoint answered with a JSON-RPC error or an unreadable reply."""

    def __init__(self, method: str, error: Any) -> None:
        super().__init__(f"{method}: {error}")
        self.method = method
        self.error = error


class RpcClient:
    """Balance, submission and status calls against one endpoint."""

    def __init__(self, url: str, commitment: str = "confirmed") -> None:
        self.url = url
        self.commitment = commitment
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, params: list[Any]) -> Any:
        resp = await self._client.post(
            self.url,
            json={"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params},
        )
        resp.raise_for_status()
        try:
            body = resp.json()
        except ValueError as e:
            raise RpcError(method, f"malformed response: {e}") from e
        if not isinstance(body, dict):
            raise RpcError(method, "malformed response: not a JSON object")
        if body.get("error"):
            raise RpcError(method, body["error"])
        return body.get("result")

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    async def get_balance(self, owner: str) -> int:
        """Native balance in lamports."""
        result = await self._call("getBalance", [owner, {"commitment": self.commitment}])
        if not isinstance(result, dict):
            raise RpcError("getBalance", "missing result")
        return int(result["value"])

    async def get_token_balance(self, owner: str, mint: str) -> int:
        """Raw token balance (smallest units) summed across the owner's accounts."""
        result = await self._call(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed", "commitment": self.commitment}],
        )
        total = 0
        for account in (result or {}).get("value") or []:
            info = account["account"]["data"]["parsed"]["info"]
            total += int(info["tokenAmount"]["amount"])
        return total

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def send_transaction(self, tx_base64: str) -> str:
        """Submit a signed transaction; returns its signature."""
        signature = await self._call(
            "sendTransaction",
            [tx_base64, {"encoding": "base64", "skipPreflight": True, "maxRetries": 0}],
        )
        if not isinstance(signature, str) or not signature:
            raise RpcError("sendTransaction", "missing signature")
        return signature

    async def get_signature_status(self, signature: str) -> Optional[dict[str, Any]]:
        """Status dict (``confirmationStatus``, ``err``) or None if unseen."""
        result = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        if not isinstance(result, dict):
            return None
        statuses = result.get("value") or [None]
        status = statuses[0]
        return status if isinstance(status, dict) else None
