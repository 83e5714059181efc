"""Order execution engine: quotes, swap submission, endpoint failover.

Every buy and sell goes through this single interface. A trade is:

1. A quote from the swap router (one bounded call; failure means no quote)
2. A swap transaction built by the router for that quote
3. Submission, either
   - plain: straight to the current RPC endpoint, then confirmation
     polling; a network-level failure rotates to the next endpoint, or
   - bundle: through a block-engine relay with a random tip to keep the
     swap out of reach of front-runners
4. A typed OrderResult. Nothing raised by an external service escapes.

The engine never re-submits on its own. Rotation only changes which
endpoint the *next* attempt uses; retrying is the caller's decision.

The engine operates in two modes:
- DRY_RUN: quotes are real, nothing is built or submitted, and a paper
  ledger of token balances lets dry-run sells mirror dry-run buys
- LIVE: signed transactions go on chain
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from sniper.api.jito_client import JitoClient, RelayUnavailable
from sniper.api.jupiter_client import JupiterClient
from sniper.api.rpc_client import RpcClient, RpcError
from sniper.config import (
    CONFIRMATION_POLL_INTERVAL,
    CONFIRMATION_TIMEOUT_MS,
    LAMPORTS_PER_SOL,
    SOL_MINT,
    ConfigInvalid,
    ExecutionConfig,
    NetworkConfig,
)
from sniper.execution.endpoints import EndpointSet

logger = logging.getLogger(__name__)

# Turns the router's unsigned transaction into a signed one (base64 in/out)
Signer = Callable[[str], str]

_LANDED = ("confirmed", "finalized")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class ExecutionError(str, Enum):
    """Why an order did not fill."""

    QUOTE_UNAVAILABLE = "quote_unavailable"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    SWAP_BUILD_FAILED = "swap_build_failed"
    SUBMISSION_FAILED = "submission_failed"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    RELAY_UNAVAILABLE = "relay_unavailable"
    INTERNAL = "internal"


class OrderResult(BaseModel):
    """Outcome of one buy or sell attempt."""

    side: OrderSide
    token_address: str
    success: bool = False
    tx_handle: Optional[str] = None
    filled_price: Optional[float] = Field(
        default=None, description="Route rate: output units per input unit."
    )
    in_amount: int = 0
    out_amount: int = 0
    error: Optional[str] = None
    error_code: Optional[ExecutionError] = None
    endpoint: str = ""
    simulated: bool = Field(default=False, description="No on-chain effect (dry run or relay fallback).")
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    latency_ms: float = 0.0

    def fail(self, code: ExecutionError, error: str) -> OrderResult:
        self.success = False
        self.error_code = code
        self.error = error
        return self


# ---------------------------------------------------------------------------
# Execution Engine
# ---------------------------------------------------------------------------


class ExecutionEngine:
    """Centralized swap execution with RPC failover.

    Attributes:
        dry_run: If True, orders are quoted and logged but not submitted.
        endpoints: Ranked RPC endpoints with the shared rotation cursor.
        _order_log: In-memory log of all order results.
    """

    def __init__(
        self,
        execution: ExecutionConfig,
        network: NetworkConfig,
        signer: Optional[Signer] = None,
        jupiter: Optional[JupiterClient] = None,
        jito: Optional[JitoClient] = None,
        endpoints: Optional[EndpointSet] = None,
        poll_interval: float = CONFIRMATION_POLL_INTERVAL,
    ) -> None:
        self.cfg = execution
        self.network = network
        self.dry_run = execution.dry_run
        self.wallet_address = execution.wallet_address
        self._signer = signer
        self.jupiter = jupiter or JupiterClient(
            base_url=execution.quote_url, price_url=execution.price_url
        )
        self.jito = jito or JitoClient(network.jito.url)
        self.endpoints = endpoints or EndpointSet(
            network.ranked_urls(), commitment=network.commitment
        )
        self.poll_interval = poll_interval
        self._order_log: list[OrderResult] = []
        self._paper_balances: dict[str, int] = defaultdict(int)
        self._initialized = False

    async def initialize(self) -> None:
        """Check that live mode has what it needs to sign and submit.

        Raises:
            ConfigInvalid: live mode without a wallet address or signer.
        """
        if self._initialized:
            return

        if not self.dry_run:
            if not self.wallet_address:
                raise ConfigInvalid("live execution requires execution.wallet_address")
            if self._signer is None:
                raise ConfigInvalid("live execution requires a transaction signer")

        self._initialized = True
        logger.info(
            "execution_engine_init",
            extra={
                "mode": "DRY_RUN" if self.dry_run else "LIVE",
                "path": "bundle" if self.cfg.use_bundle else "plain",
                "endpoints": len(self.endpoints),
            },
        )

    # ------------------------------------------------------------------
    # Order operations
    # ------------------------------------------------------------------

    async def buy(
        self,
        token_address: str,
        amount_sol: float,
        slippage: Optional[float] = None,
    ) -> OrderResult:
        """Swap ``amount_sol`` of the base asset into ``token_address``."""
        if slippage is None:
            slippage = self.cfg.max_slippage
        result = OrderResult(side=OrderSide.BUY, token_address=token_address)
        amount = int(math.floor(amount_sol * LAMPORTS_PER_SOL))

        try:
            quote = await self.jupiter.get_quote(SOL_MINT, token_address, amount, slippage)
            if quote is None:
                return self._record(result.fail(ExecutionError.QUOTE_UNAVAILABLE, "Failed to get quote"))
            if _int(quote.get("outAmount")) <= 0:
                return self._record(result.fail(ExecutionError.QUOTE_UNAVAILABLE, "Invalid quote amount"))

            await self._execute(result, quote)
        except Exception as e:
            logger.debug("buy_failed", extra={"token": token_address}, exc_info=True)
            result.fail(ExecutionError.INTERNAL, str(e))

        if result.success and result.simulated and self.dry_run:
            self._paper_balances[token_address] += result.out_amount
        return self._record(result)

    async def sell(
        self,
        token_address: str,
        percentage: float,
        slippage: Optional[float] = None,
    ) -> OrderResult:
        """Swap ``percentage`` of the held token balance back to the base asset."""
        if slippage is None:
            slippage = self.cfg.max_slippage
        result = OrderResult(side=OrderSide.SELL, token_address=token_address)

        try:
            balance = await self.get_balance(token_address)
            if balance <= 0:
                return self._record(
                    result.fail(ExecutionError.INSUFFICIENT_BALANCE, "No token balance found")
                )

            amount = int(math.floor(balance * percentage))
            if amount <= 0:
                return self._record(
                    result.fail(ExecutionError.INSUFFICIENT_BALANCE, "Sell amount rounds to zero")
                )

            quote = await self.jupiter.get_quote(token_address, SOL_MINT, amount, slippage)
            if quote is None:
                return self._record(result.fail(ExecutionError.QUOTE_UNAVAILABLE, "Failed to get quote"))

            await self._execute(result, quote)
        except Exception as e:
            logger.debug("sell_failed", extra={"token": token_address}, exc_info=True)
            result.fail(ExecutionError.INTERNAL, str(e))

        if result.success and result.simulated and self.dry_run:
            held = self._paper_balances[token_address]
            self._paper_balances[token_address] = max(0, held - result.in_amount)
        return self._record(result)

    async def _execute(self, result: OrderResult, quote: dict[str, Any]) -> None:
        result.in_amount = _int(quote.get("inAmount"))
        result.out_amount = _int(quote.get("outAmount"))
        if result.in_amount > 0:
            result.filled_price = result.out_amount / result.in_amount

        start = time.monotonic()
        if self.dry_run:
            result.success = True
            result.simulated = True
            result.tx_handle = f"dry_{int(time.time() * 1000)}"
        elif self.cfg.use_bundle:
            await self._execute_bundle(result, quote)
        else:
            await self._execute_plain(result, quote)
        result.latency_ms = (time.monotonic() - start) * 1000

    async def _build_signed(self, result: OrderResult, quote: dict[str, Any]) -> Optional[str]:
        try:
            tx = await self.jupiter.get_swap_transaction(quote, self.wallet_address)
            return self._signer(tx) if self._signer else tx
        except (httpx.HTTPError, ValueError) as e:
            result.fail(ExecutionError.SWAP_BUILD_FAILED, str(e))
            return None

    async def _execute_plain(self, result: OrderResult, quote: dict[str, Any]) -> None:
        signed = await self._build_signed(result, quote)
        if signed is None:
            return

        client = self.endpoints.current()
        result.endpoint = client.url
        try:
            signature = await client.send_transaction(signed)
        except (httpx.HTTPError, RpcError) as e:
            await self.endpoints.rotate(client.url)
            result.fail(ExecutionError.SUBMISSION_FAILED, str(e))
            return

        result.tx_handle = signature
        if await self.wait_for_confirmation(signature, client=client):
            result.success = True
        else:
            result.fail(ExecutionError.CONFIRMATION_TIMEOUT, f"Transaction {signature} not confirmed")

    async def _execute_bundle(self, result: OrderResult, quote: dict[str, Any]) -> None:
        signed = await self._build_signed(result, quote)
        if signed is None:
            return

        low, high = self.network.jito.tip_range
        tip_lamports = int(random.uniform(low, high) * LAMPORTS_PER_SOL)
        result.endpoint = self.jito.url

        try:
            bundle_id = await self.jito.send_bundle(signed, tip_lamports)
        except RelayUnavailable as e:
            if self.cfg.simulate_on_relay_failure:
                logger.warning(
                    "relay_unavailable_simulated",
                    extra={"token": result.token_address, "error": str(e)},
                )
                result.success = True
                result.simulated = True
                result.tx_handle = f"simulated_{int(time.time() * 1000)}"
            else:
                result.fail(ExecutionError.RELAY_UNAVAILABLE, str(e))
            return

        result.tx_handle = bundle_id
        landed = await self._poll_until_landed(self.jito.get_bundle_status, bundle_id, CONFIRMATION_TIMEOUT_MS)
        if landed:
            result.success = True
        else:
            result.fail(ExecutionError.CONFIRMATION_TIMEOUT, f"Bundle {bundle_id} did not land")

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def wait_for_confirmation(
        self,
        handle: str,
        timeout_ms: int = CONFIRMATION_TIMEOUT_MS,
        client: Optional[RpcClient] = None,
    ) -> bool:
        """Poll until the transaction reaches a terminal status or times out.

        Returns True only for a confirmed/finalized status without error.
        """
        rpc = client or self.endpoints.current()
        return await self._poll_until_landed(rpc.get_signature_status, handle, timeout_ms)

    async def _poll_until_landed(
        self,
        fetch: Callable[[str], Awaitable[Optional[dict[str, Any]]]],
        handle: str,
        timeout_ms: int,
    ) -> bool:
        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            try:
                status = await fetch(handle)
            except (httpx.HTTPError, RpcError, RelayUnavailable):
                status = None

            if status:
                err = status.get("err")
                if err is not None and err != {"Ok": None}:
                    return False
                level = status.get("confirmationStatus") or status.get("confirmation_status")
                if level in _LANDED:
                    return True

            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval)

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    async def get_balance(self, token_address: str) -> int:
        """Raw held balance of ``token_address``; 0 on any failure."""
        if self.dry_run:
            return self._paper_balances[token_address]
        try:
            return await self.endpoints.current().get_token_balance(self.wallet_address, token_address)
        except Exception:
            logger.warning("token_balance_failed", extra={"token": token_address}, exc_info=True)
            return 0

    async def get_native_balance(self) -> float:
        """Base-asset balance in SOL; 0.0 on any failure."""
        if not self.wallet_address:
            return 0.0
        try:
            lamports = await self.endpoints.current().get_balance(self.wallet_address)
            return lamports / LAMPORTS_PER_SOL
        except Exception:
            logger.warning("native_balance_failed", exc_info=True)
            return 0.0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record(self, result: OrderResult) -> OrderResult:
        self._order_log.append(result)
        logger.debug(
            "order_result",
            extra={
                "side": result.side.value,
                "token": result.token_address,
                "success": result.success,
                "error_code": result.error_code.value if result.error_code else "",
                "tx": result.tx_handle or "",
                "latency_ms": round(result.latency_ms, 1),
            },
        )
        return result

    @property
    def order_log(self) -> list[OrderResult]:
        return list(self._order_log)

    @property
    def is_live(self) -> bool:
        return not self.dry_run and self._initialized

    async def close(self) -> None:
        await self.jupiter.close()
        await self.jito.close()
        await self.endpoints.close()
        logger.info("execution_engine_closed")


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
