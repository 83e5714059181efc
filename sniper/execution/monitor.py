"""Position monitor: periodic stop-loss / take-profit evaluation.

Runs as an APScheduler interval job (POSITION_CHECK_INTERVAL seconds) with
``max_instances=1``, so a slow tick delays the next one instead of running
alongside it. For each open position:

1. Fetch the current price (a failed lookup skips the position this tick)
2. Stop-loss check; a trigger closes and skips take-profit for this tick
3. Take-profit check; every tier fired closes its exit percentage

Each tick also records the price it saw, so the orchestrator can size new
entries against the volatility observed across open positions.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Awaitable, Callable

import numpy as np

from sniper.config import PRICE_HISTORY_LEN
from sniper.execution.risk_manager import RiskManager
from sniper.scoring.base import PriceFeed, PriceUnavailable

logger = logging.getLogger(__name__)

# (address, exit_percent, reason, current_price) -> None
CloseCallback = Callable[[str, float, str, float], Awaitable[None]]


class PositionMonitor:
    """Evaluates open positions against the risk manager's exit rules."""

    def __init__(
        self,
        risk_manager: RiskManager,
        price_feed: PriceFeed,
        on_close: CloseCallback,
    ) -> None:
        self.rm = risk_manager
        self.price_feed = price_feed
        self.on_close = on_close
        self.ticks = 0
        self.price_history: dict[str, deque[float]] = {}

    async def tick(self) -> int:
        """Evaluate every open position once. Returns the number of closes."""
        self.ticks += 1
        closes = 0

        # Snapshot the keys: closes remove entries while we iterate
        for address in list(self.rm.pm.positions):
            position = self.rm.pm.get_position(address)
            if position is None:
                continue

            try:
                price = await self.price_feed.get_price(address)
            except PriceUnavailable:
                logger.debug("monitor_price_unavailable", extra={"address": address})
                continue
            except Exception:
                logger.warning("monitor_price_error", extra={"address": address}, exc_info=True)
                continue

            if price > 0:
                self.price_history.setdefault(address, deque(maxlen=PRICE_HISTORY_LEN)).append(price)

            stop = self.rm.check_stop_loss(position, price)
            if stop.should_close:
                await self.on_close(address, stop.exit_percent, stop.reason, price)
                closes += 1
                continue

            for action in self.rm.check_take_profit(position, price):
                if self.rm.pm.get_position(address) is None:
                    break
                await self.on_close(address, action.exit_percent, action.reason, price)
                closes += 1

        for address in list(self.price_history):
            if self.rm.pm.get_position(address) is None:
                del self.price_history[address]

        return closes

    def observed_volatility(self) -> float:
        """Mean return volatility of the open positions' recorded prices.

        Positions with fewer than two samples, or a perfectly flat series,
        carry no information and are left out. With none left this is the
        risk manager's fallback estimate.
        """
        estimates = [
            self.rm.estimate_volatility(list(history))
            for history in self.price_history.values()
            if len(history) >= 2
        ]
        estimates = [v for v in estimates if v > 0]
        if not estimates:
            return self.rm.estimate_volatility([])
        return float(np.mean(estimates))
