"""Risk manager: position sizing, exit rules and portfolio-level gates.

Every candidate passes through the risk manager before reaching the
execution engine, and every open position is re-evaluated against it on
each monitor tick. It enforces:

1. Fractional-Kelly sizing, shrunk further as volatility rises
2. Hard and soft stop losses (hard is checked first)
3. Tiered take-profits, each tier firing at most once
4. Maximum concurrent positions
5. Minimum viable position size
6. Portfolio exposure ceiling
7. Daily-loss circuit breaker (advisory: callers decide to halt)

The risk manager owns the portfolio. Nothing here raises on bad numeric
input; degenerate cases resolve to the most conservative answer.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence

import numpy as np
from pydantic import BaseModel

from sniper.config import (
    CORRELATION_RISK_PROXY,
    DAILY_LOSS_LIMIT_PCT,
    KELLY_FRACTION,
    MAX_DYNAMIC_STOP,
    MAX_EXPOSURE_RATIO,
    MIN_POSITION_USD,
    REFERENCE_VOLATILITY,
    TradingConfig,
)
from sniper.execution.position_manager import (
    PortfolioSnapshot,
    Position,
    PositionManager,
    TakeProfitLevel,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class RiskViolation(str, Enum):
    """Reason a new position was refused."""

    MAX_POSITIONS = "max_positions"
    INSUFFICIENT_CASH = "insufficient_cash"
    EXPOSURE_LIMIT = "exposure_limit"
    DUPLICATE_POSITION = "duplicate_position"
    CIRCUIT_BREAKER = "circuit_breaker"


class AdmissionCheck(BaseModel):
    allowed: bool = False
    reason: str = ""
    violation: Optional[RiskViolation] = None


class StopLossCheck(BaseModel):
    should_close: bool = False
    reason: str = ""
    exit_percent: float = 0.0


class TakeProfitAction(BaseModel):
    should_sell: bool = True
    reason: str = ""
    exit_percent: float = 0.0
    threshold: float = 0.0


class PortfolioRisk(BaseModel):
    total_exposure: float = 0.0
    max_exposure: float = 0.0
    diversification: float = 0.0
    correlation_risk: float = 0.0


class CircuitBreakerStatus(BaseModel):
    triggered: bool = False
    reason: str = ""


# ---------------------------------------------------------------------------
# Risk Manager
# ---------------------------------------------------------------------------


class RiskManager:
    """Sizing, exit and admission rules over the portfolio.

    Attributes:
        trading: Trading limits from the loaded configuration.
        pm: The portfolio. Mutate it only through this class.
    """

    def __init__(self, trading: TradingConfig, initial_capital: float = 10_000.0) -> None:
        self.trading = trading
        self.pm = PositionManager(initial_capital=initial_capital)
        self._daily_reset_date = _today()

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------

    def size_position(self, win_rate: float, odds: float, volatility: float) -> float:
        """Fraction of cash to commit, via quarter-Kelly scaled by volatility.

        f* = (b·p - q) / b with b = odds - 1, then × KELLY_FRACTION ×
        REFERENCE_VOLATILITY / volatility, clamped to [0, max_position_size].
        Returns 0.0 when ``odds <= 1`` or ``volatility <= 0``.
        """
        b = odds - 1.0
        if b <= 0 or volatility <= 0:
            return 0.0

        p = win_rate
        q = 1.0 - p
        kelly = (b * p - q) / b

        vol_multiplier = 1.0 / (volatility / REFERENCE_VOLATILITY)
        kelly = kelly * KELLY_FRACTION * vol_multiplier

        return max(0.0, min(kelly, self.trading.max_position_size))

    def size_usd(self, win_rate: float, odds: float, volatility: float) -> float:
        return self.size_position(win_rate, odds, volatility) * self.pm.cash

    def dynamic_stop_price(self, entry_price: float, volatility: float) -> float:
        """Stop price below entry, widened linearly with volatility up to 25%."""
        vol_adjusted = self.trading.stop_loss * (volatility / REFERENCE_VOLATILITY)
        return entry_price * (1.0 - min(vol_adjusted, MAX_DYNAMIC_STOP))

    @staticmethod
    def estimate_volatility(prices: Sequence[float]) -> float:
        """Population std-dev of simple period returns; 0.5 if under 2 samples."""
        if len(prices) < 2:
            return REFERENCE_VOLATILITY

        series = np.asarray(prices, dtype=float)
        returns = np.diff(series) / series[:-1]
        return float(np.std(returns))

    def build_take_profit_levels(self) -> list[TakeProfitLevel]:
        """Fresh, untriggered tiers for a new position, sorted by threshold."""
        return [
            TakeProfitLevel(threshold=t.threshold, exit_percent=t.exit_percent)
            for t in sorted(self.trading.take_profit_tiers, key=lambda t: t.threshold)
        ]

    # ------------------------------------------------------------------
    # Exit rules
    # ------------------------------------------------------------------

    def check_stop_loss(self, position: Position, current_price: float) -> StopLossCheck:
        pnl_pct = position.pnl_pct(current_price)

        if pnl_pct <= -self.trading.stop_loss:
            return StopLossCheck(
                should_close=True,
                reason="Hard stop loss triggered",
                exit_percent=1.0,
            )

        if pnl_pct <= -self.trading.soft_stop_loss:
            return StopLossCheck(
                should_close=True,
                reason="Soft stop loss triggered",
                exit_percent=0.5,
            )

        return StopLossCheck()

    def check_take_profit(self, position: Position, current_price: float) -> list[TakeProfitAction]:
        """Fire every untriggered tier at or below the current PnL.

        Each fired tier is marked triggered in the same step, so evaluating
        the same position again never fires it twice.
        """
        pnl_pct = position.pnl_pct(current_price)
        actions: list[TakeProfitAction] = []

        for level in position.take_profit_levels:
            if level.triggered or pnl_pct < level.threshold:
                continue
            level.triggered = True
            actions.append(
                TakeProfitAction(
                    reason=f"Take profit at {level.threshold * 100:g}%",
                    exit_percent=level.exit_percent,
                    threshold=level.threshold,
                )
            )

        return actions

    # ------------------------------------------------------------------
    # Portfolio gates
    # ------------------------------------------------------------------

    def portfolio_risk(self) -> PortfolioRisk:
        n_open = self.pm.n_positions
        max_positions = self.trading.max_positions
        return PortfolioRisk(
            total_exposure=self.pm.total_exposure,
            max_exposure=max_positions * (self.pm.total_value * self.trading.max_position_size),
            diversification=n_open / max_positions,
            # Flat proxy: no pairwise return correlations are tracked
            correlation_risk=CORRELATION_RISK_PROXY if n_open >= 2 else 0.0,
        )

    def can_open_position(self) -> AdmissionCheck:
        if self.pm.n_positions >= self.trading.max_positions:
            return AdmissionCheck(
                reason=f"Max positions reached ({self.trading.max_positions})",
                violation=RiskViolation.MAX_POSITIONS,
            )

        min_position_value = self.pm.cash * self.trading.max_position_size
        if min_position_value < MIN_POSITION_USD:
            return AdmissionCheck(
                reason=(
                    f"Insufficient cash for minimum position "
                    f"(${min_position_value:.2f} < ${MIN_POSITION_USD:.0f})"
                ),
                violation=RiskViolation.INSUFFICIENT_CASH,
            )

        risk = self.portfolio_risk()
        if risk.max_exposure <= 0 or risk.total_exposure / risk.max_exposure > MAX_EXPOSURE_RATIO:
            return AdmissionCheck(
                reason=(
                    f"Portfolio risk too high "
                    f"(${risk.total_exposure:.0f} / ${risk.max_exposure:.0f})"
                ),
                violation=RiskViolation.EXPOSURE_LIMIT,
            )

        return AdmissionCheck(allowed=True)

    def check_circuit_breaker(self) -> CircuitBreakerStatus:
        """Report whether today's loss has reached the daily limit.

        Advisory only: nothing here stops trading. The caller must stop
        opening positions while this reports triggered.
        """
        self._maybe_reset_daily()
        max_daily_loss = self.pm.total_value * DAILY_LOSS_LIMIT_PCT
        if self.pm.daily_pnl <= -max_daily_loss:
            return CircuitBreakerStatus(
                triggered=True,
                reason=f"Daily loss limit reached ({DAILY_LOSS_LIMIT_PCT:.0%})",
            )
        return CircuitBreakerStatus()

    # ------------------------------------------------------------------
    # Portfolio mutation
    # ------------------------------------------------------------------

    def reserve(self, address: str) -> AdmissionCheck:
        if not self.pm.reserve(address):
            return AdmissionCheck(
                reason=f"Position already open or pending for {address}",
                violation=RiskViolation.DUPLICATE_POSITION,
            )
        return AdmissionCheck(allowed=True)

    def release(self, address: str) -> None:
        self.pm.release(address)

    def open_position(self, position: Position) -> bool:
        return self.pm.open_position(position)

    def close_position(self, address: str, fraction: float, exit_price: Optional[float] = None) -> float:
        self._maybe_reset_daily()
        return self.pm.close_position(address, fraction, exit_price)

    def get_portfolio(self) -> PortfolioSnapshot:
        return self.pm.snapshot()

    def status(self) -> dict:
        """Current risk status summary."""
        risk = self.portfolio_risk()
        breaker = self.check_circuit_breaker()
        return {
            "n_positions": self.pm.n_positions,
            "max_positions": self.trading.max_positions,
            "total_exposure": risk.total_exposure,
            "max_exposure": risk.max_exposure,
            "cash": self.pm.cash,
            "total_value": self.pm.total_value,
            "daily_pnl": self.pm.daily_pnl,
            "total_pnl": self.pm.total_pnl,
            "win_rate": self.pm.win_rate,
            "circuit_breaker": breaker.triggered,
        }

    def _maybe_reset_daily(self) -> None:
        """Reset daily P&L at midnight UTC."""
        today = _today()
        if self._daily_reset_date != today:
            logger.debug(
                "daily_pnl_reset",
                extra={
                    "previous_day": self._daily_reset_date,
                    "final_daily_pnl": self.pm.daily_pnl,
                },
            )
            self.pm.daily_pnl = 0.0
            self._daily_reset_date = today


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")
