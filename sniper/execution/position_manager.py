"""Position manager: the in-memory portfolio of open positions and cash.

Positions are keyed by token mint address. At most one open position exists
per address: a second open for the same address is rejected, never merged or
replaced. An address can also be *reserved* while its buy is in flight so a
concurrent discovery event for the same mint cannot slip past the check.

Every dict mutation here is synchronous, so on a single event loop an
insert, lookup or delete can never interleave with a monitor tick.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Positions whose value falls below this are treated as fully closed
_DUST_USD = 1e-9


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class PositionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    LIQUIDATED = "liquidated"


class TakeProfitLevel(BaseModel):
    """One take-profit tier. Fires at most once per position."""

    threshold: float = Field(..., description="PnL fraction, e.g. 0.5 for +50%.")
    exit_percent: float = Field(..., description="Fraction of holdings to sell.")
    triggered: bool = False


class Position(BaseModel):
    """A single open position in a token."""

    address: str = Field(..., description="Token mint address.")
    symbol: str = ""
    entry_price: float = Field(..., gt=0, description="USD price at entry.")
    quantity: float = Field(default=0.0, description="Base-asset amount spent.")
    value_usd: float = Field(default=0.0, description="Remaining cost basis in USD.")
    entry_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stop_price: Optional[float] = Field(default=None, description="Volatility-scaled stop.")
    take_profit_levels: list[TakeProfitLevel] = Field(default_factory=list)
    status: PositionStatus = PositionStatus.OPEN
    realized_pnl: float = 0.0
    tx_handle: str = ""

    def pnl_pct(self, current_price: float) -> float:
        """Unrealized PnL as a fraction of entry price."""
        return (current_price - self.entry_price) / self.entry_price


class PortfolioSnapshot(BaseModel):
    """Point-in-time portfolio state."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_value_usd: float = 0.0
    cash_usd: float = 0.0
    positions: list[Position] = Field(default_factory=list)
    daily_pnl: float = 0.0
    total_pnl: float = 0.0
    win_rate: float = 0.0

    @property
    def n_positions(self) -> int:
        return len(self.positions)


# ---------------------------------------------------------------------------
# Position Manager
# ---------------------------------------------------------------------------


class PositionManager:
    """Tracks cash, open positions and realized P&L.

    Attributes:
        positions: Open positions keyed by mint address, in opening order.
        cash: Uncommitted USD.
        daily_pnl: Realized P&L since the last daily reset.
        total_pnl: Cumulative realized P&L.
    """

    def __init__(self, initial_capital: float = 10_000.0) -> None:
        self.positions: dict[str, Position] = {}
        self.cash = initial_capital
        self.initial_capital = initial_capital
        self.daily_pnl = 0.0
        self.total_pnl = 0.0
        self.wins = 0
        self.closed_trades = 0
        self._reserved: set[str] = set()

    # ------------------------------------------------------------------
    # Reservation
    # ------------------------------------------------------------------

    def reserve(self, address: str) -> bool:
        """Claim an address for an in-flight buy.

        Returns False when the address is already open or reserved.
        """
        if address in self.positions or address in self._reserved:
            return False
        self._reserved.add(address)
        return True

    def release(self, address: str) -> None:
        self._reserved.discard(address)

    def is_reserved(self, address: str) -> bool:
        return address in self._reserved

    # ------------------------------------------------------------------
    # Position updates
    # ------------------------------------------------------------------

    def open_position(self, position: Position) -> bool:
        """Insert a new open position and debit its cost from cash.

        Returns False (and changes nothing) if the address is already open.
        """
        if position.address in self.positions:
            logger.debug("position_duplicate_rejected", extra={"address": position.address})
            return False

        self.positions[position.address] = position
        self.cash -= position.value_usd
        self._reserved.discard(position.address)

        logger.debug(
            "position_recorded",
            extra={
                "address": position.address,
                "value_usd": round(position.value_usd, 2),
                "n_positions": len(self.positions),
                "cash": round(self.cash, 2),
            },
        )
        return True

    def close_position(
        self,
        address: str,
        fraction: float,
        exit_price: Optional[float] = None,
    ) -> float:
        """Close ``fraction`` of a position and realize P&L on that slice.

        ``fraction >= 1.0`` removes the position and marks it closed;
        otherwise its value and quantity are scaled down in place and it
        stays open. Without an ``exit_price`` the slice is returned at cost.

        Returns:
            Realized P&L of the closed slice (0.0 for an unknown address).
        """
        pos = self.positions.get(address)
        if pos is None:
            return 0.0

        fraction = max(0.0, min(fraction, 1.0))
        price = exit_price if exit_price is not None else pos.entry_price

        cost = pos.value_usd * fraction
        proceeds = cost * (price / pos.entry_price)
        realized = proceeds - cost

        pos.realized_pnl += realized
        self.cash += proceeds
        self.daily_pnl += realized
        self.total_pnl += realized

        if fraction >= 1.0 or pos.value_usd - cost <= _DUST_USD:
            pos.value_usd = 0.0
            pos.quantity = 0.0
            pos.status = PositionStatus.CLOSED
            del self.positions[address]
            self.closed_trades += 1
            if pos.realized_pnl > 0:
                self.wins += 1
        else:
            pos.value_usd -= cost
            pos.quantity *= 1.0 - fraction

        logger.debug(
            "position_reduced",
            extra={
                "address": address,
                "fraction": fraction,
                "exit_price": price,
                "realized_pnl": round(realized, 2),
                "status": pos.status.value,
            },
        )
        return realized

    # ------------------------------------------------------------------
    # Portfolio metrics
    # ------------------------------------------------------------------

    @property
    def total_exposure(self) -> float:
        """Sum of open position values."""
        return sum(p.value_usd for p in self.positions.values())

    @property
    def total_value(self) -> float:
        """Cash plus open position values, recomputed on every read."""
        return self.cash + self.total_exposure

    @property
    def n_positions(self) -> int:
        return len(self.positions)

    @property
    def win_rate(self) -> float:
        if self.closed_trades == 0:
            return 0.0
        return self.wins / self.closed_trades

    def get_position(self, address: str) -> Optional[Position]:
        return self.positions.get(address)

    def snapshot(self) -> PortfolioSnapshot:
        return PortfolioSnapshot(
            total_value_usd=self.total_value,
            cash_usd=self.cash,
            positions=list(self.positions.values()),
            daily_pnl=self.daily_pnl,
            total_pnl=self.total_pnl,
            win_rate=self.win_rate,
        )
