"""Tests for portfolio bookkeeping: opens, partial/full closes, P&L, win rate."""

import pytest

from sniper.execution.position_manager import Position, PositionManager, PositionStatus


def _position(address="MintA", entry=100.0, value=1_000.0):
    return Position(address=address, entry_price=entry, quantity=10.0, value_usd=value)


class TestPositionManager:

    def setup_method(self):
        self.pm = PositionManager(initial_capital=10_000.0)

    def test_open_debits_cash(self):
        assert self.pm.open_position(_position())
        assert self.pm.cash == pytest.approx(9_000.0)
        assert self.pm.total_exposure == pytest.approx(1_000.0)
        assert self.pm.total_value == pytest.approx(10_000.0)

    def test_open_clears_reservation(self):
        assert self.pm.reserve("MintA")
        self.pm.open_position(_position())
        assert not self.pm.is_reserved("MintA")
        assert not self.pm.reserve("MintA")

    def test_partial_close_scales_in_place(self):
        self.pm.open_position(_position())
        realized = self.pm.close_position("MintA", 0.5, exit_price=150.0)

        assert realized == pytest.approx(250.0)
        pos = self.pm.get_position("MintA")
        assert pos.status == PositionStatus.OPEN
        assert pos.value_usd == pytest.approx(500.0)
        assert pos.quantity == pytest.approx(5.0)
        assert self.pm.cash == pytest.approx(9_750.0)
        assert self.pm.daily_pnl == pytest.approx(250.0)

    def test_full_close_removes_and_counts_win(self):
        pos = _position()
        self.pm.open_position(pos)
        self.pm.close_position("MintA", 0.5, exit_price=150.0)
        self.pm.close_position("MintA", 1.0, exit_price=150.0)

        assert self.pm.get_position("MintA") is None
        assert pos.status == PositionStatus.CLOSED
        assert pos.realized_pnl == pytest.approx(500.0)
        assert self.pm.cash == pytest.approx(10_500.0)
        assert self.pm.total_pnl == pytest.approx(500.0)
        assert self.pm.win_rate == 1.0

    def test_losing_close_counts_loss(self):
        self.pm.open_position(_position("MintA"))
        self.pm.open_position(_position("MintB"))
        self.pm.close_position("MintA", 1.0, exit_price=80.0)
        self.pm.close_position("MintB", 1.0, exit_price=120.0)

        assert self.pm.closed_trades == 2
        assert self.pm.win_rate == pytest.approx(0.5)
        assert self.pm.total_pnl == pytest.approx(0.0)

    def test_close_without_price_returns_at_cost(self):
        self.pm.open_position(_position())
        assert self.pm.close_position("MintA", 1.0) == 0.0
        assert self.pm.cash == pytest.approx(10_000.0)

    def test_close_unknown_address(self):
        assert self.pm.close_position("Nope", 1.0, exit_price=1.0) == 0.0

    def test_snapshot_recomputes_value(self):
        self.pm.open_position(_position("MintA"))
        self.pm.open_position(_position("MintB", value=500.0))
        snap = self.pm.snapshot()
        assert snap.n_positions == 2
        assert snap.cash_usd == pytest.approx(8_500.0)
        assert snap.total_value_usd == pytest.approx(10_000.0)
        assert [p.address for p in snap.positions] == ["MintA", "MintB"]
