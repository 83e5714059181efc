"""Tests for the risk manager.

Tests cover:
  - Kelly sizing (reference example, bounds, degenerate inputs)
  - Dynamic stop and volatility estimate
  - Stop-loss precedence (hard before soft)
  - Take-profit tiers firing once
  - Admission gates (max positions, cash, exposure, duplicates)
  - Daily-loss circuit breaker
"""

import pytest

from sniper.config import TradingConfig
from sniper.execution.risk_manager import RiskManager, RiskViolation

from conftest import make_position


# ============================================================
# Sizing
# ============================================================

class TestSizing:

    def setup_method(self):
        self.rm = RiskManager(TradingConfig(max_position_size=0.1), initial_capital=10_000.0)

    def test_reference_example(self):
        # b = 1, f* = 0.2, quarter-Kelly at reference volatility
        assert self.rm.size_position(0.6, 2.0, 0.5) == pytest.approx(0.05)

    def test_clamped_to_max_position_size(self):
        assert self.rm.size_position(0.95, 5.0, 0.1) == pytest.approx(0.1)

    def test_negative_edge_sizes_zero(self):
        assert self.rm.size_position(0.2, 2.0, 0.5) == 0.0

    @pytest.mark.parametrize("odds", [1.0, 0.5, 0.0])
    def test_no_payoff_sizes_zero(self, odds):
        assert self.rm.size_position(0.9, odds, 0.5) == 0.0

    @pytest.mark.parametrize("vol", [0.0, -0.3])
    def test_non_positive_volatility_sizes_zero(self, vol):
        assert self.rm.size_position(0.9, 3.0, vol) == 0.0

    def test_sizes_within_bounds(self):
        for p in (0.0, 0.1, 0.3, 0.5, 0.7, 0.9, 1.0):
            for odds in (1.5, 2.0, 3.0, 10.0):
                for vol in (0.05, 0.5, 2.0):
                    f = self.rm.size_position(p, odds, vol)
                    assert 0.0 <= f <= 0.1

    def test_higher_volatility_shrinks_size(self):
        calm = self.rm.size_position(0.6, 2.0, 0.5)
        wild = self.rm.size_position(0.6, 2.0, 1.0)
        assert wild == pytest.approx(calm / 2)

    def test_size_usd_uses_cash(self):
        assert self.rm.size_usd(0.6, 2.0, 0.5) == pytest.approx(500.0)


class TestStopsAndVolatility:

    def setup_method(self):
        self.rm = RiskManager(TradingConfig(stop_loss=0.10), initial_capital=10_000.0)

    def test_dynamic_stop_at_reference_volatility(self):
        assert self.rm.dynamic_stop_price(100.0, 0.5) == pytest.approx(90.0)

    def test_dynamic_stop_capped(self):
        assert self.rm.dynamic_stop_price(100.0, 5.0) == pytest.approx(75.0)

    def test_volatility_fallback(self):
        assert RiskManager.estimate_volatility([]) == 0.5
        assert RiskManager.estimate_volatility([1.0]) == 0.5

    def test_volatility_of_returns(self):
        # returns +10%, -10%
        assert RiskManager.estimate_volatility([100.0, 110.0, 99.0]) == pytest.approx(0.1)


# ============================================================
# Exit rules
# ============================================================

class TestStopLoss:

    def test_hard_stop_takes_precedence(self, risk_manager):
        pos = make_position(risk_manager, entry=100.0)
        check = risk_manager.check_stop_loss(pos, 85.0)
        assert check.should_close
        assert check.exit_percent == 1.0
        assert check.reason == "Hard stop loss triggered"

    def test_soft_stop_sells_half(self, risk_manager):
        pos = make_position(risk_manager, entry=100.0)
        check = risk_manager.check_stop_loss(pos, 94.0)
        assert check.should_close
        assert check.exit_percent == 0.5
        assert check.reason == "Soft stop loss triggered"

    def test_no_stop_above_soft_threshold(self, risk_manager):
        pos = make_position(risk_manager, entry=100.0)
        assert not risk_manager.check_stop_loss(pos, 97.0).should_close


class TestTakeProfit:

    def test_tier_fires_once(self, risk_manager):
        pos = make_position(risk_manager, entry=100.0)

        first = risk_manager.check_take_profit(pos, 160.0)
        assert [a.threshold for a in first] == [0.5]
        assert first[0].exit_percent == 0.3
        assert first[0].reason == "Take profit at 50%"

        assert risk_manager.check_take_profit(pos, 160.0) == []

    def test_gap_up_fires_all_reached_tiers_in_order(self, risk_manager):
        pos = make_position(risk_manager, entry=100.0)
        actions = risk_manager.check_take_profit(pos, 310.0)
        assert [a.threshold for a in actions] == [0.5, 1.0, 2.0]
        assert all(level.triggered for level in pos.take_profit_levels)

    def test_below_first_tier(self, risk_manager):
        pos = make_position(risk_manager, entry=100.0)
        assert risk_manager.check_take_profit(pos, 140.0) == []
        assert not any(level.triggered for level in pos.take_profit_levels)


# ============================================================
# Portfolio gates
# ============================================================

class TestAdmission:

    def test_allowed_on_empty_portfolio(self, risk_manager):
        assert risk_manager.can_open_position().allowed

    def test_denied_at_max_positions(self, risk_manager):
        for i in range(5):
            assert risk_manager.open_position(make_position(risk_manager, f"Mint{i}", value=100.0))
        check = risk_manager.can_open_position()
        assert not check.allowed
        assert check.violation == RiskViolation.MAX_POSITIONS
        assert "(5)" in check.reason

    def test_denied_on_insufficient_cash(self, risk_manager):
        risk_manager.pm.cash = 50.0
        check = risk_manager.can_open_position()
        assert not check.allowed
        assert check.violation == RiskViolation.INSUFFICIENT_CASH

    def test_denied_on_exposure(self, risk_manager):
        # 4400 exposure against a 5000 ceiling is above the 80% ratio
        for i in range(4):
            risk_manager.open_position(make_position(risk_manager, f"Mint{i}", value=1_100.0))
        check = risk_manager.can_open_position()
        assert not check.allowed
        assert check.violation == RiskViolation.EXPOSURE_LIMIT

    def test_duplicate_open_rejected(self, risk_manager):
        assert risk_manager.open_position(make_position(risk_manager, "MintX"))
        assert not risk_manager.open_position(make_position(risk_manager, "MintX", value=500.0))
        assert risk_manager.pm.n_positions == 1
        assert risk_manager.pm.get_position("MintX").value_usd == 1_000.0
        assert risk_manager.pm.cash == pytest.approx(9_000.0)

    def test_reserve_rejects_open_and_pending(self, risk_manager):
        assert risk_manager.reserve("MintP").allowed
        pending = risk_manager.reserve("MintP")
        assert pending.violation == RiskViolation.DUPLICATE_POSITION

        risk_manager.open_position(make_position(risk_manager, "MintO"))
        assert risk_manager.reserve("MintO").violation == RiskViolation.DUPLICATE_POSITION

        risk_manager.release("MintP")
        assert risk_manager.reserve("MintP").allowed


class TestCircuitBreaker:

    def test_trips_past_daily_limit(self, risk_manager):
        risk_manager.pm.daily_pnl = -1_001.0
        status = risk_manager.check_circuit_breaker()
        assert status.triggered
        assert "10%" in status.reason

    def test_holds_inside_daily_limit(self, risk_manager):
        risk_manager.pm.daily_pnl = -999.0
        assert not risk_manager.check_circuit_breaker().triggered

    def test_resets_on_new_day(self, risk_manager):
        risk_manager.pm.daily_pnl = -5_000.0
        risk_manager._daily_reset_date = "2000-01-01"
        assert not risk_manager.check_circuit_breaker().triggered
        assert risk_manager.pm.daily_pnl == 0.0


class TestPortfolioRisk:

    def test_correlation_proxy_needs_two_positions(self, risk_manager):
        risk_manager.open_position(make_position(risk_manager, "MintA", value=100.0))
        assert risk_manager.portfolio_risk().correlation_risk == 0.0
        risk_manager.open_position(make_position(risk_manager, "MintB", value=100.0))
        risk = risk_manager.portfolio_risk()
        assert risk.correlation_risk == 0.5
        assert risk.diversification == pytest.approx(2 / 5)
        assert risk.total_exposure == pytest.approx(200.0)

    def test_status_summary(self, risk_manager):
        status = risk_manager.status()
        assert status["n_positions"] == 0
        assert status["max_positions"] == 5
        assert status["total_value"] == pytest.approx(10_000.0)
        assert status["circuit_breaker"] is False
