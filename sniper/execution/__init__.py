"""Execution layer for the memecoin sniper.

This package turns trade signals into on-chain swaps and manages the
resulting positions until exit. It handles quoting, submission with RPC
failover, position tracking, risk limits, and periodic exit evaluation.

Sizing is deliberately conservative: quarter-Kelly shrunk by volatility,
a hard cap per position, an exposure ceiling and a daily-loss circuit
breaker. New listings are volatile; surviving comes first.

Modules:
    engine           -- Quote/swap/submit with plain or bundle path
    endpoints        -- Ranked RPC endpoints with a rotation cursor
    position_manager -- Open positions, cash and realized P&L
    risk_manager     -- Kelly sizing, stops, take-profit tiers, admission
    monitor          -- Periodic stop-loss / take-profit evaluation
"""

from sniper.execution.endpoints import EndpointSet
from sniper.execution.engine import ExecutionEngine, ExecutionError, OrderResult, OrderSide
from sniper.execution.monitor import PositionMonitor
from sniper.execution.position_manager import Position, PositionManager, PortfolioSnapshot
from sniper.execution.risk_manager import AdmissionCheck, RiskManager, RiskViolation

__all__ = [
    "EndpointSet",
    "ExecutionEngine",
    "ExecutionError",
    "OrderResult",
    "OrderSide",
    "PositionMonitor",
    "Position",
    "PositionManager",
    "PortfolioSnapshot",
    "AdmissionCheck",
    "RiskManager",
    "RiskViolation",
]
