"""Sniper configuration: YAML file validated into pydantic models.

The configuration object is built once at startup by ``load_config`` and
passed into every component constructor. Anything that fails validation
raises ``ConfigInvalid`` before a single order can be placed.

Secrets and per-host overrides come from the environment (``.env`` is
loaded when present):

    SNIPER_WALLET_ADDRESS   wallet public key
    SNIPER_DRY_RUN          "1"/"0" override for execution.dry_run
    BIRDEYE_API_KEY         token metadata API key
    LOG_LEVEL               root log level
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pythonjsonlogger import jsonlogger

# ---------------------------------------------------------------------------
# Protocol endpoints
# ---------------------------------------------------------------------------
JUPITER_API_URL = "https://quote-api.jup.ag/v6"
JUPITER_PRICE_URL = "https://api.jup.ag/price/v2"
JITO_BLOCK_ENGINE_URL = "https://mainnet.block-engine.jito.wtf/api/v1/bundles"
BIRDEYE_API_URL = "https://public-api.birdeye.so"
PUMPPORTAL_WS_URL = "wss://pumpportal.fun/api/data"

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000

# ---------------------------------------------------------------------------
# Timing (seconds)
# ---------------------------------------------------------------------------
QUOTE_TIMEOUT = 5.0
HTTP_TIMEOUT = 10.0
POSITION_CHECK_INTERVAL = 5
CONFIRMATION_TIMEOUT_MS = 30_000
CONFIRMATION_POLL_INTERVAL = 1.0
WS_RECONNECT_BASE_DELAY = 1.0
WS_RECONNECT_MAX_DELAY = 30.0

# ---------------------------------------------------------------------------
# Risk constants
# ---------------------------------------------------------------------------
KELLY_FRACTION = 0.25             # quarter-Kelly
REFERENCE_VOLATILITY = 0.5        # volatility at which size/stop are unscaled
MAX_DYNAMIC_STOP = 0.25           # dynamic stop never wider than 25%
PRICE_HISTORY_LEN = 60            # monitor ticks of prices kept per position
MIN_POSITION_USD = 10.0           # smallest position worth opening
MAX_EXPOSURE_RATIO = 0.8          # deny admission above 80% of max exposure
DAILY_LOSS_LIMIT_PCT = 0.10       # circuit breaker at 10% daily loss
CORRELATION_RISK_PROXY = 0.5      # flat proxy until real correlations exist
SIGNAL_SCORE_THRESHOLD = 50.0     # minimum total score for a trade signal

# Hard caps enforced at load time
MAX_POSITION_SIZE_CAP = 0.5
STOP_LOSS_CAP = 0.5

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


class ConfigInvalid(Exception):
    """Raised when the configuration cannot be loaded or fails validation."""


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class SystemConfig(BaseModel):
    name: str = "memecoin-sniper"
    mode: str = Field(default="development", pattern="^(development|production)$")
    log_level: str = "INFO"
    health_port: int = Field(default=0, ge=0, description="0 disables the status server.")
    collaborator_timeout: float = Field(
        default=3.0, gt=0, description="Seconds to wait on score/predict/sentiment calls."
    )
    discovery_buffer: int = Field(default=256, gt=0, description="Bounded channel capacity.")


class RpcEndpoint(BaseModel):
    url: str
    weight: int = Field(default=1, ge=0, description="Higher weights are tried first.")


class JitoConfig(BaseModel):
    url: str = JITO_BLOCK_ENGINE_URL
    tip_range: tuple[float, float] = (0.0001, 0.001)

    @field_validator("tip_range")
    @classmethod
    def _ordered_tip_range(cls, v: tuple[float, float]) -> tuple[float, float]:
        low, high = v
        if low < 0 or high < low:
            raise ValueError("tip_range must be [min, max] with 0 <= min <= max")
        return v


class NetworkConfig(BaseModel):
    rpc: list[RpcEndpoint]
    jito: JitoConfig = Field(default_factory=JitoConfig)
    commitment: str = Field(default="confirmed", pattern="^(processed|confirmed|finalized)$")

    @field_validator("rpc")
    @classmethod
    def _at_least_one_rpc(cls, v: list[RpcEndpoint]) -> list[RpcEndpoint]:
        if not v:
            raise ValueError("at least one RPC endpoint is required")
        return v

    def ranked_urls(self) -> list[str]:
        """Endpoint URLs by descending weight; ties keep their configured order."""
        return [e.url for e in sorted(self.rpc, key=lambda e: -e.weight)]


class TakeProfitTier(BaseModel):
    threshold: float = Field(..., gt=0, description="PnL fraction that triggers the tier.")
    exit_percent: float = Field(..., gt=0, le=1.0, description="Fraction of holdings sold.")


def _default_tiers() -> list[TakeProfitTier]:
    return [
        TakeProfitTier(threshold=0.5, exit_percent=0.3),
        TakeProfitTier(threshold=1.0, exit_percent=0.3),
        TakeProfitTier(threshold=2.0, exit_percent=0.4),
    ]


class TradingConfig(BaseModel):
    max_position_size: float = Field(default=0.1, gt=0)
    max_positions: int = Field(default=5, gt=0)
    min_liquidity: float = Field(default=5_000.0, ge=0)
    min_market_cap: float = Field(default=10_000.0, ge=0)
    stop_loss: float = Field(default=0.10, gt=0)
    soft_stop_loss: float = Field(default=0.05, gt=0)
    take_profit_tiers: list[TakeProfitTier] = Field(default_factory=_default_tiers)
    kelly_odds: float = Field(default=3.0, gt=1.0, description="Payoff odds assumed for Kelly sizing.")

    @field_validator("max_position_size")
    @classmethod
    def _cap_position_size(cls, v: float) -> float:
        if v > MAX_POSITION_SIZE_CAP:
            raise ValueError(f"max_position_size cannot exceed {MAX_POSITION_SIZE_CAP:.0%}")
        return v

    @field_validator("stop_loss")
    @classmethod
    def _cap_stop_loss(cls, v: float) -> float:
        if v > STOP_LOSS_CAP:
            raise ValueError(f"stop_loss cannot exceed {STOP_LOSS_CAP:.0%}")
        return v

    @field_validator("take_profit_tiers")
    @classmethod
    def _sort_tiers(cls, v: list[TakeProfitTier]) -> list[TakeProfitTier]:
        thresholds = [t.threshold for t in v]
        if len(set(thresholds)) != len(thresholds):
            raise ValueError("take_profit_tiers thresholds must be unique")
        return sorted(v, key=lambda t: t.threshold)

    @model_validator(mode="after")
    def _soft_inside_hard(self) -> TradingConfig:
        if self.soft_stop_loss > self.stop_loss:
            raise ValueError("soft_stop_loss must not exceed stop_loss")
        return self


class MLConfig(BaseModel):
    enabled: bool = False
    model_path: str = ""
    probability_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _model_required(self) -> MLConfig:
        if self.enabled and not self.model_path:
            raise ValueError("ml.model_path is required when ML is enabled")
        return self


class SentimentConfig(BaseModel):
    enabled: bool = True
    cache_ttl: float = Field(default=300.0, gt=0)


class DiscoveryConfig(BaseModel):
    enabled: bool = True
    ws_url: str = PUMPPORTAL_WS_URL
    metadata_url: str = BIRDEYE_API_URL
    api_key: str = ""
    max_pending: int = Field(
        default=32, gt=0, description="Metadata lookups in flight before new mints are skipped."
    )


class ExecutionConfig(BaseModel):
    dry_run: bool = True
    use_bundle: bool = False
    simulate_on_relay_failure: bool = False
    max_slippage: float = Field(default=0.15, gt=0, le=1.0)
    wallet_address: str = ""
    quote_url: str = JUPITER_API_URL
    price_url: str = JUPITER_PRICE_URL


class SniperConfig(BaseModel):
    """Root configuration object."""

    system: SystemConfig = Field(default_factory=SystemConfig)
    network: NetworkConfig
    trading: TradingConfig = Field(default_factory=TradingConfig)
    ml: MLConfig = Field(default_factory=MLConfig)
    sentiment: SentimentConfig = Field(default_factory=SentimentConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    initial_capital: float = Field(default=10_000.0, gt=0)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _apply_env_overrides(raw: dict) -> dict:
    execution = raw.setdefault("execution", {}) or {}
    raw["execution"] = execution
    wallet = os.environ.get("SNIPER_WALLET_ADDRESS")
    if wallet:
        execution["wallet_address"] = wallet
    dry_run = os.environ.get("SNIPER_DRY_RUN")
    if dry_run is not None:
        execution["dry_run"] = dry_run.strip().lower() in ("1", "true", "yes")

    api_key = os.environ.get("BIRDEYE_API_KEY")
    if api_key:
        discovery = raw.setdefault("discovery", {}) or {}
        raw["discovery"] = discovery
        discovery["api_key"] = api_key
    return raw


def parse_config(raw: dict) -> SniperConfig:
    """Validate an already-parsed mapping into a SniperConfig."""
    try:
        return SniperConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigInvalid(str(e)) from e


def load_config(path: str | Path, env_file: Optional[str | Path] = None) -> SniperConfig:
    """Load, override from the environment, and validate the YAML config.

    Raises:
        ConfigInvalid: file missing, unparsable, or any limit violated.
    """
    load_dotenv(env_file)

    path = Path(path)
    if not path.exists():
        raise ConfigInvalid(f"Config file not found: {path}")

    try:
        with path.open() as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigInvalid(f"Config file is not valid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigInvalid("Config root must be a mapping")

    return parse_config(_apply_env_overrides(raw))


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure structured JSON logging."""
    handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
