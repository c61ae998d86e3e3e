"""Configuration management for the basis arbitrage bot."""

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field


SPOT_BASE_URL = "https://api.binance.com"
FUTURES_BASE_URL = "https://fapi.binance.com"
SPOT_TESTNET_URL = "https://testnet.binance.vision"
FUTURES_TESTNET_URL = "https://testnet.binancefuture.com"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class VenueConfig(_Frozen):
    """Venue connection configuration."""
    client: str = "rest"  # rest | ccxt
    api_key: str = ""
    api_secret: str = ""
    testnet: bool = False
    spot_base_url: Optional[str] = None
    futures_base_url: Optional[str] = None
    recv_window_ms: int = 5000
    timeout_ms: int = 10000
    max_requests_per_minute: int = 1200
    rate_limit_safety_factor: float = 0.9
    quantity_precision: int = 6
    balance_asset: str = "USDT"
    paper_capital: float = 20.0  # capital reported when no credentials are set

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_secret)


class FeeConfig(_Frozen):
    """Taker fees in basis points."""
    spot_taker_bps: float = 10.0
    futures_taker_bps: float = 4.0


class StrategyConfig(_Frozen):
    """Primary pair spot/perp strategy configuration."""
    trading_pair: str = "BTCUSDT"
    check_interval_seconds: float = 5.0
    place_orders: bool = False  # dry-run unless explicitly enabled
    allow_reverse: bool = True
    spot_margin_enabled: bool = False
    slippage_bps_per_leg: float = 5.0
    min_spread_bps_long_carry: float = 5.0
    min_spread_bps_reverse: float = 5.0
    consider_funding: bool = True
    funding_horizon_hours: float = 8.0
    max_borrow_apr_pct: float = 25.0
    exchange_fee_percentage: float = 0.001


class ScannerConfig(_Frozen):
    """Multi-symbol spot/perp sweep configuration."""
    multi_pair_scan_enabled: bool = True
    min_quote_volume: float = 100_000.0
    max_symbols: int = 20
    min_profit_bps: float = 5.0


class TriangularConfig(_Frozen):
    """Triangular sweep configuration."""
    enabled: bool = True
    settlement_asset: str = "USDT"
    min_quote_volume: float = 100_000.0
    min_profit_bps: float = 5.0
    budget_use_dynamic: bool = True
    budget_fixed: float = 0.0
    balance_safety_fraction: float = 0.9
    min_spend: float = 10.0


class AlertConfig(_Frozen):
    """Alert configuration."""
    telegram_token: str = ""
    telegram_chat_id: str = ""
    notify_all_trades: bool = False


class StorageConfig(_Frozen):
    """Storage configuration."""
    enabled: bool = True
    db_path: str = "basisarb.sqlite"
    max_trade_history: int = 200


class LoggingConfig(_Frozen):
    """Logging configuration."""
    level: str = "INFO"
    json_logs: bool = Field(default=False, alias="json")
    log_file: Optional[str] = "logs/bot.log"


class Config(_Frozen):
    """Main configuration model."""
    venue: VenueConfig = Field(default_factory=VenueConfig)
    fees: FeeConfig = Field(default_factory=FeeConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    triangular: TriangularConfig = Field(default_factory=TriangularConfig)
    alerts: Optional[AlertConfig] = None
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def venue_context(self) -> "VenueContext":
        """Build the immutable credential/environment snapshot for this config."""
        return VenueContext.from_config(self.venue)

    def with_updates(self, section: str, **changes) -> "Config":
        """Return a new config with one section changed."""
        current = getattr(self, section)
        return self.model_copy(update={section: current.model_copy(update=changes)})

    @classmethod
    def load_from_file(cls, config_path: str = "config.yaml") -> "Config":
        """Load configuration from YAML file with environment variable substitution."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r") as f:
            config_str = f.read()

        # Substitute environment variables
        for key, value in os.environ.items():
            config_str = config_str.replace(f"${{{key}}}", value)

        config_data = yaml.safe_load(config_str) or {}
        return cls(**config_data)


@dataclass(frozen=True)
class VenueContext:
    """Credentials and environment used to build venue clients.

    A context is never mutated; a configuration change produces a new one
    with a different signature.
    """
    api_key: str
    api_secret: str
    testnet: bool
    spot_base_url: str
    futures_base_url: str

    @classmethod
    def from_config(cls, venue: VenueConfig) -> "VenueContext":
        spot_url = venue.spot_base_url or (SPOT_TESTNET_URL if venue.testnet else SPOT_BASE_URL)
        futures_url = venue.futures_base_url or (FUTURES_TESTNET_URL if venue.testnet else FUTURES_BASE_URL)
        return cls(
            api_key=venue.api_key,
            api_secret=venue.api_secret,
            testnet=venue.testnet,
            spot_base_url=spot_url.rstrip("/"),
            futures_base_url=futures_url.rstrip("/"),
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_secret)

    @property
    def signature(self) -> str:
        raw = "|".join([
            self.api_key, self.api_secret, str(self.testnet),
            self.spot_base_url, self.futures_base_url,
        ])
        return hashlib.sha256(raw.encode()).hexdigest()

    def __repr__(self) -> str:
        key = f"{self.api_key[:4]}..." if self.api_key else "none"
        return f"VenueContext(key={key}, testnet={self.testnet}, sig={self.signature[:8]})"


def get_config(config_path: str = "config.yaml") -> Config:
    """Get configuration instance, falling back to defaults when no file exists."""
    if not Path(config_path).exists():
        return Config()
    return Config.load_from_file(config_path)
