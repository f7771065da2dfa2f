"""Settings loading from environment variables and the .env file."""

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

Platform = Literal["tradovate", "ninjatrader", "tradingview", "thinkorswim", "unknown"]


class LogFormat(str, Enum):
    """Log output format."""

    JSON = "json"
    CONSOLE = "console"


class ChannelSpec(BaseModel):
    """A monitored streaming channel."""

    id: str
    name: str
    handle: str
    channel_id: str | None = None
    platform: Platform = "unknown"


_DEFAULT_CHANNELS = [
    ChannelSpec(
        id="patrick-wieland", name="Patrick Wieland", handle="@PatrickWieland", platform="tradovate"
    ),
    ChannelSpec(
        id="lu-smooth-trader", name="Lu Smooth Trader", handle="@LuSmoothTrader", platform="tradovate"
    ),
    ChannelSpec(id="pasha-irl", name="Pasha IRL", handle="@pashairl", platform="tradovate"),
    ChannelSpec(
        id="roensch-capital", name="Roensch Capital", handle="@RoenschCapital", platform="tradingview"
    ),
    ChannelSpec(id="ninjatrader", name="NinjaTrader", handle="@NinjaTrader", platform="ninjatrader"),
]


class Settings(BaseSettings):
    """Engine settings.

    Loaded from environment variables and the .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== Text parser ====================
    parser_window: int = Field(
        default=6,
        ge=1,
        le=30,
        description="Tokens searched on each side of a symbol hit",
    )
    extra_symbols: list[str] = Field(
        default_factory=list,
        description="Additional instrument symbols recognised by the parsers",
    )

    # ==================== OCR extractor ====================
    ocr_confidence_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum OCR engine confidence (0-1) before text is parsed",
    )

    # ==================== Correlator ====================
    min_signal_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Signals below this confidence are not correlated",
    )
    breakeven_epsilon: float = Field(
        default=1e-9,
        ge=0.0,
        description="Absolute pnl band classified as BREAKEVEN",
    )
    corroboration_window_sec: float = Field(
        default=10.0,
        ge=0.0,
        le=300.0,
        description="Screenshot and text signals this close together corroborate each other",
    )

    # ==================== Live monitor ====================
    youtube_api_key: str = Field(default="", description="YouTube Data API key")
    youtube_daily_quota: int = Field(
        default=10_000,
        ge=1,
        description="Daily YouTube Data API unit budget",
    )
    monitor_call_timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Per-request timeout for monitor fetches (seconds)",
    )
    monitored_channels: list[ChannelSpec] = Field(
        default_factory=lambda: list(_DEFAULT_CHANNELS),
        description="Channels polled by the live monitor",
    )

    # ==================== Logging ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="Log output format",
    )

    # ==================== Storage ====================
    data_dir: Path = Field(
        default=Path("data"),
        description="Root directory for journals and trade records",
    )

    @field_validator("data_dir", mode="before")
    @classmethod
    def parse_data_dir(cls, v: str | Path) -> Path:
        """Convert strings to Path objects."""
        return Path(v) if isinstance(v, str) else v

    @field_validator("extra_symbols", mode="after")
    @classmethod
    def normalize_symbols(cls, v: list[str]) -> list[str]:
        """Upper-case and strip configured symbols."""
        return [s.strip().upper() for s in v if s.strip()]

    @property
    def journal_dir(self) -> Path:
        """Directory for daily event journals."""
        return self.data_dir / "journal"

    @property
    def trades_file(self) -> Path:
        """JSONL file holding trade record snapshots."""
        return self.data_dir / "trades.jsonl"

    def ensure_directories(self) -> None:
        """Create the storage directories."""
        self.journal_dir.mkdir(parents=True, exist_ok=True)

    def validate_for_monitor(self) -> list[str]:
        """Return missing settings required by the live monitor."""
        missing = []
        if not self.youtube_api_key:
            missing.append("YOUTUBE_API_KEY")
        return missing


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from the environment."""
    global _settings
    _settings = Settings()
    return _settings
