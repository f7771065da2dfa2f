"""Shared domain types for signal extraction, correlation and monitoring."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from signal_engine.config import Platform

SourceType = Literal["chat", "caption", "screenshot"]
Direction = Literal["LONG", "SHORT"]
SignalDirection = Literal["LONG", "SHORT", "UNKNOWN"]
SignalAction = Literal["ENTER", "EXIT", "UNKNOWN"]
TradeResult = Literal["WIN", "LOSS", "BREAKEVEN", "OPEN"]
LiveError = Literal["unavailable", "quota_exhausted", "unresolved"]
# "unknown" means the source did not report a role (captions, imported logs).
AuthorRole = Literal["owner", "moderator", "viewer", "unknown"]


@dataclass(slots=True, frozen=True)
class SourceMeta:
    """Where a piece of text came from."""

    source_id: str
    source_type: SourceType
    timestamp: datetime
    source_name: str | None = None


@dataclass(slots=True)
class CandidateSignal:
    """An unconfirmed trade intent extracted from text or a screenshot."""

    source_id: str
    source_type: SourceType
    timestamp: datetime
    symbol: str
    direction: SignalDirection = "UNKNOWN"
    action: SignalAction = "UNKNOWN"
    price: float | None = None
    confidence: float = 0.0
    source_name: str | None = None
    size: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    raw_text: str = ""
    corroborated: bool = False


@dataclass(slots=True)
class DetectedPosition:
    """A position visible on one platform screenshot."""

    symbol: str
    direction: Direction
    size: float
    entry_price: float
    current_price: float
    unrealized_pnl: float | None = None


@dataclass(slots=True, frozen=True)
class ColorHint:
    """Green/red pixel balance of a screenshot."""

    green_ratio: float
    red_ratio: float
    has_green: bool
    has_red: bool
    dominant: Literal["green", "red", "none"]
    direction: SignalDirection


@dataclass(slots=True)
class PlatformAnalysis:
    """Structured result of OCR extraction for one image."""

    platform: Platform
    confidence: float
    positions: list[DetectedPosition] = field(default_factory=list)
    account_balance: float | None = None
    daily_pnl: float | None = None
    raw_text: str = ""
    error: str | None = None
    color_hint: ColorHint | None = None


@dataclass(slots=True)
class TradeRecord:
    """A lifecycle-tracked trade.

    ``result`` is OPEN exactly while ``exit_time`` is unset.
    """

    id: str
    channel_id: str
    channel_name: str
    symbol: str
    direction: Direction
    entry_time: datetime
    entry_price: float
    size: float = 1.0
    exit_time: datetime | None = None
    duration: float | None = None
    exit_price: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    pnl: float | None = None
    pnl_pct: float | None = None
    result: TradeResult = "OPEN"

    @property
    def is_open(self) -> bool:
        return self.result == "OPEN"


@dataclass(slots=True)
class ChannelLiveState:
    """Latest known liveness of one monitored channel."""

    channel_id: str
    handle: str
    resolved_id: str | None = None
    is_live: bool = False
    last_stream_id: str | None = None
    viewer_count: int = 0
    last_checked_at: datetime | None = None


@dataclass(slots=True)
class BroadcastInfo:
    """Authoritative broadcast details for one video."""

    video_id: str
    is_live: bool
    title: str | None = None
    thumbnail_url: str | None = None
    viewer_count: int = 0
    channel_title: str | None = None


@dataclass(slots=True)
class LiveCheckResult:
    """Outcome of one channel live check."""

    channel_id: str
    name: str
    handle: str
    is_live: bool
    checked_at: datetime
    stream_id: str | None = None
    title: str | None = None
    thumbnail_url: str | None = None
    viewer_count: int = 0
    error: LiveError | None = None


@dataclass(slots=True)
class MonitorRefresh:
    """Sorted live-status list for one monitor refresh."""

    channels: list[LiveCheckResult]
    live_count: int
    quota_used: int
    quota_remaining: int
    polled_at: datetime


@dataclass(slots=True)
class TextMessage:
    """One chat message or caption segment to ingest."""

    text: str
    timestamp: datetime
    source_id: str
    source_type: SourceType = "chat"
    source_name: str | None = None
    author_role: AuthorRole = "unknown"


@dataclass(slots=True)
class IngestResult:
    """Outcome of one ingestion run."""

    status: str
    messages: int = 0
    signals: int = 0
    trades_opened: int = 0
    trades_closed: int = 0
    dropped: dict[str, int] = field(default_factory=dict)
    corroborated: int = 0
    errors: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
