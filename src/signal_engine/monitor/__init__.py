"""Channel live-status monitoring."""

from signal_engine.monitor.cache import ResolutionCache
from signal_engine.monitor.errors import LookupUnavailableError, MonitorError, QuotaExhaustedError
from signal_engine.monitor.live import ChannelMonitor, LiveLookupService, SyndicationFeed
from signal_engine.monitor.quota import (
    PollingPlan,
    QuotaStatus,
    QuotaTracker,
    is_market_hours,
    next_market_open,
)
from signal_engine.monitor.youtube import YouTubeDataClient, YouTubeFeedClient

__all__ = [
    "ChannelMonitor",
    "LiveLookupService",
    "LookupUnavailableError",
    "MonitorError",
    "PollingPlan",
    "QuotaExhaustedError",
    "QuotaStatus",
    "QuotaTracker",
    "ResolutionCache",
    "SyndicationFeed",
    "YouTubeDataClient",
    "YouTubeFeedClient",
    "is_market_hours",
    "next_market_open",
]
