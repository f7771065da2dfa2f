"""Channel live-status monitor.

Two tiers per channel: a free feed read finds the most recent video, and
only then one budgeted lookup confirms whether it is a live broadcast.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol, Sequence, TypeVar

from signal_engine.config import ChannelSpec, Settings
from signal_engine.monitor.cache import ResolutionCache
from signal_engine.monitor.errors import LookupUnavailableError, QuotaExhaustedError
from signal_engine.monitor.quota import QuotaTracker
from signal_engine.monitor.youtube import YouTubeDataClient, YouTubeFeedClient
from signal_engine.types import BroadcastInfo, ChannelLiveState, LiveCheckResult, LiveError, MonitorRefresh
from signal_engine.utils.logging import get_logger

T = TypeVar("T")


class LiveLookupService(Protocol):
    """Authoritative, budgeted lookups."""

    async def resolve_handle(self, handle: str) -> str | None:
        ...

    async def lookup_broadcast(self, video_id: str) -> BroadcastInfo | None:
        ...


class SyndicationFeed(Protocol):
    """Free feed of a channel's recent uploads."""

    async def recent_video_ids(self, channel_id: str) -> list[str]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChannelMonitor:
    """Owns the resolution cache and the per-channel liveness view."""

    def __init__(
        self,
        lookup: LiveLookupService,
        feed: SyndicationFeed,
        *,
        cache: ResolutionCache | None = None,
        quota: QuotaTracker | None = None,
        call_timeout: float = 10.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._lookup = lookup
        self._feed = feed
        self._cache = cache if cache is not None else ResolutionCache()
        self._quota = quota if quota is not None else QuotaTracker()
        self._timeout = call_timeout
        self._clock = clock
        self._states: dict[str, ChannelLiveState] = {}
        self._logger = get_logger("signal_engine.monitor.live")

    @classmethod
    def from_settings(cls, settings: Settings, *, cache: ResolutionCache | None = None) -> ChannelMonitor:
        quota = QuotaTracker(settings.youtube_daily_quota)
        return cls(
            YouTubeDataClient(settings, quota),
            YouTubeFeedClient(settings),
            cache=cache,
            quota=quota,
            call_timeout=settings.monitor_call_timeout,
        )

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    @property
    def quota(self) -> QuotaTracker:
        return self._quota

    def states(self) -> dict[str, ChannelLiveState]:
        """Copies of the latest liveness per channel id."""
        return {key: replace(state) for key, state in self._states.items()}

    async def refresh(self, channels: Sequence[ChannelSpec]) -> MonitorRefresh:
        """Check every channel concurrently; live first, then by viewers."""
        results = await asyncio.gather(*(self.check_live(channel) for channel in channels))
        for channel, result in zip(channels, results):
            self._record_state(channel, result)

        ordered = sorted(results, key=lambda r: (not r.is_live, -r.viewer_count))
        status = self._quota.status()
        refresh = MonitorRefresh(
            channels=ordered,
            live_count=sum(1 for r in ordered if r.is_live),
            quota_used=status.used,
            quota_remaining=status.remaining,
            polled_at=self._clock(),
        )
        self._logger.info(
            "monitor_refreshed",
            channels=len(ordered),
            live=refresh.live_count,
            quota_used=refresh.quota_used,
        )
        return refresh

    async def check_live(self, channel: ChannelSpec) -> LiveCheckResult:
        """Never raises; failures become a not-live result with ``error`` set."""
        try:
            return await self._check(channel)
        except QuotaExhaustedError as exc:
            return self._failed(channel, "quota_exhausted", exc)
        except (LookupUnavailableError, asyncio.TimeoutError) as exc:
            return self._failed(channel, "unavailable", exc)
        except Exception as exc:  # noqa: BLE001 - one channel must not abort the batch
            return self._failed(channel, "unavailable", exc)

    async def _check(self, channel: ChannelSpec) -> LiveCheckResult:
        channel_id = await self._resolve(channel)
        if channel_id is None:
            return self._not_live(channel, error="unresolved")

        video_ids = await self._bounded(self._feed.recent_video_ids(channel_id))
        if not video_ids:
            return self._not_live(channel)

        info = await self._bounded(self._lookup.lookup_broadcast(video_ids[0]))
        if info is None or not info.is_live:
            return self._not_live(channel)
        return LiveCheckResult(
            channel_id=channel.id,
            name=channel.name,
            handle=channel.handle,
            is_live=True,
            checked_at=self._clock(),
            stream_id=info.video_id,
            title=info.title,
            thumbnail_url=info.thumbnail_url,
            viewer_count=info.viewer_count,
        )

    async def _resolve(self, channel: ChannelSpec) -> str | None:
        if channel.channel_id:
            return channel.channel_id
        cached = self._cache.get(channel.handle)
        if cached is not None:
            return cached
        resolved = await self._bounded(self._lookup.resolve_handle(channel.handle))
        if resolved:
            self._cache.put(channel.handle, resolved)
        return resolved

    async def _bounded(self, call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, timeout=self._timeout)

    def _not_live(self, channel: ChannelSpec, error: LiveError | None = None) -> LiveCheckResult:
        return LiveCheckResult(
            channel_id=channel.id,
            name=channel.name,
            handle=channel.handle,
            is_live=False,
            checked_at=self._clock(),
            error=error,
        )

    def _failed(self, channel: ChannelSpec, error: LiveError, exc: BaseException) -> LiveCheckResult:
        self._logger.warning(
            "live_check_failed",
            channel_id=channel.id,
            error=error,
            reason=str(exc) or type(exc).__name__,
        )
        return self._not_live(channel, error=error)

    def _record_state(self, channel: ChannelSpec, result: LiveCheckResult) -> None:
        previous = self._states.get(channel.id)
        self._states[channel.id] = ChannelLiveState(
            channel_id=channel.id,
            handle=channel.handle,
            resolved_id=channel.channel_id or self._cache.get(channel.handle),
            is_live=result.is_live,
            last_stream_id=result.stream_id or (previous.last_stream_id if previous else None),
            viewer_count=result.viewer_count,
            last_checked_at=result.checked_at,
        )
