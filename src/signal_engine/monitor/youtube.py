"""YouTube clients: budgeted Data API lookups and the free RSS feed."""

from __future__ import annotations

import time
from typing import Any

import feedparser
import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from signal_engine.config import Settings
from signal_engine.monitor.errors import LookupUnavailableError, QuotaExhaustedError
from signal_engine.monitor.quota import Operation, QuotaTracker
from signal_engine.types import BroadcastInfo
from signal_engine.utils.logging import get_logger, log_api_call

_API_BASE = "https://www.googleapis.com/youtube/v3"
_FEED_URL = "https://www.youtube.com/feeds/videos.xml"
_QUOTA_REASONS = {"quotaExceeded", "dailyLimitExceeded", "rateLimitExceeded"}


class YouTubeDataClient:
    """Authoritative lookups against the YouTube Data API v3.

    Every request reserves its units before it is sent, so concurrent
    lookups cannot overspend the daily budget. Failures are never
    retried: a failed confirm degrades to "not live" instead of spending
    more budget.
    """

    def __init__(
        self,
        settings: Settings,
        quota: QuotaTracker,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = settings.youtube_api_key
        self._timeout = settings.monitor_call_timeout
        self._quota = quota
        self._client = client
        self._logger = get_logger("signal_engine.monitor.youtube")

    async def resolve_handle(self, handle: str) -> str | None:
        """channels.list?forHandle=..., 1 unit."""
        payload = await self._get(
            "channels",
            "/channels",
            {"part": "id", "forHandle": handle.strip().lstrip("@")},
        )
        items = payload.get("items") or []
        if not items or not isinstance(items[0], dict):
            return None
        channel_id = items[0].get("id")
        return channel_id if isinstance(channel_id, str) and channel_id else None

    async def lookup_broadcast(self, video_id: str) -> BroadcastInfo | None:
        """videos.list with snippet and live details, 1 unit."""
        payload = await self._get(
            "videos",
            "/videos",
            {"part": "snippet,liveStreamingDetails", "id": video_id},
        )
        items = payload.get("items") or []
        if not items or not isinstance(items[0], dict):
            return None
        return _parse_video(video_id, items[0])

    async def _get(self, operation: Operation, path: str, params: dict[str, str]) -> dict[str, Any]:
        if not self._api_key:
            raise LookupUnavailableError("missing_youtube_api_key")
        if not self._quota.try_reserve(operation):
            raise QuotaExhaustedError(f"quota_exhausted: {operation}")

        started = time.perf_counter()
        try:
            response = await self._request(path, {**params, "key": self._api_key})
        except httpx.HTTPError as exc:
            self._log(operation, started, success=False, reason="transport_error")
            raise LookupUnavailableError(str(exc)) from exc

        if response.status_code == 403 and _is_quota_error(response):
            self._log(operation, started, success=False, reason="quota_exceeded")
            raise QuotaExhaustedError(f"quota_exceeded: {operation}")
        if response.is_error:
            self._log(operation, started, success=False, status=response.status_code)
            raise LookupUnavailableError(f"youtube_http_{response.status_code}: {operation}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise LookupUnavailableError(f"invalid_json: {operation}") from exc
        self._log(operation, started, success=True)
        return payload if isinstance(payload, dict) else {}

    async def _request(self, path: str, params: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(f"{_API_BASE}{path}", params=params, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.get(f"{_API_BASE}{path}", params=params)

    def _log(self, operation: str, started: float, *, success: bool, **kwargs: Any) -> None:
        log_api_call(
            self._logger,
            operation=operation,
            success=success,
            latency_ms=(time.perf_counter() - started) * 1000,
            **kwargs,
        )


class _TransientFeedError(LookupUnavailableError):
    """Transport-level feed failure worth one more attempt."""


class YouTubeFeedClient:
    """Channel uploads RSS feed; free, unauthenticated, no live status."""

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.AsyncClient | None = None,
        max_items: int = 5,
    ) -> None:
        self._timeout = settings.monitor_call_timeout
        self._client = client
        self._max_items = max_items

    async def recent_video_ids(self, channel_id: str) -> list[str]:
        """Most recent video ids first; empty when the feed has none."""
        text = await self._fetch(channel_id)
        if not text:
            return []
        parsed = feedparser.parse(text)
        ids: list[str] = []
        for entry in parsed.entries:
            video_id = entry.get("yt_videoid") or _id_from_entry_id(entry.get("id", ""))
            if video_id and video_id not in ids:
                ids.append(video_id)
            if len(ids) >= self._max_items:
                break
        return ids

    @retry(
        retry=retry_if_exception_type(_TransientFeedError),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        stop=stop_after_attempt(2),
        reraise=True,
    )
    async def _fetch(self, channel_id: str) -> str:
        params = {"channel_id": channel_id}
        try:
            if self._client is not None:
                response = await self._client.get(_FEED_URL, params=params, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(_FEED_URL, params=params)
        except httpx.TransportError as exc:
            raise _TransientFeedError(str(exc)) from exc
        if response.status_code == 404:
            return ""
        if response.is_error:
            raise LookupUnavailableError(f"feed_http_{response.status_code}: {channel_id}")
        return response.text


def _parse_video(video_id: str, item: dict[str, Any]) -> BroadcastInfo:
    snippet = item.get("snippet") or {}
    details = item.get("liveStreamingDetails") or {}
    thumbnails = snippet.get("thumbnails") or {}
    thumb = (thumbnails.get("high") or thumbnails.get("medium") or {}).get("url")
    return BroadcastInfo(
        video_id=str(item.get("id") or video_id),
        is_live=snippet.get("liveBroadcastContent") == "live",
        title=snippet.get("title"),
        thumbnail_url=thumb,
        viewer_count=_to_int(details.get("concurrentViewers")),
        channel_title=snippet.get("channelTitle"),
    )


def _is_quota_error(response: httpx.Response) -> bool:
    try:
        payload = response.json()
    except ValueError:
        return False
    if not isinstance(payload, dict) or not isinstance(payload.get("error"), dict):
        return False
    errors = payload["error"].get("errors") or []
    return any(isinstance(err, dict) and err.get("reason") in _QUOTA_REASONS for err in errors)


def _id_from_entry_id(entry_id: str) -> str | None:
    prefix = "yt:video:"
    return entry_id[len(prefix):] if entry_id.startswith(prefix) else None


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
