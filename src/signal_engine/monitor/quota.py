"""YouTube Data API quota accounting and polling cadence."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Literal
from zoneinfo import ZoneInfo

from signal_engine.utils.logging import get_logger

Operation = Literal["search", "videos", "channels", "liveChat", "playlistItems"]
Strategy = Literal["aggressive", "normal", "conservative", "minimal"]

API_COSTS: dict[str, int] = {
    "search": 100,
    "videos": 1,
    "channels": 1,
    "liveChat": 5,
    "playlistItems": 1,
}

# Quota resets at midnight Pacific; market hours are Eastern.
_QUOTA_TZ = ZoneInfo("America/Los_Angeles")
_MARKET_TZ = ZoneInfo("America/New_York")
MARKET_OPEN_HOUR = 9
MARKET_CLOSE_HOUR = 16

# (remaining percent above, strategy, minimum poll interval in minutes)
_STRATEGY_TIERS: tuple[tuple[float, Strategy, int], ...] = (
    (75.0, "aggressive", 1),
    (50.0, "normal", 2),
    (25.0, "conservative", 5),
    (-math.inf, "minimal", 15),
)


@dataclass(slots=True)
class QuotaStatus:
    used: int
    remaining: int
    percent_used: float
    reset_at: datetime


@dataclass(slots=True)
class PollingPlan:
    """Suggested cadence for the remaining budget."""

    total_daily: int
    used: int
    remaining: int
    checks_remaining: int
    poll_interval_minutes: float
    strategy: Strategy


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaTracker:
    """Daily unit counter for the authoritative lookup API."""

    def __init__(
        self,
        daily_limit: int = 10_000,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._daily_limit = daily_limit
        self._clock = clock
        self._lock = threading.Lock()
        self._used = 0
        self._day = self._quota_day()
        self._logger = get_logger("signal_engine.monitor.quota")

    @property
    def daily_limit(self) -> int:
        return self._daily_limit

    @property
    def used(self) -> int:
        with self._lock:
            self._reset_if_new_day()
            return self._used

    @property
    def remaining(self) -> int:
        return max(self._daily_limit - self.used, 0)

    def cost(self, operation: Operation, count: int = 1) -> int:
        return API_COSTS[operation] * count

    def has_quota_for(self, operation: Operation, count: int = 1) -> bool:
        with self._lock:
            self._reset_if_new_day()
            return self._used + self.cost(operation, count) <= self._daily_limit

    def record(self, operation: Operation, count: int = 1) -> int:
        """Charge an operation; returns units used today."""
        units = self.cost(operation, count)
        with self._lock:
            self._reset_if_new_day()
            self._used += units
            used = self._used
        self._logger.debug("quota_used", operation=operation, units=units, used=used, limit=self._daily_limit)
        return used

    def try_reserve(self, operation: Operation, count: int = 1) -> bool:
        """Check and charge in one step; False leaves the counter untouched."""
        units = self.cost(operation, count)
        with self._lock:
            self._reset_if_new_day()
            if self._used + units > self._daily_limit:
                return False
            self._used += units
            used = self._used
        self._logger.debug("quota_reserved", operation=operation, units=units, used=used, limit=self._daily_limit)
        return True

    def status(self) -> QuotaStatus:
        used = self.used
        return QuotaStatus(
            used=used,
            remaining=max(self._daily_limit - used, 0),
            percent_used=used / self._daily_limit * 100.0,
            reset_at=self.next_reset(),
        )

    def next_reset(self) -> datetime:
        """Next midnight Pacific, in UTC."""
        tomorrow = self._quota_day() + timedelta(days=1)
        return datetime.combine(tomorrow, time(0), tzinfo=_QUOTA_TZ).astimezone(timezone.utc)

    def polling_strategy(self, channels: int, *, market_hours_only: bool = True) -> PollingPlan:
        """Spread the remaining budget evenly over the remaining window.

        One poll costs one ``videos`` unit per channel.
        """
        used = self.used
        remaining = self._daily_limit - used
        per_poll = max(channels, 1) * API_COSTS["videos"]
        checks = remaining // per_poll
        minutes = _window_minutes_remaining(self._clock(), market_hours_only)

        if checks <= 0 or minutes <= 0:
            interval, strategy = math.inf, "minimal"
        else:
            interval = math.ceil(minutes / checks)
            percent_remaining = remaining / self._daily_limit * 100.0
            for threshold, strategy, floor in _STRATEGY_TIERS:
                if percent_remaining > threshold:
                    interval = max(floor, interval)
                    break

        return PollingPlan(
            total_daily=self._daily_limit,
            used=used,
            remaining=remaining,
            checks_remaining=max(checks, 0),
            poll_interval_minutes=interval,
            strategy=strategy,
        )

    def is_market_hours(self) -> bool:
        return is_market_hours(self._clock())

    def _quota_day(self) -> date:
        return self._clock().astimezone(_QUOTA_TZ).date()

    def _reset_if_new_day(self) -> None:
        today = self._quota_day()
        if today != self._day:
            self._day = today
            self._used = 0
            self._logger.info("quota_reset", day=today.isoformat())


def is_market_hours(now: datetime) -> bool:
    """Mon-Fri 09:00-16:00 America/New_York."""
    local = now.astimezone(_MARKET_TZ)
    return local.weekday() < 5 and MARKET_OPEN_HOUR <= local.hour < MARKET_CLOSE_HOUR


def next_market_open(now: datetime) -> datetime:
    """Today's open while the session has not closed, else the next weekday's."""
    local = now.astimezone(_MARKET_TZ)
    day = local.date()
    if local.weekday() >= 5 or local.hour >= MARKET_CLOSE_HOUR:
        day += timedelta(days=1)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return datetime.combine(day, time(MARKET_OPEN_HOUR), tzinfo=_MARKET_TZ)


def _window_minutes_remaining(now: datetime, market_hours_only: bool) -> int:
    local = now.astimezone(_MARKET_TZ)
    minute_of_day = local.hour * 60 + local.minute
    if not market_hours_only:
        return 24 * 60 - minute_of_day
    if local.weekday() >= 5 or local.hour >= MARKET_CLOSE_HOUR:
        return 0
    return MARKET_CLOSE_HOUR * 60 - max(minute_of_day, MARKET_OPEN_HOUR * 60)
