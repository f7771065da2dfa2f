"""Cross-source corroboration of screenshot and text signals.

A screenshot change and a chat or caption signal that agree on symbol,
action and direction within a short window describe the same trade. The
later of the two is emitted with a boosted confidence and the earlier one
is consumed, so one agreement boosts exactly one signal.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import timedelta
from typing import Iterable

from signal_engine.types import CandidateSignal
from signal_engine.utils.logging import get_logger
from signal_engine.utils.timeutil import as_utc

DEFAULT_WINDOW = timedelta(seconds=10)

_SCREENSHOT_WEIGHT = 0.6
_TEXT_WEIGHT = 0.4
_AGREEMENT_BONUS = 0.1


def corroborated_confidence(screenshot: float, text: float) -> float:
    return round(min(1.0, screenshot * _SCREENSHOT_WEIGHT + text * _TEXT_WEIGHT + _AGREEMENT_BONUS), 4)


def signals_agree(a: CandidateSignal, b: CandidateSignal) -> bool:
    """Same symbol and action from different kinds of source; UNKNOWN direction matches either."""
    if (a.source_type == "screenshot") == (b.source_type == "screenshot"):
        return False
    if a.symbol != b.symbol or a.action != b.action or a.action == "UNKNOWN":
        return False
    return a.direction == b.direction or "UNKNOWN" in (a.direction, b.direction)


class SignalCorroborator:
    """Remembers recent signals per channel and boosts cross-source matches."""

    def __init__(self, window: timedelta = DEFAULT_WINDOW) -> None:
        self._window = window
        self._pending: dict[str, list[CandidateSignal]] = {}
        self._lock = threading.Lock()
        self._logger = get_logger("signal_engine.correlator.corroboration")

    def corroborate(self, signals: Iterable[CandidateSignal]) -> list[CandidateSignal]:
        with self._lock:
            return [self._match(signal) for signal in signals]

    def _match(self, signal: CandidateSignal) -> CandidateSignal:
        if signal.action == "UNKNOWN":
            return signal
        at = as_utc(signal.timestamp)
        pending = self._pending.setdefault(signal.source_id, [])
        # Entries older than two windows can never match again.
        pending[:] = [p for p in pending if as_utc(p.timestamp) >= at - 2 * self._window]

        for earlier in pending:
            if abs(at - as_utc(earlier.timestamp)) > self._window or not signals_agree(earlier, signal):
                continue
            pending.remove(earlier)
            screenshot, text = (signal, earlier) if signal.source_type == "screenshot" else (earlier, signal)
            confidence = corroborated_confidence(screenshot.confidence, text.confidence)
            self._logger.info(
                "signal_corroborated",
                channel_id=signal.source_id,
                symbol=signal.symbol,
                action=signal.action,
                confidence=confidence,
            )
            return replace(signal, confidence=confidence, corroborated=True)

        pending.append(signal)
        return signal
