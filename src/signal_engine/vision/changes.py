"""Turn successive screenshot position snapshots into candidate signals."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from signal_engine.types import CandidateSignal, DetectedPosition, SignalAction, SourceMeta

SCREENSHOT_CONFIDENCE = 0.9


@dataclass(slots=True)
class PositionChanges:
    """Difference between two position snapshots."""

    opened: list[DetectedPosition] = field(default_factory=list)
    closed: list[DetectedPosition] = field(default_factory=list)
    modified: list[tuple[DetectedPosition, DetectedPosition]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.opened or self.closed or self.modified)


def detect_position_changes(
    previous: Sequence[DetectedPosition],
    current: Sequence[DetectedPosition],
) -> PositionChanges:
    """Compare snapshots keyed by (symbol, direction)."""
    prev_by_key = {(p.symbol, p.direction): p for p in previous}
    curr_by_key = {(p.symbol, p.direction): p for p in current}
    changes = PositionChanges()

    for key, position in curr_by_key.items():
        before = prev_by_key.get(key)
        if before is None:
            changes.opened.append(position)
        elif before.size != position.size or before.entry_price != position.entry_price:
            changes.modified.append((before, position))

    for key, position in prev_by_key.items():
        if key not in curr_by_key:
            changes.closed.append(position)
    return changes


def positions_to_signals(
    changes: PositionChanges,
    meta: SourceMeta,
    confidence: float = SCREENSHOT_CONFIDENCE,
) -> list[CandidateSignal]:
    """Convert a snapshot diff into ENTER/EXIT signals.

    Closed positions exit at the last current price seen for them; a size
    increase is reported as an ENTER so the correlator's scale-in policy
    decides what to do with it.
    """
    signals: list[CandidateSignal] = []
    for position in changes.opened:
        signals.append(_signal(meta, position, "ENTER", position.entry_price, position.size, confidence))
    for before, after in changes.modified:
        if after.size > before.size:
            signals.append(
                _signal(meta, after, "ENTER", after.current_price, after.size - before.size, confidence)
            )
    for position in changes.closed:
        signals.append(_signal(meta, position, "EXIT", position.current_price, position.size, confidence))
    return signals


def _signal(
    meta: SourceMeta,
    position: DetectedPosition,
    action: SignalAction,
    price: float,
    size: float,
    confidence: float,
) -> CandidateSignal:
    return CandidateSignal(
        source_id=meta.source_id,
        source_type="screenshot",
        timestamp=meta.timestamp,
        symbol=position.symbol,
        direction=position.direction,
        action=action,
        price=price,
        confidence=confidence,
        source_name=meta.source_name,
        size=size,
    )
