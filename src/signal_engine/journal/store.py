"""JSONL journal of ingestion and monitoring events."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

_EVENT_TYPES = frozenset(
    {
        "signal",
        "trade_opened",
        "trade_closed",
        "attribution_drop",
        "ocr_analysis",
        "monitor_refresh",
        "error",
    }
)


class JournalStore:
    """Append-only event log, one file per UTC day."""

    def __init__(self, journal_dir: Path) -> None:
        self._dir = journal_dir
        self._dir.mkdir(parents=True, exist_ok=True)

    def append(self, event_type: str, payload: dict[str, Any]) -> None:
        if event_type not in _EVENT_TYPES:
            raise ValueError(f"unsupported_event_type: {event_type}")
        now = datetime.now(timezone.utc)
        line = json.dumps(
            {"timestamp": now.isoformat(), "event_type": event_type, "payload": payload},
            ensure_ascii=True,
            default=_json_default,
        )
        with self._day_file(now.date()).open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def load_recent(self, limit: int, event_type: str | None = None) -> list[dict[str, Any]]:
        """Most recent events in chronological order, optionally of one type."""
        if limit <= 0:
            return []
        picked: list[dict[str, Any]] = []
        for path in sorted(self._dir.glob("*.jsonl"), reverse=True):
            for raw in reversed(path.read_text(encoding="utf-8").splitlines()):
                if not raw.strip():
                    continue
                record = json.loads(raw)
                if event_type is not None and record.get("event_type") != event_type:
                    continue
                picked.append(record)
                if len(picked) >= limit:
                    return picked[::-1]
        return picked[::-1]

    def _day_file(self, day: date) -> Path:
        return self._dir / f"{day.isoformat()}.jsonl"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"not_json_serializable: {type(value).__name__}")
