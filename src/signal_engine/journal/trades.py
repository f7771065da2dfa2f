"""Durable trade storage as an append-only JSONL snapshot log."""

from __future__ import annotations

import json
import threading
from pathlib import Path

from signal_engine.reports.query import (
    TradeQuery,
    query_trades,
    trade_from_row,
    trade_records_as_rows,
)
from signal_engine.types import TradeRecord
from signal_engine.utils.logging import get_logger


class TradeStore:
    """Every save appends a full snapshot; the latest snapshot per id wins."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._logger = get_logger("signal_engine.journal.trades")

    @property
    def path(self) -> Path:
        return self._path

    def save(self, trade: TradeRecord) -> None:
        line = json.dumps(trade_records_as_rows([trade])[0], ensure_ascii=True)
        with self._lock, self._path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def load(self) -> list[TradeRecord]:
        """Current state of every stored trade in first-seen order."""
        if not self._path.exists():
            return []
        latest: dict[str, TradeRecord] = {}
        with self._lock:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        for lineno, raw in enumerate(lines, start=1):
            if not raw.strip():
                continue
            try:
                trade = trade_from_row(json.loads(raw))
            except (ValueError, TypeError) as exc:
                self._logger.warning("trade_line_skipped", line=lineno, error=str(exc))
                continue
            latest[trade.id] = trade
        return list(latest.values())

    def query(self, query: TradeQuery) -> list[TradeRecord]:
        return query_trades(self.load(), query)

    def open_trades(self) -> list[TradeRecord]:
        return [trade for trade in self.load() if trade.is_open]
