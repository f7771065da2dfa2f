"""Trade query, export and report building."""

from __future__ import annotations

import io
import json
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping

import pandas as pd

from signal_engine.stats.aggregate import aggregate
from signal_engine.types import Direction, TradeRecord, TradeResult
from signal_engine.utils.timeutil import as_utc, parse_timestamp

TRADE_COLUMNS = [
    "id",
    "channel_id",
    "channel_name",
    "symbol",
    "direction",
    "entry_time",
    "exit_time",
    "duration",
    "entry_price",
    "exit_price",
    "stop_loss",
    "take_profit",
    "size",
    "pnl",
    "pnl_pct",
    "result",
]

_REQUIRED_FIELDS = ("id", "channel_id", "symbol", "direction", "entry_time", "entry_price")
_OPTIONAL_FLOATS = ("duration", "exit_price", "stop_loss", "take_profit", "pnl", "pnl_pct")
DEFAULT_LIMIT = 100


@dataclass(slots=True, frozen=True)
class TradeQuery:
    """Filters over stored trades; ``None`` means no constraint."""

    channel_id: str | None = None
    symbol: str | None = None
    direction: Direction | None = None
    result: TradeResult | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = DEFAULT_LIMIT

    def matches(self, trade: TradeRecord) -> bool:
        if self.channel_id and trade.channel_id != self.channel_id:
            return False
        if self.symbol and trade.symbol != self.symbol.upper():
            return False
        if self.direction and trade.direction != self.direction:
            return False
        if self.result and trade.result != self.result:
            return False
        entry = as_utc(trade.entry_time)
        if self.start is not None and entry < as_utc(self.start):
            return False
        if self.end is not None and entry > as_utc(self.end):
            return False
        return True

    def filters(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "symbol": self.symbol,
            "direction": self.direction,
            "result": self.result,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
        }


def filter_trades(trades: Iterable[TradeRecord], query: TradeQuery) -> list[TradeRecord]:
    """Matching trades, newest entry first, without the limit."""
    matched = [trade for trade in trades if query.matches(trade)]
    matched.sort(key=lambda t: as_utc(t.entry_time), reverse=True)
    return matched


def query_trades(trades: Iterable[TradeRecord], query: TradeQuery) -> list[TradeRecord]:
    """Filter, sort newest-first and apply the limit."""
    matched = filter_trades(trades, query)
    if query.limit is not None and query.limit >= 0:
        return matched[: query.limit]
    return matched


def trade_records_as_rows(trades: Iterable[TradeRecord]) -> list[dict[str, object]]:
    """Convert trade records to serializable row dicts."""
    rows = []
    for trade in trades:
        row = asdict(trade)
        row["entry_time"] = as_utc(trade.entry_time).isoformat()
        row["exit_time"] = as_utc(trade.exit_time).isoformat() if trade.exit_time else None
        rows.append(row)
    return rows


def trade_from_row(row: Mapping[str, Any]) -> TradeRecord:
    """Inverse of ``trade_records_as_rows``; missing cells become ``None``."""
    values = {key: _clean(row.get(key)) for key in TRADE_COLUMNS}
    missing = [key for key in _REQUIRED_FIELDS if values[key] is None]
    if missing:
        raise ValueError(f"missing_trade_fields: {','.join(missing)}")

    return TradeRecord(
        id=str(values["id"]),
        channel_id=str(values["channel_id"]),
        channel_name=str(values["channel_name"] or values["channel_id"]),
        symbol=str(values["symbol"]),
        direction=str(values["direction"]).upper(),  # type: ignore[arg-type]
        entry_time=parse_timestamp(values["entry_time"]),
        entry_price=float(values["entry_price"]),
        size=float(values["size"]) if values["size"] is not None else 1.0,
        exit_time=parse_timestamp(values["exit_time"]) if values["exit_time"] is not None else None,
        result=str(values["result"] or "OPEN").upper(),  # type: ignore[arg-type]
        **{key: float(values[key]) if values[key] is not None else None for key in _OPTIONAL_FLOATS},
    )


def trades_to_csv(trades: Iterable[TradeRecord]) -> str:
    frame = pd.DataFrame(trade_records_as_rows(trades), columns=TRADE_COLUMNS)
    return frame.to_csv(index=False)


def trades_from_csv(text: str) -> list[TradeRecord]:
    """Read trades back from ``trades_to_csv`` output."""
    if not text.strip():
        return []
    frame = pd.read_csv(io.StringIO(text), dtype={"id": str, "channel_id": str, "channel_name": str})
    return [trade_from_row(row) for row in frame.to_dict(orient="records")]


def trades_to_json(trades: Iterable[TradeRecord], *, indent: int | None = 2) -> str:
    return json.dumps(trade_records_as_rows(trades), ensure_ascii=True, indent=indent)


def build_report(
    trades: Iterable[TradeRecord],
    query: TradeQuery,
    *,
    stats_only: bool = False,
) -> dict[str, Any]:
    """Trades, statistics and meta for a query.

    Statistics cover every matching trade, not only the limited page.
    """
    matched = filter_trades(trades, query)
    stats = aggregate(matched).as_dict()
    if stats_only:
        return {"stats": stats}

    page = query_trades(matched, query)
    return {
        "trades": trade_records_as_rows(page),
        "stats": stats,
        "meta": {
            "total": len(matched),
            "returned": len(page),
            "filters": query.filters(),
        },
    }


def _clean(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value
