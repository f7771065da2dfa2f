from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest

from signal_engine.journal import TradeStore
from signal_engine.reports import TradeQuery, build_report, query_trades, trades_from_csv, trades_to_csv
from signal_engine.reports.query import trades_to_json
from signal_engine.stats import aggregate
from signal_engine.types import TradeRecord

_T0 = datetime(2026, 3, 2, 14, 30, tzinfo=UTC)


def _trade(
    trade_id: str,
    pnl: float | None,
    result: str,
    *,
    symbol: str = "ES",
    channel: str = "chan-a",
    direction: str = "LONG",
    hours: int = 0,
    duration: float | None = 600.0,
) -> TradeRecord:
    entry = _T0 + timedelta(hours=hours)
    closed = result != "OPEN"
    return TradeRecord(
        id=trade_id,
        channel_id=channel,
        channel_name=channel.replace("-", " ").title(),
        symbol=symbol,
        direction=direction,  # type: ignore[arg-type]
        entry_time=entry,
        entry_price=5900.0,
        exit_time=entry + timedelta(seconds=duration or 0) if closed else None,
        duration=duration if closed else None,
        exit_price=5900.0 + (pnl or 0.0) if closed else None,
        pnl=pnl if closed else None,
        result=result,  # type: ignore[arg-type]
    )


def _sample() -> list[TradeRecord]:
    return [
        _trade("1", 10.0, "WIN", hours=0),
        _trade("2", -4.0, "LOSS", hours=1),
        _trade("3", 6.0, "WIN", symbol="NQ", channel="chan-b", hours=2),
        _trade("4", 0.0, "BREAKEVEN", symbol="NQ", hours=3),
        _trade("5", None, "OPEN", channel="chan-b", hours=4),
    ]


def test_aggregate_empty_is_all_zero() -> None:
    stats = aggregate([])
    assert stats.total_trades == 0
    assert stats.win_rate == 0.0
    assert stats.profit_factor == 0.0
    assert stats.avg_duration == 0.0
    assert stats.by_symbol == {}


def test_aggregate_counts_and_rates() -> None:
    stats = aggregate(_sample())

    assert stats.total_trades == 5
    assert stats.open_trades == 1
    assert stats.closed_trades == 4
    assert (stats.wins, stats.losses, stats.breakeven) == (2, 1, 1)
    assert stats.win_rate == 0.5
    assert stats.total_pnl == 12.0
    assert stats.avg_pnl == 3.0
    assert stats.avg_win == 8.0
    assert stats.avg_loss == 4.0
    assert stats.profit_factor == 4.0
    assert stats.largest_win == 10.0
    assert stats.largest_loss == -4.0
    assert stats.avg_duration == 600.0


def test_aggregate_groups_compute_their_own_win_rate() -> None:
    stats = aggregate(_sample())

    es = stats.by_symbol["ES"]
    nq = stats.by_symbol["NQ"]
    assert (es.trades, es.pnl, es.win_rate) == (2, 6.0, 0.5)
    assert (nq.trades, nq.pnl, nq.win_rate) == (2, 6.0, 0.5)

    chan_b = stats.by_channel["chan-b"]
    assert chan_b.name == "Chan B"
    assert chan_b.trades == 1
    assert chan_b.win_rate == 1.0
    assert stats.by_channel["chan-a"].win_rate == pytest.approx(1 / 3)


def test_profit_factor_without_losses_equals_gross_wins() -> None:
    stats = aggregate([_trade("1", 10.0, "WIN"), _trade("2", 5.0, "WIN")])
    assert stats.profit_factor == 15.0
    assert stats.largest_loss == 0.0


def test_as_dict_is_json_serializable() -> None:
    payload = json.dumps(aggregate(_sample()).as_dict())
    assert '"by_channel"' in payload


def test_query_filters_sort_and_limit() -> None:
    trades = _sample()

    newest_first = query_trades(trades, TradeQuery())
    assert [t.id for t in newest_first] == ["5", "4", "3", "2", "1"]

    assert [t.id for t in query_trades(trades, TradeQuery(symbol="nq"))] == ["4", "3"]
    assert [t.id for t in query_trades(trades, TradeQuery(result="WIN", limit=1))] == ["3"]
    assert [t.id for t in query_trades(trades, TradeQuery(channel_id="chan-b"))] == ["5", "3"]

    window = TradeQuery(start=_T0 + timedelta(hours=1), end=_T0 + timedelta(hours=2))
    assert [t.id for t in query_trades(trades, window)] == ["3", "2"]


def test_build_report_stats_cover_all_matches() -> None:
    report = build_report(_sample(), TradeQuery(limit=2))

    assert len(report["trades"]) == 2
    assert report["meta"] == {
        "total": 5,
        "returned": 2,
        "filters": {
            "channel_id": None,
            "symbol": None,
            "direction": None,
            "result": None,
            "start": None,
            "end": None,
        },
    }
    assert report["stats"]["total_trades"] == 5
    assert build_report(_sample(), TradeQuery(), stats_only=True).keys() == {"stats"}


def test_csv_round_trip_preserves_key_fields() -> None:
    trades = _sample()
    restored = trades_from_csv(trades_to_csv(trades))

    assert [(t.symbol, t.direction, t.entry_price, t.result) for t in restored] == [
        (t.symbol, t.direction, t.entry_price, t.result) for t in trades
    ]
    assert restored[-1].exit_time is None
    assert restored[0].entry_time == trades[0].entry_time


def test_csv_header_and_json_export() -> None:
    csv_text = trades_to_csv([])
    assert csv_text.splitlines()[0].startswith("id,channel_id,channel_name,symbol,direction")
    assert trades_from_csv("") == []
    assert json.loads(trades_to_json(_sample()[:1]))[0]["entry_time"] == "2026-03-02T14:30:00+00:00"


def test_trade_store_latest_snapshot_wins(tmp_path: object) -> None:
    store = TradeStore(tmp_path / "trades.jsonl")
    opened = _trade("x1", None, "OPEN")
    store.save(opened)
    assert [t.id for t in store.open_trades()] == ["x1"]

    closed = _trade("x1", 12.0, "WIN")
    store.save(closed)
    store.save(_trade("x2", None, "OPEN", symbol="NQ", hours=1))

    loaded = store.load()
    assert [(t.id, t.result) for t in loaded] == [("x1", "WIN"), ("x2", "OPEN")]
    assert [t.id for t in store.open_trades()] == ["x2"]
    assert [t.id for t in store.query(TradeQuery(symbol="ES"))] == ["x1"]


def test_trade_store_skips_corrupt_lines(tmp_path: object) -> None:
    path = tmp_path / "trades.jsonl"
    store = TradeStore(path)
    store.save(_trade("ok", 1.0, "WIN"))
    with path.open("a", encoding="utf-8") as fh:
        fh.write("{not json\n")
        fh.write('{"id": "missing-fields"}\n')

    assert [t.id for t in store.load()] == ["ok"]
    assert TradeStore(tmp_path / "absent.jsonl").load() == []
