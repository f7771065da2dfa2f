from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from signal_engine.config import Settings
from signal_engine.correlator import SignalCorrelator, classify_result, weighted_average_scale_in
from signal_engine.parsing import parse
from signal_engine.types import CandidateSignal, SourceMeta, TradeRecord

_T0 = datetime(2026, 3, 2, 14, 30, tzinfo=UTC)


def _signal(
    action: str,
    price: float | None,
    *,
    symbol: str = "ES",
    direction: str = "LONG",
    minutes: int = 0,
    channel: str = "chan-1",
    size: float | None = None,
    confidence: float = 0.95,
) -> CandidateSignal:
    return CandidateSignal(
        source_id=channel,
        source_type="chat",
        timestamp=_T0 + timedelta(minutes=minutes),
        symbol=symbol,
        direction=direction,  # type: ignore[arg-type]
        action=action,  # type: ignore[arg-type]
        price=price,
        confidence=confidence,
        size=size,
    )


class _MemorySink:
    def __init__(self) -> None:
        self.saved: list[TradeRecord] = []

    def save(self, trade: TradeRecord) -> None:
        self.saved.append(trade)


def _ids() -> object:
    counter = iter(range(1, 1000))
    return lambda: f"t{next(counter)}"


def test_parsed_entry_and_stop_out_produce_losing_trade() -> None:
    correlator = SignalCorrelator(Settings(), id_factory=_ids())
    t1 = _T0 + timedelta(minutes=7)
    signals = parse("ES long entry at 5900", SourceMeta("C", "chat", _T0)) + parse(
        "ES stopped out at 5890", SourceMeta("C", "chat", t1)
    )

    trades = correlator.process(signals)

    assert len(trades) == 2
    opened, trade = trades
    assert opened.id == trade.id
    assert opened.result == "OPEN"
    assert opened.exit_time is None
    assert trade.symbol == "ES"
    assert trade.direction == "LONG"
    assert trade.entry_price == 5900.0
    assert trade.exit_price == 5890.0
    assert trade.pnl == -10.0 * trade.size
    assert trade.result == "LOSS"
    assert trade.exit_time == t1
    assert trade.duration == (t1 - _T0).total_seconds()
    assert correlator.open_positions() == []


def test_exit_without_open_position_is_dropped() -> None:
    sink = _MemorySink()
    correlator = SignalCorrelator(Settings(), sink=sink)
    correlator.process([_signal("ENTER", 5900)])
    before = list(sink.saved)

    trades = correlator.process([_signal("EXIT", 18000, symbol="NQ", minutes=5)])

    assert trades == []
    assert sink.saved == before
    assert correlator.drop_counts["exit_without_open"] == 1
    open_trade = correlator.open_positions()[0]
    assert open_trade.symbol == "ES"
    assert open_trade.result == "OPEN"


def test_short_trade_pnl_and_win() -> None:
    correlator = SignalCorrelator(Settings())
    trades = correlator.process(
        [
            _signal("ENTER", 100.0, direction="SHORT", size=2),
            _signal("EXIT", 90.0, direction="SHORT", minutes=3),
        ]
    )
    closed = trades[-1]
    assert closed.pnl == 20.0
    assert closed.result == "WIN"
    assert closed.pnl_pct == pytest.approx(10.0)


def test_breakeven_within_epsilon() -> None:
    correlator = SignalCorrelator(Settings(breakeven_epsilon=0.5))
    trades = correlator.process([_signal("ENTER", 5900), _signal("EXIT", 5900.25, minutes=1)])
    assert trades[-1].result == "BREAKEVEN"
    assert classify_result(0.0) == "BREAKEVEN"
    assert classify_result(-0.01) == "LOSS"


def test_breakeven_band_is_strictly_inside_epsilon() -> None:
    assert classify_result(0.25, 0.5) == "BREAKEVEN"
    assert classify_result(0.5, 0.5) == "WIN"
    assert classify_result(-0.5, 0.5) == "LOSS"
    assert classify_result(0.0, 0.0) == "BREAKEVEN"


def test_signals_are_applied_in_timestamp_order_per_channel() -> None:
    correlator = SignalCorrelator(Settings())
    trades = correlator.process([_signal("EXIT", 5910, minutes=10), _signal("ENTER", 5900)])

    assert trades[-1].result == "WIN"
    assert trades[-1].pnl == 10.0


def test_channels_are_independent() -> None:
    correlator = SignalCorrelator(Settings())
    correlator.process([_signal("ENTER", 5900, channel="a")])

    trades = correlator.process([_signal("EXIT", 5910, channel="b", minutes=1)])

    assert trades == []
    assert len(correlator.open_positions("a")) == 1
    assert correlator.open_positions("b") == []


def test_low_confidence_and_unknown_action_are_ignored() -> None:
    correlator = SignalCorrelator(Settings(min_signal_confidence=0.5))
    trades = correlator.process(
        [
            _signal("ENTER", 5900, confidence=0.3),
            _signal("UNKNOWN", 5900, minutes=1),
        ]
    )
    assert trades == []
    assert correlator.drop_counts == {"low_confidence": 1, "no_action": 1}


def test_enter_requires_direction_and_price() -> None:
    correlator = SignalCorrelator(Settings())
    assert correlator.process([_signal("ENTER", None), _signal("ENTER", 5900, direction="UNKNOWN")]) == []
    assert correlator.drop_counts["enter_without_price"] == 1
    assert correlator.drop_counts["enter_without_direction"] == 1


def test_unknown_direction_exit_is_ambiguous_with_both_sides_open() -> None:
    correlator = SignalCorrelator(Settings())
    correlator.process([_signal("ENTER", 5900), _signal("ENTER", 5905, direction="SHORT")])

    trades = correlator.process([_signal("EXIT", 5910, direction="UNKNOWN", minutes=2)])

    assert trades == []
    assert correlator.drop_counts["ambiguous_exit"] == 1
    assert len(correlator.open_positions()) == 2


def test_exit_before_entry_is_dropped() -> None:
    correlator = SignalCorrelator(Settings())
    correlator.process([_signal("ENTER", 5900, minutes=10)])
    assert correlator.process([_signal("EXIT", 5890, minutes=5)]) == []
    assert correlator.drop_counts["exit_before_entry"] == 1


def test_scale_in_ignored_by_default() -> None:
    correlator = SignalCorrelator(Settings())
    trades = correlator.process([_signal("ENTER", 5900), _signal("ENTER", 5910, minutes=1)])

    assert len(trades) == 1
    assert trades[0].entry_price == 5900.0
    assert trades[0].size == 1.0
    assert correlator.drop_counts["scale_in"] == 1


def test_weighted_average_scale_in_policy() -> None:
    sink = _MemorySink()
    correlator = SignalCorrelator(Settings(), sink=sink, scale_in_policy=weighted_average_scale_in)
    trades = correlator.process(
        [
            _signal("ENTER", 5900),
            _signal("ENTER", 5910, minutes=1, size=3),
            _signal("EXIT", 5920, minutes=2),
        ]
    )

    closed = trades[-1]
    assert closed.size == 4.0
    assert closed.entry_price == pytest.approx(5907.5)
    assert closed.pnl == pytest.approx(50.0)
    assert len(sink.saved) == 3


def test_rehydrated_open_trade_can_be_closed() -> None:
    persisted = TradeRecord(
        id="persisted-1",
        channel_id="chan-1",
        channel_name="Channel One",
        symbol="NQ",
        direction="SHORT",
        entry_time=datetime(2026, 3, 2, 14, 0),
        entry_price=18000.0,
    )
    correlator = SignalCorrelator(Settings())
    assert correlator.rehydrate([persisted, persisted]) == 1

    trades = correlator.process([_signal("EXIT", 17980, symbol="NQ", direction="UNKNOWN", minutes=1)])

    assert trades[0].id == "persisted-1"
    assert trades[0].pnl == 20.0
    assert trades[0].entry_time.tzinfo is not None


def test_open_positions_returns_copies() -> None:
    correlator = SignalCorrelator(Settings())
    correlator.process([_signal("ENTER", 5900)])

    snapshot = correlator.open_positions()[0]
    snapshot.entry_price = 1.0

    assert correlator.open_positions()[0].entry_price == 5900.0
