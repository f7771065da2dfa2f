from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from signal_engine.parsing import (
    apply_author_trust,
    build_vocabulary,
    normalize_author_role,
    parse,
    parse_segments,
)
from signal_engine.types import SourceMeta

_T0 = datetime(2026, 3, 2, 14, 30, tzinfo=UTC)


def _meta(source_id: str = "chan-1") -> SourceMeta:
    return SourceMeta(source_id=source_id, source_type="chat", timestamp=_T0, source_name="Channel One")


def test_parse_full_entry_signal() -> None:
    signals = parse("ES long entry at 5900", _meta())

    assert len(signals) == 1
    signal = signals[0]
    assert signal.symbol == "ES"
    assert signal.direction == "LONG"
    assert signal.action == "ENTER"
    assert signal.price == 5900.0
    assert signal.confidence == 1.0
    assert signal.source_id == "chan-1"
    assert signal.source_name == "Channel One"
    assert signal.timestamp == _T0


def test_parse_stopped_out_is_exit_without_direction() -> None:
    signal = parse("ES stopped out at 5890", _meta())[0]

    assert signal.action == "EXIT"
    assert signal.direction == "UNKNOWN"
    assert signal.price == 5890.0
    assert 0.5 <= signal.confidence < 1.0


def test_parse_took_profit_phrase() -> None:
    signal = parse("took profit on NQ 18050", _meta())[0]
    assert signal.symbol == "NQ"
    assert signal.action == "EXIT"
    assert signal.price == 18050.0


def test_parse_symbol_alone_has_low_confidence_and_unknown_fields() -> None:
    signal = parse("watching ES here", _meta())[0]

    assert signal.direction == "UNKNOWN"
    assert signal.action == "UNKNOWN"
    assert signal.price is None
    assert signal.confidence == 0.3


def test_parse_micro_is_not_read_as_root() -> None:
    signals = parse("MES long entry at 5900", _meta())
    assert [s.symbol for s in signals] == ["MES"]


def test_parse_ignores_lowercase_words_that_contain_symbols() -> None:
    assert parse("yes I am long here at 5900", _meta()) == []
    assert parse("es long 5900", _meta()) == []


def test_parse_dollar_ticker_any_case() -> None:
    signal = parse("bought $aapl at $182.50", _meta())[0]
    assert signal.symbol == "AAPL"
    assert signal.direction == "LONG"
    assert signal.price == 182.5


def test_parse_thousands_separator_and_arrows() -> None:
    signal = parse("▼ NQ short entry 18,250.75", _meta())[0]
    assert signal.direction == "SHORT"
    assert signal.price == 18250.75


def test_parse_one_signal_per_symbol_hit() -> None:
    signals = parse("ES long 5900, NQ short 18000\nES long again 5910", _meta())

    assert [(s.symbol, s.direction, s.price) for s in signals] == [
        ("ES", "LONG", 5900.0),
        ("NQ", "SHORT", 18000.0),
        ("ES", "LONG", 5910.0),
    ]


def test_parse_repeated_symbol_on_one_line_keeps_each_hit() -> None:
    signals = parse("ES long entry at 5900 then ES closed at 5910", _meta())

    assert [(s.symbol, s.action, s.price) for s in signals] == [
        ("ES", "ENTER", 5900.0),
        ("ES", "EXIT", 5910.0),
    ]
    assert signals[0].direction == "LONG"


def test_parse_repeated_symbol_cues_do_not_cross_hits() -> None:
    first, second = parse("NQ NQ short entry 18000", _meta())
    assert (first.direction, first.action, first.price) == ("UNKNOWN", "UNKNOWN", None)
    assert first.confidence == 0.3
    assert (second.direction, second.action, second.price) == ("SHORT", "ENTER", 18000.0)


def test_parse_stop_and_target_are_not_the_price() -> None:
    signal = parse("ES long 5900 stop 5890 target 5920", _meta())[0]

    assert signal.price == 5900.0
    assert signal.stop_loss == 5890.0
    assert signal.take_profit == 5920.0


def test_parse_size_cues() -> None:
    assert parse("bought 2 contracts ES at 5900", _meta())[0].size == 2.0
    assert parse("ES long x3 at 5900 entry", _meta())[0].size == 3.0


def test_parse_is_idempotent() -> None:
    text = "NQ short entry 18000 stop 18050\nES flat 5900"
    assert parse(text, _meta()) == parse(text, _meta())


def test_parse_never_raises_on_malformed_input() -> None:
    assert parse("", _meta()) == []
    assert parse("   \n\t", _meta()) == []
    assert parse(None, _meta()) == []  # type: ignore[arg-type]
    assert parse(12345, _meta()) == []  # type: ignore[arg-type]
    assert parse("$$$ ,,, 99.9.9 ▲▲", _meta()) == []


def test_parse_extra_symbols_vocabulary() -> None:
    vocab = build_vocabulary(["btc"])
    assert parse("BTC long entry 64000", _meta(), vocabulary=vocab)[0].symbol == "BTC"
    assert parse("BTC long entry 64000", _meta()) == []


def test_parse_segments_offsets_timestamps() -> None:
    signals = parse_segments(
        [("going long ES at 5900", 12.0), ("nothing here", 20.0), ("ES out 5910", 95.5)],
        source_id="stream-9",
        stream_start=_T0,
    )

    assert [s.action for s in signals] == ["ENTER", "EXIT"]
    assert signals[0].source_type == "caption"
    assert signals[0].timestamp == _T0 + timedelta(seconds=12)
    assert signals[1].timestamp == _T0 + timedelta(seconds=95.5)


def test_author_trust_weights_owner_and_moderator() -> None:
    signals = parse("ES long entry at 5900", _meta())

    assert [s.confidence for s in apply_author_trust(signals, "owner")] == [0.9]
    assert [s.confidence for s in apply_author_trust(signals, "moderator")] == [0.7]
    assert apply_author_trust(signals, "unknown") == signals
    assert signals[0].confidence == 1.0


def test_author_trust_drops_viewer_signals() -> None:
    assert apply_author_trust(parse("ES long entry at 5900", _meta()), "viewer") == []


def test_normalize_author_role() -> None:
    assert normalize_author_role(None) == "unknown"
    assert normalize_author_role(" Moderator ") == "moderator"
    with pytest.raises(ValueError, match="unknown_author_role"):
        normalize_author_role("admin")
