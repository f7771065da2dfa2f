from __future__ import annotations

import numpy as np
import pytest

from signal_engine.types import DetectedPosition
from signal_engine.vision import (
    analyze_image,
    analyze_position_colors,
    apply_color_hint,
    detect_platform,
    detect_position_changes,
    extract,
)

_TRADOVATE_SCREEN = """Tradovate  Positions
MESZ4 Long 2 5900.25 5910.50 P&L +41.00
NQ Sell 1 18000.00 17950.00 P&L +50.00
Account Balance: $52,340.50
Daily P&L: +$425.00
"""


def test_extract_positions_with_min_max_heuristic() -> None:
    analysis = extract(_TRADOVATE_SCREEN, 0.92)

    assert analysis.error is None
    assert analysis.platform == "tradovate"
    assert [p.symbol for p in analysis.positions] == ["MES", "NQ"]

    mes, nq = analysis.positions
    assert mes.direction == "LONG"
    assert mes.size == 2.0
    assert mes.entry_price == 5900.25
    assert mes.current_price == 5910.50
    assert mes.unrealized_pnl == 41.0

    # Smallest number is reported as entry even for a short.
    assert nq.direction == "SHORT"
    assert nq.entry_price == 17950.0
    assert nq.current_price == 18000.0


def test_extract_balance_and_daily_pnl() -> None:
    analysis = extract(_TRADOVATE_SCREEN, 0.92)
    assert analysis.account_balance == 52340.50
    assert analysis.daily_pnl == 425.0


def test_extract_balance_requires_plausible_magnitude() -> None:
    assert extract("Balance: $950.00", 0.9).account_balance is None


def test_extract_single_number_sets_entry_and_current() -> None:
    position = extract("ES 5900", 0.9).positions[0]
    assert position.entry_price == position.current_price == 5900.0
    assert position.size == 1.0


def test_extract_low_confidence_short_circuits() -> None:
    analysis = extract(_TRADOVATE_SCREEN, 0.4)

    assert analysis.positions == []
    assert analysis.platform == "unknown"
    assert analysis.error == "low_ocr_confidence: 40%"


def test_extract_accepts_percentage_confidence() -> None:
    assert extract(_TRADOVATE_SCREEN, 45).error == "low_ocr_confidence: 45%"
    analysis = extract(_TRADOVATE_SCREEN, 88)
    assert analysis.error is None
    assert analysis.confidence == pytest.approx(0.88)


def test_platform_hint_wins_over_keywords() -> None:
    assert detect_platform("Tradovate DOM", "NinjaTrader") == "ninjatrader"
    assert detect_platform("Tradovate DOM", "not-a-platform") == "tradovate"
    assert detect_platform("chart on Trading View") == "tradingview"
    assert detect_platform("TOS account") == "thinkorswim"
    assert detect_platform("stop loss hit") == "unknown"


def test_color_hint_adjusts_confidence_but_not_direction() -> None:
    green = np.zeros((10, 10, 3), dtype=np.uint8)
    green[..., 1] = 200

    analysis = extract("NQ Short 1 18000 17990", 0.9, pixels=green)

    assert analysis.color_hint is not None
    assert analysis.color_hint.direction == "LONG"
    assert analysis.positions[0].direction == "SHORT"
    assert analysis.confidence == pytest.approx(0.8)


def test_color_analysis_ignores_extremes_and_reads_rgba_bytes() -> None:
    red = bytes([210, 20, 20, 255] * 50)
    white = bytes([255, 255, 255, 255] * 500)
    hint = analyze_position_colors(red + white)

    assert hint.dominant == "red"
    assert hint.direction == "SHORT"
    assert hint.red_ratio == 1.0
    assert not hint.has_green


def test_color_analysis_unusable_input_is_neutral() -> None:
    assert analyze_position_colors(b"").direction == "UNKNOWN"
    assert analyze_position_colors([[1, 2]]).direction == "UNKNOWN"


def test_apply_color_hint_agreement_is_clamped() -> None:
    long_position = DetectedPosition(symbol="ES", direction="LONG", size=1, entry_price=1, current_price=1)
    hint = analyze_position_colors(np.array([[0, 220, 0]] * 10, dtype=np.uint8))
    assert apply_color_hint(0.95, [long_position], hint) == 1.0


def test_analyze_image_engine_failure_becomes_error() -> None:
    class _BrokenEngine:
        def recognize(self, image: object) -> tuple[str, float]:
            raise RuntimeError("tesseract crashed")

    analysis = analyze_image(_BrokenEngine(), b"png")
    assert analysis.positions == []
    assert analysis.error == "ocr_failed: tesseract crashed"


def test_analyze_image_uses_engine_output() -> None:
    class _StaticEngine:
        def recognize(self, image: object) -> tuple[str, float]:
            return "ES Long 1 5900 5904", 91.0

    analysis = analyze_image(_StaticEngine(), b"png", "tradingview")
    assert analysis.platform == "tradingview"
    assert analysis.positions[0].symbol == "ES"


def test_detect_position_changes() -> None:
    es = DetectedPosition(symbol="ES", direction="LONG", size=1, entry_price=5900, current_price=5905)
    es_added = DetectedPosition(symbol="ES", direction="LONG", size=2, entry_price=5902, current_price=5906)
    nq = DetectedPosition(symbol="NQ", direction="SHORT", size=1, entry_price=18000, current_price=17990)

    changes = detect_position_changes([es, nq], [es_added])

    assert changes.opened == []
    assert changes.closed == [nq]
    assert changes.modified == [(es, es_added)]
    assert detect_position_changes([es], [es]).empty
