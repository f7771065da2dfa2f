"""Trading-platform screenshot extraction from OCR output.

Position parsing is best-effort enrichment. On each line naming a known
symbol, every price-like number is collected and sorted: the smallest is
reported as the entry price and the largest as the current price. When only
stop/target prices are visible this misassigns them, so callers must not
treat ``entry_price``/``current_price`` as authoritative.
"""

from __future__ import annotations

import re
from typing import Any, Protocol, get_args

from signal_engine.config import Platform
from signal_engine.parsing.patterns import (
    CONTRACT_RE,
    DEFAULT_SYMBOLS,
    NUMBER_RE,
    PNL_PATTERNS,
    TOKEN_RE,
    parse_number,
)
from signal_engine.types import DetectedPosition, Direction, PlatformAnalysis
from signal_engine.utils.logging import get_logger
from signal_engine.vision.colors import analyze_position_colors, apply_color_hint

DEFAULT_CONFIDENCE_THRESHOLD = 0.6

_KNOWN_PLATFORMS: tuple[str, ...] = tuple(p for p in get_args(Platform) if p != "unknown")

_PLATFORM_KEYWORDS: tuple[tuple[Platform, re.Pattern[str]], ...] = (
    ("tradovate", re.compile(r"tradovate", re.IGNORECASE)),
    ("ninjatrader", re.compile(r"ninja\s?trader", re.IGNORECASE)),
    ("tradingview", re.compile(r"trading\s?view", re.IGNORECASE)),
    ("thinkorswim", re.compile(r"thinkorswim|\btos\b", re.IGNORECASE)),
)

# Short indicators are usually explicit; anything else reads as long.
_SHORT_INDICATORS = frozenset({"short", "sell", "sold", "▼", "↓"})

_AMOUNT = r"(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{1,2})?"

_BALANCE_PATTERNS = (
    re.compile(rf"(?:balance|account|equity|net\s?liq(?:uidation)?)[:\s]*\$?({_AMOUNT})", re.IGNORECASE),
    re.compile(r"\$(\d{2,3}(?:,\d{3})+(?:\.\d{2})?)"),
)
_MIN_BALANCE = 1_000.0

_DAILY_PNL_PATTERNS = (
    re.compile(
        rf"(?:daily|today'?s?|day)['\s]*(?:p[&/n]?l|profit|loss)[:\s]*([+-]?\$?{_AMOUNT})",
        re.IGNORECASE,
    ),
    re.compile(rf"\b(?:p[&/n]?l|profit|loss)[:\s]*([+-]?\$?{_AMOUNT})", re.IGNORECASE),
)

_MAX_SIZE = 100


class OcrEngine(Protocol):
    """Anything that turns an image into ``(text, confidence)``."""

    def recognize(self, image: Any) -> tuple[str, float]:
        ...


def extract(
    ocr_text: str,
    confidence: float,
    platform_hint: str | None = None,
    *,
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    vocabulary: frozenset[str] | None = None,
    pixels: Any = None,
) -> PlatformAnalysis:
    """Turn OCR output for one image into detected positions.

    ``confidence`` may be given as 0-1 or as a 0-100 percentage. Below
    ``threshold`` the text is not parsed and the result carries a
    ``low_ocr_confidence`` error. When ``pixels`` is supplied, the colour
    balance of the image adjusts the reported confidence only.
    """
    normalized = _normalize_confidence(confidence)
    text = ocr_text if isinstance(ocr_text, str) else ""

    if normalized < threshold:
        return PlatformAnalysis(
            platform="unknown",
            confidence=normalized,
            raw_text=text,
            error=f"low_ocr_confidence: {normalized * 100:.0f}%",
        )

    vocab = vocabulary if vocabulary is not None else DEFAULT_SYMBOLS
    analysis = PlatformAnalysis(
        platform=detect_platform(text, platform_hint),
        confidence=normalized,
        positions=parse_positions(text, vocab),
        account_balance=extract_account_balance(text),
        daily_pnl=extract_daily_pnl(text),
        raw_text=text,
    )

    if pixels is not None:
        hint = analyze_position_colors(pixels)
        analysis.color_hint = hint
        analysis.confidence = apply_color_hint(analysis.confidence, analysis.positions, hint)
    return analysis


def analyze_image(
    engine: OcrEngine,
    image: Any,
    platform_hint: str | None = None,
    *,
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
    vocabulary: frozenset[str] | None = None,
    pixels: Any = None,
) -> PlatformAnalysis:
    """Run an OCR engine on an image and extract positions.

    Engine failures are returned as an empty analysis with ``error`` set.
    """
    try:
        text, confidence = engine.recognize(image)
    except Exception as exc:  # noqa: BLE001 - one bad frame must not stop ingestion.
        get_logger("signal_engine.vision.ocr").warning("ocr_engine_failed", error=str(exc))
        return PlatformAnalysis(platform="unknown", confidence=0.0, error=f"ocr_failed: {exc}")
    return extract(
        text,
        confidence,
        platform_hint,
        threshold=threshold,
        vocabulary=vocabulary,
        pixels=pixels,
    )


def parse_positions(text: str, vocabulary: frozenset[str] = DEFAULT_SYMBOLS) -> list[DetectedPosition]:
    """Parse one position per line that names a known symbol."""
    positions: list[DetectedPosition] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        symbol = _line_symbol(line, vocabulary)
        if symbol is None:
            continue
        position = parse_position_line(line, symbol)
        if position is not None:
            positions.append(position)
    return positions


def parse_position_line(line: str, symbol: str) -> DetectedPosition | None:
    """Build a position from one OCR line, or None if it has no price."""
    unrealized_pnl, pnl_span = _line_pnl(line)

    numbers: list[tuple[float, str]] = []
    for match in NUMBER_RE.finditer(line):
        if match.group(1):
            continue
        if pnl_span is not None and pnl_span[0] <= match.start(2) < pnl_span[1]:
            continue
        value = parse_number(match.group(2))
        if value is not None and value > 0:
            numbers.append((value, match.group(0)))

    size = 1.0
    for value, raw in numbers:
        if raw.isdigit() and 1 <= value <= _MAX_SIZE and len(numbers) > 1:
            size = value
            numbers.remove((value, raw))
            break

    prices = sorted(value for value, _ in numbers)
    if not prices:
        return None

    return DetectedPosition(
        symbol=symbol,
        direction=_line_direction(line),
        size=size,
        entry_price=prices[0],
        current_price=prices[-1],
        unrealized_pnl=unrealized_pnl,
    )


def detect_platform(text: str, hint: str | None = None) -> Platform:
    """Resolve the platform: explicit hint, then keywords, then unknown."""
    if hint:
        normalized = hint.strip().lower()
        if normalized in _KNOWN_PLATFORMS:
            return normalized  # type: ignore[return-value]
    for platform, pattern in _PLATFORM_KEYWORDS:
        if pattern.search(text):
            return platform
    return "unknown"


def extract_account_balance(text: str) -> float | None:
    """Return the first balance-like amount above the plausibility floor."""
    for pattern in _BALANCE_PATTERNS:
        for match in pattern.finditer(text):
            value = parse_number(match.group(1))
            if value is not None and value > _MIN_BALANCE:
                return value
    return None


def extract_daily_pnl(text: str) -> float | None:
    """Return the first daily P&L figure found."""
    for pattern in _DAILY_PNL_PATTERNS:
        match = pattern.search(text)
        if match:
            value = parse_number(match.group(1))
            if value is not None:
                return value
    return None


def _normalize_confidence(confidence: float) -> float:
    try:
        value = float(confidence)
    except (TypeError, ValueError):
        return 0.0
    if value != value or value < 0:
        return 0.0
    if value > 1.0:
        value = value / 100.0
    return min(1.0, value)


def _line_symbol(line: str, vocabulary: frozenset[str]) -> str | None:
    for token in TOKEN_RE.findall(line):
        if not (token.isupper() or token.startswith("$")):
            continue
        upper = token.lstrip("$").upper()
        if upper in vocabulary:
            return upper
        contract = CONTRACT_RE.match(upper)
        if contract and contract.group(1) in vocabulary:
            return contract.group(1)
    return None


def _line_direction(line: str) -> Direction:
    words = {token.lower() for token in TOKEN_RE.findall(line)}
    if words & _SHORT_INDICATORS:
        return "SHORT"
    return "LONG"


def _line_pnl(line: str) -> tuple[float | None, tuple[int, int] | None]:
    for pattern in PNL_PATTERNS:
        match = pattern.search(line)
        if match:
            value = parse_number(match.group(1))
            if value is not None:
                return value, match.span(1)
    return None, None
