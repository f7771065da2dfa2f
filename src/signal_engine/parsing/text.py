"""Keyword/regex extraction of candidate trade signals from chat and caption text."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Iterable

from signal_engine.parsing.patterns import (
    DEFAULT_SYMBOLS,
    ENTER_PHRASES,
    ENTER_WORDS,
    EXIT_PHRASES,
    EXIT_WORDS,
    LONG_WORDS,
    SHORT_WORDS,
    SIZE_WORDS,
    STOP_WORDS,
    TARGET_WORDS,
    TOKEN_RE,
    is_number_token,
    parse_number,
)
from signal_engine.types import (
    CandidateSignal,
    SignalAction,
    SignalDirection,
    SourceMeta,
    SourceType,
)

DEFAULT_WINDOW = 6

_BASE_CONFIDENCE = 0.3
_DIRECTION_WEIGHT = 0.25
_PRICE_WEIGHT = 0.25
_ACTION_WEIGHT = 0.2

# Tokens skipped when looking back for the word that introduces a number.
_FILLERS = frozenset({"at", "is", "to", "of", "loss", "set", "around", "near"})
_SIZE_PREFIX_RE = re.compile(r"^x(\d{1,3})$")


def parse(
    text: str,
    source_meta: SourceMeta,
    vocabulary: frozenset[str] | None = None,
    window: int = DEFAULT_WINDOW,
) -> list[CandidateSignal]:
    """Extract candidate signals from a line or block of text.

    Emits one signal per symbol hit. A hit only reads the tokens up to the
    neighbouring hits of the same symbol on its line. Fields that cannot be
    resolved from the surrounding tokens are left as UNKNOWN / None. Never
    raises: malformed input yields an empty list.
    """
    if not isinstance(text, str) or not text.strip():
        return []
    vocab = vocabulary if vocabulary is not None else DEFAULT_SYMBOLS
    window = max(1, window)

    signals: list[CandidateSignal] = []
    for line in text.splitlines():
        tokens = TOKEN_RE.findall(line)
        if not tokens:
            continue
        lowered = [token.lower() for token in tokens]
        hits: list[tuple[int, str]] = []
        for idx, token in enumerate(tokens):
            symbol = match_symbol(token, vocab)
            if symbol is not None:
                hits.append((idx, symbol))
        for idx, symbol in hits:
            lo, hi = _hit_bounds(hits, idx, symbol, window, len(tokens))
            signals.append(
                _build_signal(tokens, lowered, idx, lo, hi, symbol, line.strip(), source_meta)
            )
    return signals


def parse_segments(
    segments: Iterable[tuple[str, float]],
    *,
    source_id: str,
    stream_start: datetime,
    source_type: SourceType = "caption",
    source_name: str | None = None,
    vocabulary: frozenset[str] | None = None,
    window: int = DEFAULT_WINDOW,
) -> list[CandidateSignal]:
    """Parse caption segments given as ``(text, seconds_from_stream_start)``."""
    signals: list[CandidateSignal] = []
    for text, offset in segments:
        meta = SourceMeta(
            source_id=source_id,
            source_type=source_type,
            timestamp=stream_start + timedelta(seconds=float(offset)),
            source_name=source_name,
        )
        signals.extend(parse(text, meta, vocabulary=vocabulary, window=window))
    return signals


def match_symbol(token: str, vocabulary: frozenset[str]) -> str | None:
    """Return the vocabulary symbol a token names, if any.

    Bare tokens must be written in upper case ("ES", not "es" or "yes");
    ``$``-prefixed tickers match in any case.
    """
    if token.startswith("$"):
        candidate = token[1:].upper()
        return candidate if candidate in vocabulary else None
    if token.isupper() and token in vocabulary:
        return token
    return None


def _hit_bounds(
    hits: list[tuple[int, str]],
    idx: int,
    symbol: str,
    window: int,
    length: int,
) -> tuple[int, int]:
    """Keyword window for one hit, clipped at the same symbol's other hits."""
    lo = max(0, idx - window)
    hi = min(length, idx + window + 1)
    for other, other_symbol in hits:
        if other_symbol != symbol or other == idx:
            continue
        if other < idx:
            lo = max(lo, other + 1)
        else:
            hi = min(hi, other)
    return lo, hi


def _build_signal(
    tokens: list[str],
    lowered: list[str],
    idx: int,
    lo: int,
    hi: int,
    symbol: str,
    line: str,
    meta: SourceMeta,
) -> CandidateSignal:
    direction = _nearest_direction(lowered, idx, lo, hi)
    action = _nearest_action(lowered, idx, lo, hi)
    price, stop_loss, take_profit, size = _classify_numbers(tokens, lowered, idx, lo, hi)

    confidence = _BASE_CONFIDENCE
    if direction != "UNKNOWN":
        confidence += _DIRECTION_WEIGHT
    if price is not None:
        confidence += _PRICE_WEIGHT
    if action != "UNKNOWN":
        confidence += _ACTION_WEIGHT

    return CandidateSignal(
        source_id=meta.source_id,
        source_type=meta.source_type,
        timestamp=meta.timestamp,
        symbol=symbol,
        direction=direction,
        action=action,
        price=price,
        confidence=round(min(1.0, confidence), 4),
        source_name=meta.source_name,
        size=size,
        stop_loss=stop_loss,
        take_profit=take_profit,
        raw_text=line,
    )


def _by_distance(idx: int, lo: int, hi: int) -> Iterable[int]:
    """Window positions ordered by distance from idx, following token first on ties."""
    for distance in range(1, max(idx - lo, hi - idx - 1) + 1):
        if idx + distance < hi:
            yield idx + distance
        if idx - distance >= lo:
            yield idx - distance


def _nearest_direction(lowered: list[str], idx: int, lo: int, hi: int) -> SignalDirection:
    for pos in _by_distance(idx, lo, hi):
        word = lowered[pos]
        if word in LONG_WORDS:
            return "LONG"
        if word in SHORT_WORDS:
            return "SHORT"
    return "UNKNOWN"


def _nearest_action(lowered: list[str], idx: int, lo: int, hi: int) -> SignalAction:
    for pos in _by_distance(idx, lo, hi):
        word = lowered[pos]
        pair = (word, lowered[pos + 1]) if pos + 1 < len(lowered) else None
        if pair in EXIT_PHRASES or word in EXIT_WORDS:
            return "EXIT"
        if pair in ENTER_PHRASES or word in ENTER_WORDS:
            return "ENTER"
    return "UNKNOWN"


def _classify_numbers(
    tokens: list[str],
    lowered: list[str],
    idx: int,
    lo: int,
    hi: int,
) -> tuple[float | None, float | None, float | None, float | None]:
    """Split window numbers into (price, stop_loss, take_profit, size)."""
    stop_loss: float | None = None
    take_profit: float | None = None
    size: float | None = None
    before: list[float] = []
    after: list[float] = []

    for pos in range(lo, hi):
        size_match = _SIZE_PREFIX_RE.match(lowered[pos])
        if size_match and size is None:
            size = float(size_match.group(1))
            continue

        token = tokens[pos]
        if not is_number_token(token) or token[0] in "+-":
            continue
        value = parse_number(token)
        if value is None or value <= 0:
            continue

        next_word = lowered[pos + 1] if pos + 1 < len(lowered) else ""
        if next_word in SIZE_WORDS:
            if size is None and value.is_integer() and value <= 1000:
                size = value
            continue

        introducer = _introducer(lowered, pos)
        if introducer == "stop":
            if stop_loss is None:
                stop_loss = value
            continue
        if introducer == "target":
            if take_profit is None:
                take_profit = value
            continue

        (after if pos > idx else before).append(value)

    price = after[0] if after else (before[-1] if before else None)
    return price, stop_loss, take_profit, size


def _introducer(lowered: list[str], pos: int) -> str | None:
    """Classify the keyword introducing the number at pos as stop/target."""
    back = pos - 1
    steps = 0
    while back >= 0 and steps < 3:
        word = lowered[back]
        if word in STOP_WORDS:
            return "stop"
        if word in TARGET_WORDS:
            return "target"
        if word in ("profit", "profits") and back > 0 and lowered[back - 1] == "take":
            return "target"
        if word not in _FILLERS:
            return None
        back -= 1
        steps += 1
    return None
