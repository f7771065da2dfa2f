"""Pattern tables shared by the text parser and the OCR extractor."""

from __future__ import annotations

import re
from typing import Iterable

FUTURES_SYMBOLS = ("ES", "NQ", "CL", "GC", "SI", "ZB", "RTY", "YM")
MICRO_SYMBOLS = ("MES", "MNQ", "MCL", "MGC", "M2K", "MYM")
STOCK_SYMBOLS = ("SPY", "QQQ", "IWM", "DIA", "AAPL", "TSLA", "NVDA", "AMZN", "GOOGL", "META")

DEFAULT_SYMBOLS: frozenset[str] = frozenset(FUTURES_SYMBOLS + MICRO_SYMBOLS + STOCK_SYMBOLS)

# Currency-like number: optional $, thousands separators, up to 4 decimals.
PRICE_PATTERN = r"\$?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{1,4})?"
PRICE_RE = re.compile(PRICE_PATTERN)

TOKEN_RE = re.compile(
    rf"[▲▼↑↓]|[+-]?{PRICE_PATTERN}|\$?[A-Za-z][A-Za-z0-9']*",
)

LONG_WORDS = frozenset({"long", "longs", "buy", "buying", "bought", "calls", "▲", "↑"})
SHORT_WORDS = frozenset({"short", "shorts", "shorting", "sell", "selling", "sold", "puts", "▼", "↓"})

ENTER_WORDS = frozenset(
    {"enter", "entered", "entering", "entry", "add", "added", "adding", "filled", "fill"}
)
EXIT_WORDS = frozenset(
    {
        "exit",
        "exited",
        "exiting",
        "close",
        "closed",
        "closing",
        "out",
        "flat",
        "flatten",
        "flattened",
        "stopped",
    }
)
# Two-word phrases, matched on consecutive tokens.
ENTER_PHRASES = (("in", "at"), ("got", "filled"), ("going", "long"), ("going", "short"))
EXIT_PHRASES = (
    ("took", "profit"),
    ("took", "profits"),
    ("taking", "profit"),
    ("taking", "profits"),
    ("stop", "out"),
)

STOP_WORDS = frozenset({"stop", "sl"})
TARGET_WORDS = frozenset({"target", "tp", "pt"})
SIZE_WORDS = frozenset({"contract", "contracts", "lot", "lots", "cars", "shares"})

# Ordered most specific first.
PNL_PATTERNS = (
    re.compile(r"\bP[&/n]?L\b[:\s]*([+-]?\$?\d+(?:,\d{3})*(?:\.\d{2})?)", re.IGNORECASE),
    re.compile(r"\b(?:profit|loss)[:\s]*([+-]?\$?\d+(?:,\d{3})*(?:\.\d{2})?)", re.IGNORECASE),
    re.compile(r"(?<![\w.])([+-]\$?\d+(?:,\d{3})*(?:\.\d{2})?)"),
)

# Number with optional sign and $, not embedded in a word ("ESZ4", "M2K").
NUMBER_RE = re.compile(r"(?<![\w.])([+-])?\$?((?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{1,4})?)")

# Futures contract codes such as ESZ4 or MNQH25.
CONTRACT_RE = re.compile(r"^([A-Z][A-Z0-9]{1,4}?)([FGHJKMNQUVXZ]\d{1,2})$")


def build_vocabulary(extra: Iterable[str] = ()) -> frozenset[str]:
    """Return the default symbol set extended with ``extra`` symbols."""
    return DEFAULT_SYMBOLS | {s.strip().upper() for s in extra if s.strip()}


def parse_number(token: str) -> float | None:
    """Parse a currency-like token into a float, or None."""
    cleaned = token.replace("$", "").replace(",", "")
    try:
        return float(cleaned)
    except ValueError:
        return None


def is_number_token(token: str) -> bool:
    return bool(token) and (token[0].isdigit() or token[0] in "$+-") and any(
        ch.isdigit() for ch in token
    )
