"""Text signal parsing."""

from signal_engine.parsing.authors import apply_author_trust, is_trusted_author, normalize_author_role
from signal_engine.parsing.patterns import DEFAULT_SYMBOLS, build_vocabulary
from signal_engine.parsing.text import match_symbol, parse, parse_segments

__all__ = [
    "DEFAULT_SYMBOLS",
    "apply_author_trust",
    "build_vocabulary",
    "is_trusted_author",
    "match_symbol",
    "normalize_author_role",
    "parse",
    "parse_segments",
]
