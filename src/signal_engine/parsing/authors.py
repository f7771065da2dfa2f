"""Chat author trust: who may issue a signal, and how much it is worth."""

from __future__ import annotations

from dataclasses import replace

from signal_engine.types import AuthorRole, CandidateSignal

# Channel owner and moderators call real trades; viewers only talk about them.
AUTHOR_WEIGHTS: dict[str, float] = {
    "owner": 0.9,
    "moderator": 0.7,
    "unknown": 1.0,
}
AUTHOR_ROLES: frozenset[str] = frozenset({"owner", "moderator", "viewer", "unknown"})


def is_trusted_author(role: AuthorRole) -> bool:
    return role in AUTHOR_WEIGHTS


def normalize_author_role(value: object) -> AuthorRole:
    """Read a role from loose input; raises ValueError for unrecognised roles."""
    if value is None:
        return "unknown"
    role = str(value).strip().lower()
    if role not in AUTHOR_ROLES:
        raise ValueError(f"unknown_author_role: {value}")
    return role  # type: ignore[return-value]


def apply_author_trust(signals: list[CandidateSignal], role: AuthorRole) -> list[CandidateSignal]:
    """Scale signal confidence by the author's role.

    Signals from untrusted authors are discarded. A role of "unknown" leaves
    confidence as parsed.
    """
    weight = AUTHOR_WEIGHTS.get(role)
    if weight is None:
        return []
    if weight == 1.0:
        return signals
    return [replace(s, confidence=round(s.confidence * weight, 4)) for s in signals]
