"""Scale-in policies: what to do with an ENTER for an already open position.

A policy receives the open trade and the new ENTER signal, may mutate the
trade, and returns True when it did.
"""

from __future__ import annotations

from typing import Callable

from signal_engine.types import CandidateSignal, TradeRecord

ScaleInPolicy = Callable[[TradeRecord, CandidateSignal], bool]


def ignore_scale_in(trade: TradeRecord, signal: CandidateSignal) -> bool:
    """Leave the open trade untouched."""
    return False


def weighted_average_scale_in(trade: TradeRecord, signal: CandidateSignal) -> bool:
    """Add the signal's size and move entry to the size-weighted average."""
    if signal.price is None or signal.price <= 0:
        return False
    added = signal.size if signal.size and signal.size > 0 else 1.0
    total = trade.size + added
    trade.entry_price = (trade.entry_price * trade.size + signal.price * added) / total
    trade.size = total
    return True
