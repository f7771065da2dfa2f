"""Event journal and trade persistence."""

from signal_engine.journal.store import JournalStore
from signal_engine.journal.trades import TradeStore

__all__ = ["JournalStore", "TradeStore"]
