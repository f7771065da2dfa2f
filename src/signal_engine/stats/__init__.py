"""Aggregate trade statistics."""

from signal_engine.stats.aggregate import GroupStats, TradeStats, aggregate

__all__ = ["GroupStats", "TradeStats", "aggregate"]
