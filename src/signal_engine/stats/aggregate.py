"""Aggregate performance statistics over trade records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Iterable

from signal_engine.types import TradeRecord


@dataclass(slots=True)
class GroupStats:
    """Closed-trade totals for one symbol or channel."""

    trades: int = 0
    wins: int = 0
    pnl: float = 0.0
    win_rate: float = 0.0
    name: str | None = None


@dataclass(slots=True)
class TradeStats:
    """Summary statistics for a set of trades."""

    total_trades: int = 0
    open_trades: int = 0
    closed_trades: int = 0
    wins: int = 0
    losses: int = 0
    breakeven: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    avg_pnl: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    gross_wins: float = 0.0
    gross_losses: float = 0.0
    profit_factor: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    avg_duration: float = 0.0
    by_symbol: dict[str, GroupStats] = field(default_factory=dict)
    by_channel: dict[str, GroupStats] = field(default_factory=dict)

    def as_dict(self) -> dict[str, object]:
        """Serializable dict view."""
        return asdict(self)


def aggregate(trades: Iterable[TradeRecord]) -> TradeStats:
    """Compute statistics; empty input yields all-zero stats.

    Rates and averages are taken over closed trades only. ``avg_loss`` is a
    magnitude, ``largest_loss`` the most negative pnl. Profit factor equals
    gross wins when there are no losses.
    """
    all_trades = list(trades)
    closed = [t for t in all_trades if t.result != "OPEN"]
    wins = [t for t in closed if t.result == "WIN"]
    losses = [t for t in closed if t.result == "LOSS"]
    breakeven = [t for t in closed if t.result == "BREAKEVEN"]

    gross_wins = sum(_pnl(t) for t in wins)
    gross_losses = abs(sum(_pnl(t) for t in losses))
    total_pnl = sum(_pnl(t) for t in closed)

    return TradeStats(
        total_trades=len(all_trades),
        open_trades=len(all_trades) - len(closed),
        closed_trades=len(closed),
        wins=len(wins),
        losses=len(losses),
        breakeven=len(breakeven),
        win_rate=_ratio(len(wins), len(closed)),
        total_pnl=total_pnl,
        avg_pnl=_ratio(total_pnl, len(closed)),
        avg_win=_ratio(gross_wins, len(wins)),
        avg_loss=_ratio(gross_losses, len(losses)),
        gross_wins=gross_wins,
        gross_losses=gross_losses,
        profit_factor=gross_wins / gross_losses if gross_losses > 0 else gross_wins,
        largest_win=max((_pnl(t) for t in wins), default=0.0),
        largest_loss=min((_pnl(t) for t in losses), default=0.0),
        avg_duration=_ratio(sum(t.duration or 0.0 for t in closed), len(closed)),
        by_symbol=_group(closed, key=lambda t: t.symbol),
        by_channel=_group(closed, key=lambda t: t.channel_id, named=True),
    )


def _group(
    closed: list[TradeRecord],
    *,
    key,
    named: bool = False,
) -> dict[str, GroupStats]:
    groups: dict[str, GroupStats] = {}
    for trade in closed:
        group = groups.get(key(trade))
        if group is None:
            group = groups[key(trade)] = GroupStats(name=trade.channel_name if named else None)
        group.trades += 1
        group.pnl += _pnl(trade)
        if trade.result == "WIN":
            group.wins += 1
    for group in groups.values():
        group.win_rate = _ratio(group.wins, group.trades)
    return groups


def _pnl(trade: TradeRecord) -> float:
    return trade.pnl or 0.0


def _ratio(numerator: float, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0
