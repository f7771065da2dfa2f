"""Entry/exit correlation into trade lifecycle records.

Each ``(channel_id, symbol, direction)`` key moves NONE -> OPEN -> CLOSED.
State is partitioned per channel; a channel's signals are applied in
timestamp order under that channel's lock.
"""

from __future__ import annotations

import threading
import uuid
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Iterable, Protocol

from signal_engine.config import Settings
from signal_engine.correlator.policy import ScaleInPolicy, ignore_scale_in
from signal_engine.types import CandidateSignal, Direction, TradeRecord, TradeResult
from signal_engine.utils.logging import (
    get_logger,
    log_attribution_drop,
    log_trade_event,
    log_trade_signal,
)
from signal_engine.utils.timeutil import as_utc

PositionKey = tuple[str, Direction]


class TradeSink(Protocol):
    """Durable storage for trade records."""

    def save(self, trade: TradeRecord) -> None:
        ...


@dataclass(slots=True)
class _ChannelBook:
    lock: threading.Lock = field(default_factory=threading.Lock)
    open_trades: dict[PositionKey, TradeRecord] = field(default_factory=dict)


def classify_result(pnl: float, epsilon: float = 0.0) -> TradeResult:
    """Map a realized pnl to WIN/LOSS/BREAKEVEN; zero or |pnl| < epsilon is BREAKEVEN."""
    if pnl == 0 or abs(pnl) < epsilon:
        return "BREAKEVEN"
    return "WIN" if pnl > 0 else "LOSS"


def close_trade(
    trade: TradeRecord,
    exit_time: datetime,
    exit_price: float,
    epsilon: float = 0.0,
) -> TradeRecord:
    """Close an open trade in place and derive pnl, duration and result."""
    diff = exit_price - trade.entry_price
    if trade.direction == "SHORT":
        diff = -diff
    pnl = diff * trade.size

    trade.exit_time = exit_time
    trade.exit_price = exit_price
    trade.duration = (exit_time - trade.entry_time).total_seconds()
    trade.pnl = pnl
    trade.pnl_pct = diff / trade.entry_price * 100.0 if trade.entry_price else None
    trade.result = classify_result(pnl, epsilon)
    return trade


class SignalCorrelator:
    """Match ENTER/EXIT signals into TradeRecords."""

    def __init__(
        self,
        settings: Settings,
        *,
        sink: TradeSink | None = None,
        scale_in_policy: ScaleInPolicy = ignore_scale_in,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._min_confidence = settings.min_signal_confidence
        self._epsilon = settings.breakeven_epsilon
        self._sink = sink
        self._scale_in = scale_in_policy
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)
        self._books: dict[str, _ChannelBook] = {}
        self._books_lock = threading.Lock()
        self._drops: Counter[str] = Counter()
        self._logger = get_logger("signal_engine.correlator")

    @property
    def drop_counts(self) -> dict[str, int]:
        """Signals not attributed to a lifecycle, by reason."""
        return dict(self._drops)

    def process(self, signals: Iterable[CandidateSignal]) -> list[TradeRecord]:
        """Apply signals and return snapshots of every record opened, changed or closed.

        The returned records are copies taken at the moment of each change, so
        an OPEN snapshot stays OPEN after a later EXIT closes the trade.
        """
        by_channel: dict[str, list[CandidateSignal]] = {}
        for signal in signals:
            by_channel.setdefault(signal.source_id, []).append(signal)

        emitted: list[TradeRecord] = []
        for channel_id, batch in by_channel.items():
            batch.sort(key=lambda s: as_utc(s.timestamp))
            book = self._book(channel_id)
            with book.lock:
                for signal in batch:
                    trade = self._apply(book, channel_id, signal)
                    if trade is not None:
                        emitted.append(replace(trade))
        return emitted

    def rehydrate(self, trades: Iterable[TradeRecord]) -> int:
        """Load persisted OPEN trades into position state."""
        loaded = 0
        for trade in trades:
            if not trade.is_open:
                continue
            book = self._book(trade.channel_id)
            key = (trade.symbol, trade.direction)
            with book.lock:
                if key in book.open_trades:
                    self._logger.warning(
                        "duplicate_open_trade",
                        channel_id=trade.channel_id,
                        symbol=trade.symbol,
                        kept=book.open_trades[key].id,
                        skipped=trade.id,
                    )
                    continue
                trade.entry_time = as_utc(trade.entry_time)
                book.open_trades[key] = trade
                loaded += 1
        self._logger.info("correlator_rehydrated", open_trades=loaded)
        return loaded

    def open_positions(self, channel_id: str | None = None) -> list[TradeRecord]:
        """Snapshot copies of the currently open trades."""
        with self._books_lock:
            if channel_id is None:
                books = list(self._books.values())
            else:
                books = [self._books[channel_id]] if channel_id in self._books else []
        snapshot: list[TradeRecord] = []
        for book in books:
            with book.lock:
                snapshot.extend(replace(trade) for trade in book.open_trades.values())
        return snapshot

    def _book(self, channel_id: str) -> _ChannelBook:
        with self._books_lock:
            book = self._books.get(channel_id)
            if book is None:
                book = self._books[channel_id] = _ChannelBook()
            return book

    def _apply(
        self,
        book: _ChannelBook,
        channel_id: str,
        signal: CandidateSignal,
    ) -> TradeRecord | None:
        log_trade_signal(
            self._logger,
            symbol=signal.symbol,
            direction=signal.direction,
            action=signal.action,
            source_id=channel_id,
            confidence=signal.confidence,
        )
        if signal.confidence < self._min_confidence:
            self._drops["low_confidence"] += 1
            return None
        if signal.action == "ENTER":
            return self._enter(book, channel_id, signal)
        if signal.action == "EXIT":
            return self._exit(book, channel_id, signal)
        self._drops["no_action"] += 1
        return None

    def _enter(
        self,
        book: _ChannelBook,
        channel_id: str,
        signal: CandidateSignal,
    ) -> TradeRecord | None:
        if signal.direction == "UNKNOWN":
            return self._drop("enter_without_direction", channel_id, signal)
        if signal.price is None or signal.price <= 0:
            return self._drop("enter_without_price", channel_id, signal)

        key: PositionKey = (signal.symbol, signal.direction)
        existing = book.open_trades.get(key)
        if existing is not None:
            self._drops["scale_in"] += 1
            if not self._scale_in(existing, signal):
                self._logger.info(
                    "scale_in_ignored",
                    channel_id=channel_id,
                    symbol=signal.symbol,
                    trade_id=existing.id,
                )
                return None
            self._persist(existing)
            log_trade_event(
                self._logger,
                event="trade_scaled_in",
                trade_id=existing.id,
                channel_id=channel_id,
                symbol=existing.symbol,
                direction=existing.direction,
                size=existing.size,
                entry_price=existing.entry_price,
            )
            return existing

        trade = TradeRecord(
            id=self._new_id(),
            channel_id=channel_id,
            channel_name=signal.source_name or channel_id,
            symbol=signal.symbol,
            direction=signal.direction,
            entry_time=as_utc(signal.timestamp),
            entry_price=float(signal.price),
            size=float(signal.size) if signal.size and signal.size > 0 else 1.0,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
        )
        book.open_trades[key] = trade
        self._persist(trade)
        log_trade_event(
            self._logger,
            event="trade_opened",
            trade_id=trade.id,
            channel_id=channel_id,
            symbol=trade.symbol,
            direction=trade.direction,
            entry_price=trade.entry_price,
            size=trade.size,
        )
        return trade

    def _exit(
        self,
        book: _ChannelBook,
        channel_id: str,
        signal: CandidateSignal,
    ) -> TradeRecord | None:
        if signal.price is None or signal.price <= 0:
            return self._drop("exit_without_price", channel_id, signal)

        if signal.direction == "UNKNOWN":
            matches = [key for key in book.open_trades if key[0] == signal.symbol]
            if len(matches) > 1:
                return self._drop("ambiguous_exit", channel_id, signal)
            key = matches[0] if matches else None
        else:
            key = (signal.symbol, signal.direction)

        trade = book.open_trades.get(key) if key is not None else None
        if trade is None:
            return self._drop("exit_without_open", channel_id, signal)

        exit_time = as_utc(signal.timestamp)
        if exit_time < trade.entry_time:
            return self._drop("exit_before_entry", channel_id, signal)

        del book.open_trades[key]
        close_trade(trade, exit_time, float(signal.price), self._epsilon)
        self._persist(trade)
        log_trade_event(
            self._logger,
            event="trade_closed",
            trade_id=trade.id,
            channel_id=channel_id,
            symbol=trade.symbol,
            direction=trade.direction,
            pnl=trade.pnl,
            result=trade.result,
            duration=trade.duration,
        )
        return trade

    def _drop(self, reason: str, channel_id: str, signal: CandidateSignal) -> None:
        self._drops[reason] += 1
        log_attribution_drop(
            self._logger,
            reason=reason,
            channel_id=channel_id,
            symbol=signal.symbol,
            action=signal.action,
            direction=signal.direction,
        )
        return None

    def _persist(self, trade: TradeRecord) -> None:
        if self._sink is not None:
            self._sink.save(trade)
