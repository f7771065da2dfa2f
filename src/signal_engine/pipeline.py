"""Ingestion pipeline: text and screenshots in, trade records out."""

from __future__ import annotations

from dataclasses import asdict
from datetime import timedelta
from time import perf_counter
from typing import Any, Iterable

from signal_engine.config import Settings
from signal_engine.correlator import ScaleInPolicy, SignalCorrelator, SignalCorroborator, ignore_scale_in
from signal_engine.journal.store import JournalStore
from signal_engine.journal.trades import TradeStore
from signal_engine.parsing import apply_author_trust, build_vocabulary, parse
from signal_engine.reports.query import trade_records_as_rows
from signal_engine.types import (
    CandidateSignal,
    DetectedPosition,
    IngestResult,
    PlatformAnalysis,
    SourceMeta,
    TextMessage,
    TradeRecord,
)
from signal_engine.utils.logging import get_logger
from signal_engine.utils.timeutil import as_utc
from signal_engine.vision import (
    OcrEngine,
    analyze_image,
    detect_position_changes,
    extract,
    positions_to_signals,
)


class IngestPipeline:
    """Wires parser, extractor, correlator and storage together.

    Chat signals are weighted by author role, and a screenshot change that
    agrees with a recent text signal boosts the later of the two.

    Open trades are rehydrated from the trade store on construction. Each
    message is handled under its own error guard so one bad input never
    aborts a batch.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        store: TradeStore | None = None,
        journal: JournalStore | None = None,
        scale_in_policy: ScaleInPolicy = ignore_scale_in,
    ) -> None:
        self._settings = settings
        self._store = store if store is not None else TradeStore(settings.trades_file)
        self._journal = journal if journal is not None else JournalStore(settings.journal_dir)
        self._vocabulary = build_vocabulary(settings.extra_symbols)
        self._correlator = SignalCorrelator(settings, sink=self._store, scale_in_policy=scale_in_policy)
        self._corroborator = SignalCorroborator(timedelta(seconds=settings.corroboration_window_sec))
        self._last_positions: dict[str, list[DetectedPosition]] = {}
        self._logger = get_logger("signal_engine.pipeline")

        open_trades = self._store.open_trades()
        self._correlator.rehydrate(open_trades)
        self._open_ids = {trade.id for trade in open_trades}

    @property
    def correlator(self) -> SignalCorrelator:
        return self._correlator

    @property
    def store(self) -> TradeStore:
        return self._store

    def ingest_messages(self, messages: Iterable[TextMessage]) -> IngestResult:
        """Parse and correlate messages in timestamp order."""
        started = perf_counter()
        result = IngestResult(status="unknown")
        ordered = sorted(messages, key=lambda m: as_utc(m.timestamp))

        for message in ordered:
            result.messages += 1
            try:
                meta = SourceMeta(
                    source_id=message.source_id,
                    source_type=message.source_type,
                    timestamp=message.timestamp,
                    source_name=message.source_name,
                )
                signals = parse(
                    message.text,
                    meta,
                    vocabulary=self._vocabulary,
                    window=self._settings.parser_window,
                )
                if message.source_type == "chat":
                    trusted = apply_author_trust(signals, message.author_role)
                    if signals and not trusted:
                        result.dropped["untrusted_author"] = result.dropped.get("untrusted_author", 0) + len(signals)
                    signals = trusted
                self._correlate(signals, message.source_id, result)
            except Exception as exc:  # noqa: BLE001 - per-message guard for batch resilience.
                self._fail(result, message.source_id, exc)

        return self._finish(result, started)

    def ingest_analysis(self, analysis: PlatformAnalysis, meta: SourceMeta) -> IngestResult:
        """Correlate position changes since the source's previous screenshot."""
        started = perf_counter()
        result = IngestResult(status="unknown", messages=1)
        try:
            self._journal.append("ocr_analysis", _analysis_payload(analysis, meta))
            if analysis.error is not None:
                result.errors.append(analysis.error)
                return self._finish(result, started, status="ocr_rejected")

            previous = self._last_positions.get(meta.source_id, [])
            changes = detect_position_changes(previous, analysis.positions)
            self._last_positions[meta.source_id] = list(analysis.positions)
            if not changes.empty:
                self._correlate(positions_to_signals(changes, meta), meta.source_id, result)
        except Exception as exc:  # noqa: BLE001 - per-image guard for batch resilience.
            self._fail(result, meta.source_id, exc)
        return self._finish(result, started)

    def ingest_screenshot_text(
        self,
        ocr_text: str,
        confidence: float,
        meta: SourceMeta,
        platform_hint: str | None = None,
        *,
        pixels: Any = None,
    ) -> IngestResult:
        analysis = extract(
            ocr_text,
            confidence,
            platform_hint,
            threshold=self._settings.ocr_confidence_threshold,
            vocabulary=self._vocabulary,
            pixels=pixels,
        )
        return self.ingest_analysis(analysis, meta)

    def ingest_image(
        self,
        engine: OcrEngine,
        image: Any,
        meta: SourceMeta,
        platform_hint: str | None = None,
        *,
        pixels: Any = None,
    ) -> IngestResult:
        analysis = analyze_image(
            engine,
            image,
            platform_hint,
            threshold=self._settings.ocr_confidence_threshold,
            vocabulary=self._vocabulary,
            pixels=pixels,
        )
        return self.ingest_analysis(analysis, meta)

    def _correlate(self, signals: list[CandidateSignal], source_id: str, result: IngestResult) -> None:
        signals = self._corroborator.corroborate(signals)
        result.corroborated += sum(1 for signal in signals if signal.corroborated)
        for signal in signals:
            self._journal.append("signal", _signal_payload(signal))
        result.signals += len(signals)

        drops_before = self._correlator.drop_counts
        trades = self._correlator.process(signals)
        for trade in trades:
            self._record_trade(trade, result)

        delta = _count_delta(drops_before, self._correlator.drop_counts)
        if delta:
            for reason, count in delta.items():
                result.dropped[reason] = result.dropped.get(reason, 0) + count
            self._journal.append("attribution_drop", {"source_id": source_id, "reasons": delta})

    def _record_trade(self, trade: TradeRecord, result: IngestResult) -> None:
        if trade.is_open:
            if trade.id in self._open_ids:
                return
            self._open_ids.add(trade.id)
            result.trades_opened += 1
            self._journal.append("trade_opened", trade_records_as_rows([trade])[0])
        else:
            self._open_ids.discard(trade.id)
            result.trades_closed += 1
            self._journal.append("trade_closed", trade_records_as_rows([trade])[0])

    def _fail(self, result: IngestResult, source_id: str, exc: Exception) -> None:
        self._logger.exception("ingest_failed", source_id=source_id, error=str(exc))
        result.errors.append(f"{source_id}: {exc}")
        self._journal.append("error", {"source_id": source_id, "error": str(exc)})

    def _finish(self, result: IngestResult, started: float, *, status: str | None = None) -> IngestResult:
        result.elapsed_ms = (perf_counter() - started) * 1000
        if status is not None:
            result.status = status
        elif result.errors:
            result.status = "partial" if result.messages > len(result.errors) else "failed"
        else:
            result.status = "ok"
        self._logger.info(
            "ingest_completed",
            status=result.status,
            messages=result.messages,
            signals=result.signals,
            opened=result.trades_opened,
            closed=result.trades_closed,
            elapsed_ms=round(result.elapsed_ms, 2),
        )
        return result


def _count_delta(before: dict[str, int], after: dict[str, int]) -> dict[str, int]:
    return {key: after[key] - before.get(key, 0) for key in after if after[key] != before.get(key, 0)}


def _signal_payload(signal: CandidateSignal) -> dict[str, Any]:
    payload = asdict(signal)
    payload["timestamp"] = as_utc(signal.timestamp).isoformat()
    return payload


def _analysis_payload(analysis: PlatformAnalysis, meta: SourceMeta) -> dict[str, Any]:
    return {
        "source_id": meta.source_id,
        "timestamp": as_utc(meta.timestamp).isoformat(),
        "platform": analysis.platform,
        "confidence": analysis.confidence,
        "positions": [asdict(position) for position in analysis.positions],
        "account_balance": analysis.account_balance,
        "daily_pnl": analysis.daily_pnl,
        "error": analysis.error,
    }
