"""Command line interface for the stream signal engine."""

import asyncio
import json
import math
import sys
import time
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

import click

from signal_engine import __version__
from signal_engine.config import Settings, get_settings
from signal_engine.journal import JournalStore, TradeStore
from signal_engine.monitor import ChannelMonitor, QuotaTracker, is_market_hours, next_market_open
from signal_engine.parsing import build_vocabulary, normalize_author_role, parse
from signal_engine.pipeline import IngestPipeline
from signal_engine.reports import TradeQuery, build_report, trades_to_csv
from signal_engine.reports.query import query_trades
from signal_engine.types import MonitorRefresh, SourceMeta, TextMessage
from signal_engine.utils.logging import get_logger, setup_logging
from signal_engine.utils.timeutil import parse_timestamp
from signal_engine.vision import extract

_SOURCE_TYPES = click.Choice(["chat", "caption", "screenshot"])


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="Show the version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Stream signal engine.

    Extracts trade signals from live-stream chat, captions and platform
    screenshots, correlates them into trades and reports performance.
    """
    if version:
        click.echo(f"signal-engine version {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("parse")
@click.argument("text")
@click.option("--source-id", default="cli", show_default=True, help="Channel or source id")
@click.option("--source-type", type=_SOURCE_TYPES, default="chat", show_default=True)
def parse_command(text: str, source_id: str, source_type: str) -> None:
    """Print the candidate signals found in TEXT as JSON."""
    setup_logging()
    settings = get_settings()
    meta = SourceMeta(
        source_id=source_id,
        source_type=source_type,  # type: ignore[arg-type]
        timestamp=datetime.now(timezone.utc),
    )
    signals = parse(
        text,
        meta,
        vocabulary=build_vocabulary(settings.extra_symbols),
        window=settings.parser_window,
    )
    click.echo(json.dumps([asdict(s) for s in signals], default=str, indent=2))


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def ingest(file: Path) -> None:
    """Correlate a JSONL file of messages into stored trades.

    Each line: {"text", "timestamp", "source_id", "source_type", "source_name"}.
    """
    setup_logging()
    logger = get_logger("signal_engine.main")
    settings = get_settings()
    settings.ensure_directories()

    messages = _read_messages(file, logger)
    pipeline = IngestPipeline(settings)
    result = pipeline.ingest_messages(messages)

    click.echo(f"Status:   {result.status}")
    click.echo(f"Messages: {result.messages}")
    click.echo(f"Signals:  {result.signals}")
    click.echo(f"Opened:   {result.trades_opened}")
    click.echo(f"Closed:   {result.trades_closed}")
    if result.dropped:
        dropped = ", ".join(f"{k}={v}" for k, v in sorted(result.dropped.items()))
        click.echo(f"Dropped:  {dropped}")
    for error in result.errors:
        click.echo(f"[ERROR] {error}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--confidence", "-c", type=float, default=1.0, show_default=True, help="OCR confidence (0-1 or 0-100)")
@click.option("--platform", "-p", default=None, help="Platform hint")
@click.option("--source-id", default=None, help="Also correlate positions for this channel")
def ocr(file: Path, confidence: float, platform: str | None, source_id: str | None) -> None:
    """Extract positions from an OCR text FILE."""
    setup_logging()
    settings = get_settings()
    text = file.read_text(encoding="utf-8")

    if source_id is None:
        analysis = extract(
            text,
            confidence,
            platform,
            threshold=settings.ocr_confidence_threshold,
            vocabulary=build_vocabulary(settings.extra_symbols),
        )
        click.echo(json.dumps(asdict(analysis), default=str, indent=2))
        return

    settings.ensure_directories()
    meta = SourceMeta(source_id=source_id, source_type="screenshot", timestamp=datetime.now(timezone.utc))
    result = IngestPipeline(settings).ingest_screenshot_text(text, confidence, meta, platform)
    click.echo(json.dumps(asdict(result), indent=2))


@cli.command()
@click.option("--channel", default=None, help="Channel id")
@click.option("--symbol", default=None)
@click.option("--direction", type=click.Choice(["LONG", "SHORT"], case_sensitive=False), default=None)
@click.option(
    "--result",
    "result_filter",
    type=click.Choice(["WIN", "LOSS", "BREAKEVEN", "OPEN"], case_sensitive=False),
    default=None,
)
@click.option("--start", default=None, help="Entry time lower bound (ISO-8601)")
@click.option("--end", default=None, help="Entry time upper bound (ISO-8601)")
@click.option("--limit", type=int, default=100, show_default=True)
@click.option("--format", "fmt", type=click.Choice(["json", "csv"]), default="json", show_default=True)
@click.option("--stats-only", is_flag=True, default=False, help="Only print statistics")
def trades(
    channel: str | None,
    symbol: str | None,
    direction: str | None,
    result_filter: str | None,
    start: str | None,
    end: str | None,
    limit: int,
    fmt: str,
    stats_only: bool,
) -> None:
    """Query stored trades with statistics."""
    setup_logging()
    settings = get_settings()
    query = TradeQuery(
        channel_id=channel,
        symbol=symbol.upper() if symbol else None,
        direction=direction.upper() if direction else None,  # type: ignore[arg-type]
        result=result_filter.upper() if result_filter else None,  # type: ignore[arg-type]
        start=_parse_bound(start, "--start"),
        end=_parse_bound(end, "--end"),
        limit=limit,
    )
    stored = TradeStore(settings.trades_file).load()

    if fmt == "csv" and not stats_only:
        click.echo(trades_to_csv(query_trades(stored, query)), nl=False)
        return
    click.echo(json.dumps(build_report(stored, query, stats_only=stats_only), indent=2))


@cli.command()
@click.option("--loop", "run_loop", is_flag=True, default=False, help="Keep polling until interrupted")
@click.option("--interval-min", "-i", type=int, default=None, help="Loop interval in minutes (default: quota based)")
def monitor(run_loop: bool, interval_min: int | None) -> None:
    """Refresh live status of the monitored channels."""
    setup_logging()
    logger = get_logger("signal_engine.main")
    settings = get_settings()
    settings.ensure_directories()

    missing = settings.validate_for_monitor()
    if missing:
        logger.error(
            "missing_required_config",
            missing_keys=missing,
            hint="Set the API key in the .env file",
        )
        sys.exit(1)

    channel_monitor = ChannelMonitor.from_settings(settings)
    journal = JournalStore(settings.journal_dir)
    iteration = 0

    try:
        while True:
            iteration += 1
            refresh = asyncio.run(channel_monitor.refresh(settings.monitored_channels))
            journal.append("monitor_refresh", _refresh_payload(refresh))
            _echo_refresh(refresh)
            if not run_loop:
                return

            wait_sec = _next_interval_min(channel_monitor.quota, settings, interval_min) * 60
            logger.debug("waiting_next_refresh", iteration=iteration, wait_seconds=wait_sec)
            time.sleep(wait_sec)
    except KeyboardInterrupt:
        logger.info("monitor_stopped", message="User stopped loop", total_iterations=iteration)
        sys.exit(0)


@cli.command()
def status() -> None:
    """Show configuration, quota strategy and market hours."""
    setup_logging()
    settings = get_settings()
    quota = QuotaTracker(settings.youtube_daily_quota)
    plan = quota.polling_strategy(len(settings.monitored_channels))
    trade_store = TradeStore(settings.trades_file)

    click.echo("=" * 50)
    click.echo("Stream Signal Engine - Status")
    click.echo("=" * 50)
    click.echo()

    click.echo("[API Configuration]")
    youtube_status = "[OK] Configured" if settings.youtube_api_key else "[--] Not configured"
    click.echo(f"   YouTube Data API: {youtube_status}")
    click.echo(f"   Daily quota: {settings.youtube_daily_quota} units")
    click.echo(f"   Polling strategy: {plan.strategy} ({_format_interval(plan.poll_interval_minutes)})")
    now = datetime.now(timezone.utc)
    if is_market_hours(now):
        click.echo("   Market hours: Open")
    else:
        click.echo(f"   Market hours: Closed (next open {next_market_open(now).isoformat()})")
    click.echo()

    click.echo("[Monitored Channels]")
    for channel in settings.monitored_channels:
        click.echo(f"   {channel.name} ({channel.handle}) - {channel.platform}")
    click.echo()

    click.echo("[Signal Processing]")
    click.echo(f"   Parser window: {settings.parser_window} tokens")
    click.echo(f"   OCR confidence threshold: {settings.ocr_confidence_threshold}")
    click.echo(f"   Min signal confidence: {settings.min_signal_confidence}")
    click.echo(f"   Open trades: {len(trade_store.open_trades())}")
    click.echo()

    click.echo("[Logging]")
    click.echo(f"   Log level: {settings.log_level}")
    click.echo(f"   Log format: {settings.log_format.value}")
    click.echo(f"   Data dir: {settings.data_dir}")
    click.echo()
    click.echo("=" * 50)


@cli.command()
def check() -> None:
    """Check dependencies and configuration."""
    setup_logging()
    logger = get_logger("signal_engine.main")

    click.echo("Checking system dependencies...")
    click.echo()

    all_ok = True
    packages = [
        ("pydantic", "Configuration validation"),
        ("httpx", "HTTP client"),
        ("feedparser", "RSS feed parsing"),
        ("pandas", "Trade export"),
        ("numpy", "Screenshot colour analysis"),
        ("structlog", "Structured logging"),
        ("click", "CLI framework"),
        ("tenacity", "Retry mechanism"),
    ]
    for pkg_name, desc in packages:
        try:
            __import__(pkg_name)
            click.echo(f"  [OK] {pkg_name} - {desc}")
        except ImportError:
            click.echo(f"  [MISSING] {pkg_name} - {desc}")
            all_ok = False

    click.echo()
    if Path(".env").exists():
        click.echo("  [OK] .env configuration file exists")
    else:
        click.echo("  [WARN] .env file not found (using defaults)")
    click.echo()

    if all_ok:
        click.echo("[OK] All dependency checks passed")
    else:
        click.echo("[ERROR] Some dependencies missing. Run: pip install -e .")
    logger.info("dependency_check_completed", all_ok=all_ok)


def _read_messages(path: Path, logger) -> list[TextMessage]:
    messages: list[TextMessage] = []
    for lineno, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not raw.strip():
            continue
        try:
            row = json.loads(raw)
            messages.append(
                TextMessage(
                    text=str(row["text"]),
                    timestamp=parse_timestamp(row["timestamp"]),
                    source_id=str(row["source_id"]),
                    source_type=row.get("source_type", "chat"),
                    source_name=row.get("source_name"),
                    author_role=normalize_author_role(row.get("author_role")),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("message_line_skipped", line=lineno, error=str(exc))
    return messages


def _parse_bound(value: str | None, option: str) -> datetime | None:
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint=option) from exc


def _next_interval_min(quota: QuotaTracker, settings: Settings, interval_min: int | None) -> float:
    if interval_min is not None:
        return interval_min
    plan = quota.polling_strategy(len(settings.monitored_channels))
    return plan.poll_interval_minutes if math.isfinite(plan.poll_interval_minutes) else 60


def _format_interval(minutes: float) -> str:
    return f"every {int(minutes)} min" if math.isfinite(minutes) else "paused"


def _refresh_payload(refresh: MonitorRefresh) -> dict[str, object]:
    return {
        "live_count": refresh.live_count,
        "quota_used": refresh.quota_used,
        "quota_remaining": refresh.quota_remaining,
        "channels": [
            {
                "channel_id": r.channel_id,
                "is_live": r.is_live,
                "stream_id": r.stream_id,
                "viewer_count": r.viewer_count,
                "error": r.error,
            }
            for r in refresh.channels
        ],
    }


def _echo_refresh(refresh: MonitorRefresh) -> None:
    click.echo(f"{refresh.live_count} live / {len(refresh.channels)} channels (quota {refresh.quota_used} used)")
    for r in refresh.channels:
        if r.is_live:
            click.echo(f"  [LIVE] {r.name} - {r.viewer_count} viewers - {r.title or ''}")
        elif r.error:
            click.echo(f"  [{r.error.upper()}] {r.name}")
        else:
            click.echo(f"  [--] {r.name}")


if __name__ == "__main__":
    cli()
