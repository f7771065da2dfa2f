"""Structured logging setup.

Uses structlog on top of the standard library logger, rendering either JSON
lines or coloured console output.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from signal_engine.config import LogFormat, get_settings


def setup_logging() -> None:
    """Configure structlog from the current settings."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == LogFormat.JSON:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structured logger.

    Args:
        name: Logger name. Defaults to the calling module.

    Returns:
        A bound structlog logger.
    """
    return structlog.get_logger(name)


def log_trade_signal(
    logger: structlog.stdlib.BoundLogger,
    *,
    symbol: str,
    direction: str,
    action: str,
    source_id: str,
    **kwargs: Any,
) -> None:
    """Log one correlated candidate signal."""
    logger.debug(
        "trade_signal",
        symbol=symbol,
        direction=direction,
        action=action,
        source_id=source_id,
        **kwargs,
    )


def log_trade_event(
    logger: structlog.stdlib.BoundLogger,
    *,
    event: str,
    trade_id: str,
    channel_id: str,
    symbol: str,
    direction: str,
    **kwargs: Any,
) -> None:
    """Log a trade lifecycle transition (opened/closed)."""
    logger.info(
        event,
        trade_id=trade_id,
        channel_id=channel_id,
        symbol=symbol,
        direction=direction,
        **kwargs,
    )


def log_attribution_drop(
    logger: structlog.stdlib.BoundLogger,
    *,
    reason: str,
    channel_id: str,
    symbol: str,
    **kwargs: Any,
) -> None:
    """Log a signal that could not be attributed to a trade lifecycle."""
    logger.warning(
        "attribution_drop",
        reason=reason,
        channel_id=channel_id,
        symbol=symbol,
        **kwargs,
    )


def log_api_call(
    logger: structlog.stdlib.BoundLogger,
    *,
    operation: str,
    success: bool,
    latency_ms: float,
    **kwargs: Any,
) -> None:
    """Log an external API call."""
    level = "info" if success else "warning"
    getattr(logger, level)(
        "api_call",
        operation=operation,
        success=success,
        latency_ms=round(latency_ms, 2),
        **kwargs,
    )
