"""Structured logging configuration using structlog with async context propagation."""

import logging
from collections.abc import Mapping
from decimal import Decimal

import structlog

# Third-party loggers that are chatty at INFO (per-request lines, SQL traces).
DEFAULT_LOGGER_LEVELS: dict[str, str] = {
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "aiosqlite": "WARNING",
    "ccxt": "WARNING",
    "uvicorn.access": "WARNING",
}


def _to_level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def render_decimals(
    logger: logging.Logger, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Log Decimal amounts and prices as plain strings, never as Decimal('...')."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    logger_levels: Mapping[str, str] | None = None,
) -> None:
    """Configure structlog with JSON or console rendering.

    Uses structlog.contextvars so that values bound inside a task (for example
    the exchange being imported) follow the coroutine, not the thread.

    Args:
        log_level: Root log level name.
        log_format: "json" for machine-readable output, "console" otherwise.
        logger_levels: Per-logger level overrides, merged over
            DEFAULT_LOGGER_LEVELS. Use it to turn ccxt or aiosqlite back up
            when debugging an exchange import or a store transaction.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        render_decimals,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(_to_level(log_level))

    for name, level in {**DEFAULT_LOGGER_LEVELS, **(logger_levels or {})}.items():
        logging.getLogger(name).setLevel(_to_level(level))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
