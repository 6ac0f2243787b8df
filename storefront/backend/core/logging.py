"""
Centralized Logging Configuration.

Every module logs through structlog loggers obtained from get_logger().
Settings come from config/settings/logging.yaml (validated as LoggingSchema).

JSON record fields:
    timestamp, level, logger, event, func_name, lineno
    source      - where the record came from: api, worker, cli, events
    request_id  - bound by the request middleware
    anything passed as extra={...}, flattened to top-level keys

Usage:
    from storefront.backend.core.logging import bind_source, get_logger, setup_logging

    setup_logging()                       # once, at process start
    setup_logging(level="DEBUG", format_type="console")

    logger = get_logger(__name__)
    logger.info("Email sent", extra={"event_id": job.event_id})

    bind_source("worker")                 # inside a worker task

Log file:
    logs/system.jsonl, rotated by size; filter on the `source` field.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.typing import EventDict, Processor

from storefront.backend.core.config import find_project_root, get_app_config
from storefront.backend.core.config_schema import FileHandlerSchema, LoggingSchema

LOG_SOURCES = frozenset({"api", "worker", "cli", "events", "internal"})

# Third-party loggers that are noisy at INFO
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "urllib3")


def _load_logging_config() -> LoggingSchema:
    return get_app_config().logging


def _resolve_log_path(configured_path: str) -> Path:
    return find_project_root() / configured_path


def _flatten_extra(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Lift stdlib-style extra={...} into the record so fields are queryable."""
    extra = event_dict.pop("extra", None)
    if isinstance(extra, dict):
        for key, value in extra.items():
            event_dict.setdefault(key, value)
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _flatten_extra,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
    ]


def _formatter(renderer: Processor, shared: list[Processor]) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared)


def _file_handler(config: FileHandlerSchema, formatter: logging.Formatter) -> logging.Handler:
    log_path = _resolve_log_path(config.path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        filename=str(log_path),
        maxBytes=config.max_bytes,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
    enable_console: bool | None = None,
    enable_file_logging: bool | None = None,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Arguments override the matching logging.yaml values; None keeps the
    configured value. The file handler always writes JSON; the console
    renders JSON or, with format 'console', colored key=value lines.
    """
    config = _load_logging_config()

    effective_level = (level or config.level).upper()
    effective_format = format_type or config.format
    console_enabled = config.handlers.console.enabled if enable_console is None else enable_console
    file_enabled = config.handlers.file.enabled if enable_file_logging is None else enable_file_logging

    shared = _shared_processors()
    json_formatter = _formatter(structlog.processors.JSONRenderer(), shared)
    if effective_format == "console":
        console_formatter = _formatter(structlog.dev.ConsoleRenderer(colors=True), shared)
    else:
        console_formatter = json_formatter

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, effective_level))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if console_enabled:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(console_formatter)
        root.addHandler(console)

    if file_enabled:
        root.addHandler(_file_handler(config.handlers.file, json_formatter))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Structlog logger for a module; pass __name__."""
    return structlog.get_logger(name)


def bind_source(source: str) -> None:
    """
    Tag every record logged from the current context with `source`.

    Context is per asyncio task, so a worker task binding "worker" does not
    leak into request handlers.

    Raises:
        ValueError: Unknown source
    """
    if source not in LOG_SOURCES:
        raise ValueError(f"Unknown log source: {source!r}")
    structlog.contextvars.bind_contextvars(source=source)
