"""
observability/logger.py — Ergodic Structured Logger

structlog routed through stdlib logging:
  - JSON lines to a rotating file (data/logs/ergodic.log by default)
  - optional stderr output; stdout belongs to the REPL

Usage:
    setup_logging(level="DEBUG", log_dir="./data/logs")   # once, at startup
    log = get_logger(__name__)
    log.info("walk.started", interval_ms=30000)
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog

_LOG_FILENAME = "ergodic.log"

_PRE_CHAIN: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.format_exc_info,
]


def _handlers(
    log_dir: Path,
    console_output: bool,
    max_bytes: int,
    backup_count: int,
) -> list[logging.Handler]:
    log_dir.mkdir(parents=True, exist_ok=True)
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            filename=log_dir / _LOG_FILENAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    ]
    if console_output:
        handlers.append(logging.StreamHandler(sys.stderr))
    return handlers


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "./data/logs",
    json_format: bool = True,
    console_output: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
) -> None:
    """
    Configure structlog and stdlib logging. Call once at application startup.

    json_format=False switches every handler to structlog's coloured
    console renderer, which is only useful together with console_output.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    renderer = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_PRE_CHAIN,
    )

    handlers = _handlers(Path(log_dir), console_output, max_bytes, backup_count)
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)

    structlog.configure(
        processors=_PRE_CHAIN + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "ergodic", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Logger for `name`, optionally pre-bound with context values."""
    logger = structlog.get_logger(name)
    return logger.bind(**initial_values) if initial_values else logger


def bind_vault(vault: str) -> None:
    """Attach the vault path to every later log line in this context."""
    structlog.contextvars.bind_contextvars(vault=vault)
