"""Logging configuration for the runtime updater.

structlog renders every event; stdlib ``logging`` handlers carry them to the
console and, optionally, to size-rotated JSON log files.
"""

import gzip
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

from runtime_updater.config import get_settings

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.StackInfoRenderer(),
    structlog.dev.set_exc_info,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _gzip_namer(name: str) -> str:
    return f"{name}.gz"


def _gzip_rotator(source: str, dest: str) -> None:
    """Compress a rotated log file into *dest* and drop the original."""
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


def _make_file_handler(
    path: str,
    max_bytes: int,
    backup_count: int,
    formatter: logging.Formatter,
    *,
    compress: bool,
    level: int | None = None,
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    if level is not None:
        handler.setLevel(level)
    if compress:
        handler.namer = _gzip_namer
        handler.rotator = _gzip_rotator
    return handler


def setup_logging() -> None:
    """Configure structured logging."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_renderer = (
        structlog.dev.ConsoleRenderer(colors=True)
        if settings.is_development
        else structlog.processors.JSONRenderer()
    )
    console_formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            console_renderer,
        ],
    )

    logging.basicConfig(format="%(message)s", level=log_level, handlers=[])
    root = logging.getLogger()
    root.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    root.addHandler(console_handler)

    if settings.log_to_file:
        try:
            Path(settings.log_directory).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            settings.log_to_file = False
            root.warning("Log directory unavailable, file logging disabled: %s", exc)

    if settings.log_to_file:
        json_formatter = structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
        )
        try:
            root.addHandler(
                _make_file_handler(
                    settings.log_file_path,
                    settings.log_file_max_bytes,
                    settings.log_file_backup_count,
                    json_formatter,
                    compress=settings.log_compress_rotated,
                )
            )
            if settings.log_error_file_enabled:
                root.addHandler(
                    _make_file_handler(
                        settings.error_log_file_path,
                        settings.log_file_max_bytes,
                        settings.log_file_backup_count,
                        json_formatter,
                        compress=settings.log_compress_rotated,
                        level=logging.WARNING,
                    )
                )
        except OSError as exc:
            root.warning("Log file handler unavailable: %s", exc)

    # Reduce noise from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
