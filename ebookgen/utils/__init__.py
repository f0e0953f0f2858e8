"""Utility modules for ebookgen."""

from ebookgen.utils.logging import (
    get_logger,
    get_log_buffer,
    configure_logging,
    LogLevel,
    LogEntry,
    AppLogger,
    registry_logger,
    worker_logger,
    generation_logger,
    store_logger,
    scheduler_logger,
)

__all__ = [
    "get_logger",
    "get_log_buffer",
    "configure_logging",
    "LogLevel",
    "LogEntry",
    "AppLogger",
    "registry_logger",
    "worker_logger",
    "generation_logger",
    "store_logger",
    "scheduler_logger",
]
