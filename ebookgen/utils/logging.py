"""
Centralized logging for ebook generation.

Every message goes to Python logging and to an in-memory ring buffer, so
the worker and scheduler CLIs (or any status consumer) can show recent
failures without external log aggregation.
"""

import logging
import sys
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Optional, List, Dict, Any


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LogEntry:
    """A single buffered log entry."""

    def __init__(
        self,
        level: LogLevel,
        message: str,
        source: str = "system",
        metadata: Optional[Dict[str, Any]] = None
    ):
        self.timestamp = datetime.now(timezone.utc)
        self.level = level
        self.message = message
        self.source = source
        self.metadata = metadata or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
            "source": self.source,
            "metadata": self.metadata
        }


class LogBuffer:
    """
    Thread-safe circular buffer holding the most recent log entries.

    Entries carry their structured metadata, so the buffer can be filtered
    down to one job (`job_id`) when showing why its pages failed.
    """

    def __init__(self, max_size: int = 1000):
        self._buffer: deque = deque(maxlen=max_size)
        self._lock = Lock()

    def add(self, entry: LogEntry):
        with self._lock:
            self._buffer.append(entry)

    def get_recent(
        self,
        limit: int = 100,
        level: Optional[LogLevel] = None,
        source: Optional[str] = None,
        job_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Get recent entries, newest first, optionally filtered."""
        with self._lock:
            entries = list(self._buffer)

        if level:
            entries = [e for e in entries if e.level == level]
        if source:
            entries = [e for e in entries if e.source == source]
        if job_id:
            entries = [e for e in entries if e.metadata.get("job_id") == job_id]

        entries.reverse()
        return [e.to_dict() for e in entries[:limit]]

    def clear(self):
        with self._lock:
            self._buffer.clear()


# Global log buffer instance
_log_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    """Get the global log buffer instance."""
    return _log_buffer


class AppLogger:
    """
    Logger that writes to both Python logging and the in-memory buffer.

    Structured context is passed as keyword arguments:
        worker_logger.info("Page completed", job_id=job_id, unit_index=3)
    """

    def __init__(self, source: str):
        self.source = source
        self._logger = logging.getLogger(f"ebookgen.{source}")

    def _log(
        self,
        level: LogLevel,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ):
        _log_buffer.add(LogEntry(level, message, self.source, metadata))

        log_level = getattr(logging, level.value.upper())
        extra_msg = f" | {metadata}" if metadata else ""
        self._logger.log(log_level, f"{message}{extra_msg}")

    def debug(self, message: str, **metadata):
        self._log(LogLevel.DEBUG, message, metadata or None)

    def info(self, message: str, **metadata):
        self._log(LogLevel.INFO, message, metadata or None)

    def warning(self, message: str, **metadata):
        self._log(LogLevel.WARNING, message, metadata or None)

    def error(self, message: str, **metadata):
        self._log(LogLevel.ERROR, message, metadata or None)

    def critical(self, message: str, **metadata):
        self._log(LogLevel.CRITICAL, message, metadata or None)


def get_logger(source: str) -> AppLogger:
    """Get an AppLogger for a specific source/module."""
    return AppLogger(source)


def configure_logging(level: str = "INFO"):
    """Attach a stderr handler to the package logger (CLI entry points only)."""
    root = logging.getLogger("ebookgen")
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


# Pre-configured loggers for common sources
registry_logger = AppLogger("job_registry")
worker_logger = AppLogger("worker")
generation_logger = AppLogger("generation")
store_logger = AppLogger("store")
scheduler_logger = AppLogger("scheduler")
