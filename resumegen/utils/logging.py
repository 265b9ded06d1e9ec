"""
Centralized logging for resumegen.

Every entry goes to Python logging and to an in-memory ring buffer, so
recent warnings (for example jobs dropped by the no-op publisher) can be
inspected from health/admin tooling and from tests without an external
log aggregator.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Dict, List, Optional


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LogEntry:
    """A single log entry."""

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
    Thread-safe in-memory circular buffer for log entries.

    Keeps the most recent N entries. Publishes happen on worker threads,
    so every access goes through the lock.
    """

    def __init__(self, max_size: int = 1000):
        self._buffer: deque = deque(maxlen=max_size)
        self._lock = Lock()
        self._error_count = 0
        self._warning_count = 0

    def add(self, entry: LogEntry):
        """Add a log entry to the buffer."""
        with self._lock:
            self._buffer.append(entry)
            if entry.level in (LogLevel.ERROR, LogLevel.CRITICAL):
                self._error_count += 1
            elif entry.level == LogLevel.WARNING:
                self._warning_count += 1

    def _select(
        self,
        levels: Optional[tuple] = None,
        source: Optional[str] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        with self._lock:
            entries = list(self._buffer)
        if levels:
            entries = [e for e in entries if e.level in levels]
        if source:
            entries = [e for e in entries if e.source == source]
        # Newest first; the deque is append-ordered so reversing is enough
        entries.reverse()
        return [e.to_dict() for e in entries[:limit]]

    def get_recent(
        self,
        limit: int = 100,
        level: Optional[LogLevel] = None,
        source: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Get recent log entries, optionally filtered."""
        return self._select((level,) if level else None, source, limit)

    def get_errors(self, limit: int = 50, source: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get recent errors and critical entries."""
        return self._select((LogLevel.ERROR, LogLevel.CRITICAL), source, limit)

    def get_warnings(self, limit: int = 50, source: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get recent warnings."""
        return self._select((LogLevel.WARNING,), source, limit)

    def get_stats(self) -> Dict[str, Any]:
        """Get log statistics."""
        by_level: Dict[str, int] = {}
        by_source: Dict[str, int] = {}
        with self._lock:
            total = len(self._buffer)
            for entry in self._buffer:
                by_level[entry.level.value] = by_level.get(entry.level.value, 0) + 1
                by_source[entry.source] = by_source.get(entry.source, 0) + 1
            error_count = self._error_count
            warning_count = self._warning_count

        return {
            "total": total,
            "by_level": by_level,
            "by_source": by_source,
            "error_count": error_count,
            "warning_count": warning_count
        }

    def clear(self):
        """Clear all log entries."""
        with self._lock:
            self._buffer.clear()
            self._error_count = 0
            self._warning_count = 0


# Global log buffer instance
_log_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    """Get the global log buffer instance."""
    return _log_buffer


class AppLogger:
    """
    Application logger that logs to both Python logging and the in-memory buffer.

    Keyword arguments are structured metadata:
        job_logger.info("Job queued", job_id=job.id, owner_id=job.owner_id)
    """

    def __init__(self, source: str, buffer: Optional[LogBuffer] = None):
        self.source = source
        self._buffer = buffer or _log_buffer
        self._logger = logging.getLogger(f"resumegen.{source}")

    def _log(
        self,
        level: LogLevel,
        message: str,
        metadata: Optional[Dict[str, Any]] = None
    ):
        self._buffer.add(LogEntry(level, message, self.source, metadata))

        log_level = getattr(logging, level.value.upper())
        if metadata:
            pairs = " ".join(f"{k}={v}" for k, v in metadata.items())
            self._logger.log(log_level, "%s | %s", message, pairs)
        else:
            self._logger.log(log_level, message)

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


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide handler. Safe to call more than once."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger("resumegen").setLevel(level.upper())


# Pre-configured loggers for common sources
job_logger = AppLogger("job_queue")
broker_logger = AppLogger("broker")
api_logger = AppLogger("api")
