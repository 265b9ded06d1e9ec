"""Utility modules for resumegen."""

from resumegen.utils.logging import (
    get_logger,
    get_log_buffer,
    configure_logging,
    LogLevel,
    LogEntry,
    LogBuffer,
    AppLogger,
    job_logger,
    broker_logger,
    api_logger,
)

__all__ = [
    "get_logger",
    "get_log_buffer",
    "configure_logging",
    "LogLevel",
    "LogEntry",
    "LogBuffer",
    "AppLogger",
    "job_logger",
    "broker_logger",
    "api_logger",
]
