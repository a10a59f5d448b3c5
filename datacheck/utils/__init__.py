"""Shared utilities - structured logging."""

from .logger import StructuredLogger, get_logger, log_operation, shorten_value

__all__ = [
    "StructuredLogger",
    "get_logger",
    "log_operation",
    "shorten_value",
]
