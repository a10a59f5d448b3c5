"""
Structured logging for comparison runs.

Every record is one JSON object (timestamp, level, message and optional
operation, context, duration_ms, error) so a comparison of a large table can
be followed in aggregated logs. Cell values placed into context are shortened;
a single row never floods the log.
"""

import json
import logging
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

MAX_LOGGED_VALUE_LENGTH = 64


def shorten_value(value: Any, max_length: int = MAX_LOGGED_VALUE_LENGTH) -> str:
    """
    Render a cell value for logging.

    Example:
        >>> shorten_value(None)
        '<absent>'
        >>> shorten_value("x" * 100, max_length=5)
        'xxxxx...'
    """
    if value is None:
        return "<absent>"

    text = str(value)
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."


class StructuredLogger:
    """
    JSON logger bound to one module.

    The console handler is attached once per logger name and shows INFO and
    above; DEBUG records still reach handlers installed by the caller.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(logging.INFO)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(handler)

    def _format_log(
        self,
        level: str,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> str:
        """
        Build the JSON line for one record.

        String values in context are shortened, other values are kept and
        serialized with ``str`` when JSON can't represent them (Decimal, Path).
        """
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "message": message,
        }
        if operation:
            entry["operation"] = operation
        if context:
            entry["context"] = {
                key: shorten_value(value) if isinstance(value, str) else value for key, value in context.items()
            }
        if duration_ms is not None:
            entry["duration_ms"] = round(duration_ms, 2)
        if error:
            entry["error"] = error

        return json.dumps(entry, ensure_ascii=False, default=str)

    def _emit(self, level: int, message: str, **fields) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._format_log(logging.getLevelName(level), message, **fields))

    def debug(self, message: str, operation: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        """Log debug message."""
        self._emit(logging.DEBUG, message, operation=operation, context=context)

    def info(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log info message."""
        self._emit(logging.INFO, message, operation=operation, context=context, duration_ms=duration_ms)

    def warning(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        """Log warning message."""
        self._emit(logging.WARNING, message, operation=operation, context=context, error=error)

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log error message."""
        self._emit(logging.ERROR, message, operation=operation, context=context, duration_ms=duration_ms, error=error)


def _result_summary(result: Any) -> Dict[str, Any]:
    # Comparison entry points return a DiffResult; anything else adds nothing
    summary = {}
    for attribute in ("success", "has_errors"):
        value = getattr(result, attribute, None)
        if isinstance(value, bool):
            summary[attribute] = value
    return summary


def log_operation(operation_name: str):
    """
    Decorator logging start, completion (with duration and result outcome)
    and failure of a comparison entry point. Exceptions are re-raised.

    Usage:
        @log_operation("compare_tables")
        def compare(self, expected_source, actual_source):
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = StructuredLogger(func.__module__)
            context: Dict[str, Any] = {"function": func.__qualname__}

            logger.debug(f"Starting {operation_name}", operation=operation_name, context=context)
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Failed {operation_name}",
                    operation=operation_name,
                    context={**context, "error_type": type(e).__name__},
                    error=str(e),
                    duration_ms=(time.perf_counter() - started) * 1000,
                )
                raise

            logger.info(
                f"Completed {operation_name}",
                operation=operation_name,
                context={**context, **_result_summary(result)},
                duration_ms=(time.perf_counter() - started) * 1000,
            )
            return result

        return wrapper

    return decorator


def get_logger(name: str) -> StructuredLogger:
    """Return the structured logger for a module (pass ``__name__``)."""
    return StructuredLogger(name)
