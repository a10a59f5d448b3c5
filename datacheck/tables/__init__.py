"""Row sources, key index and tabular diff engine."""

from .diff_engine import (
    EXTRA_ROWS,
    FAILED_ROWS,
    NOT_FOUND_ROWS,
    NOTHING_TO_COMPARE,
    PASSED_ROWS,
    ROW_COUNT,
    TabularDiffEngine,
)
from .key_index import DuplicateTracker, KeyIndex, RowKey
from .sources import Header, MemoryRowSource, Row, RowSource

__all__ = [
    "DuplicateTracker",
    "EXTRA_ROWS",
    "FAILED_ROWS",
    "Header",
    "KeyIndex",
    "MemoryRowSource",
    "NOTHING_TO_COMPARE",
    "NOT_FOUND_ROWS",
    "PASSED_ROWS",
    "ROW_COUNT",
    "Row",
    "RowKey",
    "RowSource",
    "TabularDiffEngine",
]
