"""Comparison result model."""

from .diff_result import DiffResult, FieldDiff, Outcome

__all__ = [
    "DiffResult",
    "FieldDiff",
    "Outcome",
]
