"""Comparison settings and their loaders."""

from .settings import ComparisonSettings, ExtraPolicy, load_settings, parse_numeric_columns

__all__ = [
    "ComparisonSettings",
    "ExtraPolicy",
    "load_settings",
    "parse_numeric_columns",
]
