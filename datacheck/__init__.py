"""
datacheck - verification core for message and table exchanges.

Decides whether captured ("actual") data satisfies an expected
specification and produces a nested, reviewable diff.
"""

from .comparison import DiffResult, FieldDiff, Outcome
from .config import ComparisonSettings, ExtraPolicy, load_settings
from .exceptions import ConfigurationError, DataCheckError, ParametersError, SourceError
from .matching import InfoIndication, ValueMatcher
from .messages import Message, StructuralComparator
from .tables import Header, KeyIndex, MemoryRowSource, Row, RowKey, RowSource, TabularDiffEngine

__all__ = [
    "ComparisonSettings",
    "ConfigurationError",
    "DataCheckError",
    "DiffResult",
    "ExtraPolicy",
    "FieldDiff",
    "Header",
    "InfoIndication",
    "KeyIndex",
    "MemoryRowSource",
    "Message",
    "Outcome",
    "ParametersError",
    "Row",
    "RowKey",
    "RowSource",
    "SourceError",
    "StructuralComparator",
    "TabularDiffEngine",
    "ValueMatcher",
    "load_settings",
]
