"""Expected-value matcher DSL."""

from .expressions import Expression, ExpressionKind, Inclusion, parse_expression
from .value_matcher import InfoIndication, ValueMatcher, build_pattern

__all__ = [
    "Expression",
    "ExpressionKind",
    "Inclusion",
    "InfoIndication",
    "ValueMatcher",
    "build_pattern",
    "parse_expression",
]
