"""Tree-shaped messages and their structural comparison."""

from .comparator import StructuralComparator
from .message import MSG_TYPE, SUB_MSG_SOURCE, SUB_MSG_TYPE, Message

__all__ = [
    "MSG_TYPE",
    "Message",
    "SUB_MSG_SOURCE",
    "SUB_MSG_TYPE",
    "StructuralComparator",
]
