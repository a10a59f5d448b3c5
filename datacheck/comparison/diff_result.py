"""Diff Result - Nested, serializable outcome of a comparison."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Outcome(Enum):
    """Outcome of a single field check."""

    MATCH = "match"
    MISMATCH = "mismatch"
    INFO = "info"  # expected value absent, not scored
    ERROR = "error"  # expected expression could not be evaluated


@dataclass
class FieldDiff:
    """Represents one compared field (a leaf of the diff tree)."""

    name: str
    expected: Optional[str]
    actual: Optional[str]
    outcome: Outcome
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.outcome in (Outcome.MATCH, Outcome.INFO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "expected": self.expected,
            "actual": self.actual,
            "outcome": self.outcome.value,
            "error": self.error,
        }


@dataclass
class DiffResult:
    """
    A node of the diff tree.

    A node holds leaf field diffs, nested children, or both. Its success is
    derived: the node fails when it was explicitly marked failed (row count,
    not found, duplicate) or when any non-info leaf or any child fails.
    """

    name: Optional[str] = None
    comment: Optional[str] = None
    fields: List[FieldDiff] = field(default_factory=list)
    children: List["DiffResult"] = field(default_factory=list)
    failed: bool = False
    outputs: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, comment: str, name: Optional[str] = None) -> "DiffResult":
        return cls(name=name, comment=comment, failed=True)

    @property
    def success(self) -> bool:
        if self.failed:
            return False
        if not all(f.passed for f in self.fields):
            return False
        return all(child.success for child in self.children)

    @property
    def has_errors(self) -> bool:
        """True when any leaf in the tree could not be evaluated."""
        if any(f.outcome is Outcome.ERROR for f in self.fields):
            return True
        return any(child.has_errors for child in self.children)

    def add_field(self, field_diff: Optional[FieldDiff]) -> None:
        if field_diff is not None:
            self.fields.append(field_diff)

    def add_child(self, child: Optional["DiffResult"]) -> None:
        if child is not None:
            self.children.append(child)

    def child(self, name: str) -> Optional["DiffResult"]:
        """Return the first direct child with the given name."""
        for candidate in self.children:
            if candidate.name == name:
                return candidate
        return None

    def iter_fields(self):
        """Yield every leaf of the tree, depth first."""
        yield from self.fields
        for child in self.children:
            yield from child.iter_fields()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to nested records for report writers."""
        data: Dict[str, Any] = {
            "name": self.name,
            "success": self.success,
            "comment": self.comment,
            "fields": [f.to_dict() for f in self.fields],
            "children": [child.to_dict() for child in self.children],
        }
        if self.outputs:
            data["outputs"] = self.outputs
        return data
