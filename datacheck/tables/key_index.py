"""
Key Index - Lookup of rows by composite key with removal on match.

Candidates are bucketed by the hashable part of their key. Numeric key
columns with precision 0 hash by decimal value, so "1.0" and "1" land in the
same bucket. Numeric key columns with a non-zero precision can't be hashed
and are compared inside the bucket instead.

Pairing is first-match-wins: ``take_match`` removes the earliest added
candidate with an equal key. When several candidates share a key, repeated
lookups consume them in source order.
"""

import itertools
from decimal import Decimal
from typing import Any, Dict, Generic, Iterable, List, Mapping, Optional, Tuple, TypeVar

from datacheck.matching.numeric import to_decimal, within_precision
from datacheck.tables.sources import Row

T = TypeVar("T")


class RowKey:
    """Ordered (column, value) pairs identifying a row."""

    __slots__ = ("pairs",)

    def __init__(self, pairs: Iterable[Tuple[str, Optional[str]]]):
        self.pairs: Tuple[Tuple[str, Optional[str]], ...] = tuple(pairs)

    @classmethod
    def of(
        cls,
        row: Row,
        key_columns: Iterable[str],
        column_mapping: Optional[Mapping[str, str]] = None,
    ) -> "RowKey":
        """
        Build key of a row.

        Key pairs are named by the key columns; values are read through
        ``column_mapping`` when given (actual-side rows).
        """
        mapping = column_mapping or {}
        return cls((column, row.get(mapping.get(column, column))) for column in key_columns)

    def value(self, column: str) -> Optional[str]:
        for name, value in self.pairs:
            if name == column:
                return value
        return None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RowKey):
            return NotImplemented
        return self.pairs == other.pairs

    def __hash__(self) -> int:
        return hash(self.pairs)

    def __str__(self) -> str:
        return ", ".join(f"{name}={value if value is not None else '<absent>'}" for name, value in self.pairs)

    def __repr__(self) -> str:
        return f"RowKey({self.pairs!r})"


class KeyIndex(Generic[T]):
    """
    Index of candidates by key.

    Usage:
        index = KeyIndex(["Id"], numeric_columns={"Id": Decimal(0)})
        for row in actual_rows:
            index.add(row, RowKey.of(row, ["Id"]))
        match = index.take_match(RowKey.of(expected_row, ["Id"]))
        extra = index.leftovers()
    """

    def __init__(self, key_columns: Iterable[str], numeric_columns: Optional[Mapping[str, Decimal]] = None):
        self.key_columns: Tuple[str, ...] = tuple(key_columns)
        numeric = numeric_columns or {}
        self._numeric = {column: numeric[column] for column in self.key_columns if column in numeric}
        self._tolerant = tuple(column for column, precision in self._numeric.items() if precision != 0)
        self._buckets: Dict[Tuple[Any, ...], List[Tuple[int, RowKey, T]]] = {}
        self._sequence = itertools.count()
        self._size = 0

    def _bucket_key(self, key: RowKey) -> Tuple[Any, ...]:
        parts = []
        for column, value in key.pairs:
            if column in self._tolerant:
                continue
            if column in self._numeric:
                number = to_decimal(value)
                parts.append(number if number is not None else value)
            else:
                parts.append(value)
        return tuple(parts)

    def _tolerant_equal(self, left: RowKey, right: RowKey) -> bool:
        for column in self._tolerant:
            left_value = left.value(column)
            right_value = right.value(column)
            left_number = to_decimal(left_value)
            right_number = to_decimal(right_value)
            if left_number is None or right_number is None:
                if left_value != right_value:
                    return False
            elif not within_precision(left_number, right_number, self._numeric[column]):
                return False
        return True

    def add(self, candidate: T, key: RowKey) -> None:
        bucket = self._buckets.setdefault(self._bucket_key(key), [])
        bucket.append((next(self._sequence), key, candidate))
        self._size += 1

    def _locate(self, key: RowKey) -> Tuple[Optional[List[Tuple[int, RowKey, T]]], int]:
        bucket = self._buckets.get(self._bucket_key(key))
        if not bucket:
            return None, -1
        for position, (_, candidate_key, _) in enumerate(bucket):
            if self._tolerant_equal(key, candidate_key):
                return bucket, position
        return None, -1

    def find(self, key: RowKey) -> Optional[T]:
        """Return the first candidate with an equal key without removing it."""
        bucket, position = self._locate(key)
        if bucket is None:
            return None
        return bucket[position][2]

    def take_match(self, key: RowKey) -> Optional[T]:
        """Remove and return the first candidate with an equal key, None if there is none."""
        bucket, position = self._locate(key)
        if bucket is None:
            return None
        _, _, candidate = bucket.pop(position)
        self._size -= 1
        return candidate

    def leftovers(self) -> List[T]:
        """Candidates never taken, in the order they were added."""
        entries = sorted(
            (entry for bucket in self._buckets.values() for entry in bucket), key=lambda entry: entry[0]
        )
        return [candidate for _, _, candidate in entries]

    def __len__(self) -> int:
        return self._size


class DuplicateTracker:
    """
    Remembers keys already seen on one side of a comparison.

    Example:
        >>> tracker = DuplicateTracker(["Id"])
        >>> tracker.register(RowKey([("Id", "A")]), "Row #1") is None
        True
        >>> tracker.register(RowKey([("Id", "A")]), "Row #3")
        'Row #1'
    """

    def __init__(self, key_columns: Iterable[str], numeric_columns: Optional[Mapping[str, Decimal]] = None):
        self._seen: KeyIndex[str] = KeyIndex(key_columns, numeric_columns)

    def register(self, key: RowKey, name: str) -> Optional[str]:
        """Record a key and return the name of its first occurrence if it was seen before."""
        first = self._seen.find(key)
        if first is not None:
            return first
        self._seen.add(name, key)
        return None
