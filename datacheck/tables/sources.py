"""
Row sources consumed by the tabular diff engine.

Readers for concrete formats (CSV, database cursors) live outside the core;
they only have to implement ``RowSource``. ``MemoryRowSource`` covers data
already held in memory.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from datacheck.exceptions import SourceError


class Header:
    """Ordered, duplicate-free list of column names shared by rows of one source."""

    def __init__(self, columns: Iterable[str]):
        self._columns: Tuple[str, ...] = tuple(columns)
        self._positions: Dict[str, int] = {}
        for position, column in enumerate(self._columns):
            if column in self._positions:
                raise ValueError(f"Duplicate column '{column}' in header")
            self._positions[column] = position

    @property
    def columns(self) -> Tuple[str, ...]:
        return self._columns

    def position(self, column: str) -> Optional[int]:
        return self._positions.get(column)

    def __contains__(self, column: object) -> bool:
        return column in self._positions

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Header):
            return NotImplemented
        return self._columns == other._columns

    def __repr__(self) -> str:
        return f"Header({list(self._columns)!r})"


class Row:
    """
    One row of a table source.

    Values are positional against the shared header. A column the header
    doesn't have reads as None, which is distinct from an empty string.
    """

    __slots__ = ("header", "_values")

    def __init__(self, header: Header, values: Sequence[Optional[str]]):
        if len(values) > len(header):
            raise ValueError(f"Row has {len(values)} values but header has {len(header)} columns")
        self.header = header
        self._values: List[Optional[str]] = list(values)

    @classmethod
    def from_mapping(cls, header: Header, data: Mapping[str, Optional[str]]) -> "Row":
        return cls(header, [data.get(column) for column in header])

    def get(self, column: str) -> Optional[str]:
        position = self.header.position(column)
        if position is None or position >= len(self._values):
            return None
        return self._values[position]

    def __getitem__(self, column: str) -> Optional[str]:
        return self.get(column)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {column: self.get(column) for column in self.header}

    def __repr__(self) -> str:
        return f"Row({self.to_dict()!r})"


class RowSource(ABC):
    """
    Source of rows sharing one header.

    Sources are context managers and iterable; iteration yields ``Row``
    objects lazily. Sources are not safe for concurrent use.
    """

    @property
    @abstractmethod
    def header(self) -> Header:
        """Header of the source, available before the first row is read."""

    @abstractmethod
    def __iter__(self) -> Iterator[Row]:
        ...

    def close(self) -> None:
        """Release underlying resources. Default sources hold none."""

    def __enter__(self) -> "RowSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class MemoryRowSource(RowSource):
    """
    Row source over in-memory data.

    Example:
        >>> source = MemoryRowSource(["Id", "Qty"], [["1", "10"], {"Id": "2", "Qty": "5"}])
        >>> [row.get("Qty") for row in source]
        ['10', '5']
    """

    def __init__(self, columns: Iterable[str], rows: Iterable = ()):
        self._header = Header(columns)
        self._rows = []
        for data in rows:
            if isinstance(data, Mapping):
                self._rows.append(Row.from_mapping(self._header, data))
            else:
                self._rows.append(Row(self._header, data))
        self.closed = False

    @property
    def header(self) -> Header:
        return self._header

    def __iter__(self) -> Iterator[Row]:
        if self.closed:
            raise SourceError("Can't read rows from a closed source")
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def close(self) -> None:
        self.closed = True
