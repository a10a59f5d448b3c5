"""
Tabular Diff Engine

Compares an expected row source with an actual row source and builds a
DiffResult with four sections in fixed order:

    Passed rows / Failed rows / Not found rows / Extra rows

Rows are paired positionally when no key columns are configured, otherwise
by key: the actual source is indexed once and the expected source is
streamed against the index. Every cell is evaluated through ValueMatcher, so
expected cells may carry matcher expressions.

Usage:
    engine = TabularDiffEngine(ComparisonSettings(key_columns=["Id"]))
    result = engine.compare(expected_source, lambda: open_actual_source())
    if not result.success:
        ...
"""

from contextlib import ExitStack
from itertools import zip_longest
from typing import Callable, Dict, List, Optional, Tuple, Union

from datacheck.comparison.diff_result import DiffResult, FieldDiff, Outcome
from datacheck.config.settings import ComparisonSettings, ExtraPolicy, UNLIMITED
from datacheck.exceptions import DataCheckError, ParametersError, SourceError
from datacheck.matching.numeric import to_decimal, within_precision
from datacheck.matching.value_matcher import ValueMatcher
from datacheck.tables.key_index import DuplicateTracker, KeyIndex, RowKey
from datacheck.tables.sources import Header, Row, RowSource
from datacheck.utils.logger import get_logger, log_operation

logger = get_logger(__name__)

PASSED_ROWS = "Passed rows"
FAILED_ROWS = "Failed rows"
NOT_FOUND_ROWS = "Not found rows"
EXTRA_ROWS = "Extra rows"
ROW_COUNT = "Row count"

NOTHING_TO_COMPARE = "Both datasets are empty. Nothing to compare."

SourceLike = Union[RowSource, Callable[[], RowSource]]


def should_log_progress(rows_count: int) -> bool:
    """Progress is logged every 1,000 rows up to 10,000, every 10,000 up to 100,000 and so on."""
    if rows_count <= 0:
        return False
    step = 1000
    while rows_count > step * 10:
        step *= 10
    return rows_count % step == 0


class _Section:
    """Report section with an optional cap on stored rows."""

    def __init__(self, name: str, cap: int):
        self.result = DiffResult(name=name)
        self.cap = cap
        self.total = 0
        self.dropped = 0

    def add(self, row_result: DiffResult) -> None:
        self.total += 1
        if self.cap == UNLIMITED or len(self.result.children) < self.cap:
            self.result.add_child(row_result)
            return
        self.dropped += 1
        if not row_result.success:
            self.result.failed = True

    def finish(self) -> DiffResult:
        if self.dropped:
            self.result.comment = f"{self.total} rows, {self.dropped} not stored in report"
        return self.result


class TabularDiffEngine:
    """
    Compares two row sources according to ComparisonSettings.

    The engine holds no per-comparison state, one instance may run any
    number of comparisons.
    """

    def __init__(self, settings: Optional[ComparisonSettings] = None, matcher: Optional[ValueMatcher] = None):
        self.settings = settings or ComparisonSettings()
        self.matcher = matcher or ValueMatcher()

    @log_operation("compare_tables")
    def compare(self, expected_source: SourceLike, actual_source: SourceLike) -> DiffResult:
        """
        Compare expected rows against actual rows.

        Sources may be given as RowSource instances (closed by the caller) or
        as zero-argument factories (opened and closed here, even on error).

        Returns:
            DiffResult with root comment "Processed N rows: P passed / F failed"

        Raises:
            ParametersError: If a key column is missing from a header
            SourceError: If a source can't be opened or read
        """
        with ExitStack() as stack:
            expected = self._open(expected_source, stack, "expected")
            actual = self._open(actual_source, stack, "actual")

            try:
                if self.settings.keyed:
                    self._check_key_columns(expected.header, actual.header)
                    return self._compare_keyed(expected, actual)
                return self._compare_positional(expected, actual)
            except OSError as e:
                raise SourceError(f"Couldn't read rows: {e}") from e

    @staticmethod
    def _open(source: SourceLike, stack: ExitStack, side: str) -> RowSource:
        if isinstance(source, RowSource):
            return source
        try:
            opened = source()
        except DataCheckError:
            raise
        except OSError as e:
            raise SourceError(f"Couldn't open {side} source: {e}") from e
        return stack.enter_context(opened)

    def _check_key_columns(self, expected_header: Header, actual_header: Header) -> None:
        for column in self.settings.key_columns:
            if column not in expected_header:
                raise ParametersError(f"Key column '{column}' is absent in expected data")
            actual_column = self.settings.actual_column(column)
            if actual_column not in actual_header:
                raise ParametersError(f"Key column '{actual_column}' is absent in actual data")

    def _new_sections(self) -> Dict[str, _Section]:
        settings = self.settings
        return {
            PASSED_ROWS: _Section(PASSED_ROWS, settings.max_passed_rows),
            FAILED_ROWS: _Section(FAILED_ROWS, settings.max_failed_rows),
            NOT_FOUND_ROWS: _Section(NOT_FOUND_ROWS, settings.max_not_found_rows),
            EXTRA_ROWS: _Section(EXTRA_ROWS, settings.max_extra_rows),
        }

    def _compare_positional(self, expected: RowSource, actual: RowSource) -> DiffResult:
        sections = self._new_sections()
        counters = [0, 0]  # processed, passed
        expected_count = actual_count = 0

        for expected_row, actual_row in zip_longest(expected, actual):
            if expected_row is not None:
                expected_count += 1
            if actual_row is not None:
                actual_count += 1

            if expected_row is not None and actual_row is not None:
                row_result = self._compare_pair(f"Row #{expected_count}", expected_row, actual_row)
                section = PASSED_ROWS if row_result.success else FAILED_ROWS
            elif expected_row is not None:
                row_result = self._not_found(f"Row #{expected_count}", expected_row)
                section = NOT_FOUND_ROWS
            else:
                row_result = self._extra(f"Extra row #{actual_count}", actual_row)
                if row_result is None:
                    continue
                section = EXTRA_ROWS
            self._record(sections, section, row_result, counters)

        if expected_count == 0 and actual_count == 0:
            return DiffResult(comment=NOTHING_TO_COMPARE)

        result = self._assemble(sections, counters)
        if expected_count != actual_count:
            result.add_child(
                DiffResult.failure(
                    f"Expected {expected_count} rows, actual {actual_count} rows", name=ROW_COUNT
                )
            )
        return result

    def _compare_keyed(self, expected: RowSource, actual: RowSource) -> DiffResult:
        settings = self.settings
        check_duplicates = settings.check_duplicates
        index: KeyIndex[Tuple[int, Row]] = KeyIndex(settings.key_columns, settings.numeric_columns)
        actual_duplicates: Dict[int, str] = {}
        actual_tracker = DuplicateTracker(settings.key_columns, settings.numeric_columns)

        for number, row in enumerate(actual, start=1):
            key = RowKey.of(row, settings.key_columns, settings.column_mapping)
            if check_duplicates:
                first = actual_tracker.register(key, f"Actual row #{number}")
                if first is not None:
                    actual_duplicates[number] = first
            index.add((number, row), key)

        logger.debug(
            "Actual rows indexed",
            operation="compare_tables",
            context={"rows": len(index), "key_columns": settings.key_columns},
        )

        sections = self._new_sections()
        counters = [0, 0]
        expected_tracker = DuplicateTracker(settings.key_columns, settings.numeric_columns)
        expected_count = 0

        for expected_row in expected:
            expected_count += 1
            name = f"Row #{expected_count}"
            key = RowKey.of(expected_row, settings.key_columns)
            match = index.take_match(key)

            if match is None:
                row_result = self._not_found(name, expected_row)
                section = NOT_FOUND_ROWS
            else:
                actual_number, actual_row = match
                row_result = self._compare_pair(name, expected_row, actual_row)
                section = PASSED_ROWS if row_result.success else FAILED_ROWS
                if actual_number in actual_duplicates:
                    self._mark_duplicate(row_result, actual_duplicates[actual_number])
                    section = FAILED_ROWS
            row_result.comment = f"{row_result.comment}. Key: {key}" if row_result.comment else f"Key: {key}"

            if check_duplicates:
                first = expected_tracker.register(key, name)
                if first is not None:
                    self._mark_duplicate(row_result, first)
                    if section == PASSED_ROWS:
                        section = FAILED_ROWS

            self._record(sections, section, row_result, counters)

        leftovers = index.leftovers()
        if expected_count == 0 and not leftovers:
            return DiffResult(comment=NOTHING_TO_COMPARE)

        for actual_number, actual_row in leftovers:
            first = actual_duplicates.get(actual_number)
            # Duplicates are reported whatever the extra policy
            row_result = self._extra(f"Extra row #{actual_number}", actual_row, always=first is not None)
            if row_result is None:
                continue
            if first is not None:
                self._mark_duplicate(row_result, first)
            self._record(sections, EXTRA_ROWS, row_result, counters)

        return self._assemble(sections, counters)

    @staticmethod
    def _mark_duplicate(row_result: DiffResult, first: str) -> None:
        row_result.name = f"{row_result.name} (duplicate of row named '{first}')"
        row_result.failed = True

    def _record(self, sections: Dict[str, _Section], section: str, row_result: DiffResult, counters: List[int]) -> None:
        sections[section].add(row_result)
        counters[0] += 1
        if row_result.success:
            counters[1] += 1

        if should_log_progress(counters[0]):
            logger.info(
                f"Compared {counters[0]} rows, {counters[1]} passed",
                operation="compare_tables",
                context={"rows": counters[0], "passed": counters[1]},
            )

    @staticmethod
    def _assemble(sections: Dict[str, _Section], counters: List[int]) -> DiffResult:
        processed, passed = counters
        result = DiffResult(comment=f"Processed {processed} rows: {passed} passed / {processed - passed} failed")
        for section in sections.values():
            result.add_child(section.finish())
        logger.info(
            "Comparison finished",
            operation="compare_tables",
            context={"rows": processed, "passed": passed, "failed": processed - passed},
        )
        return result

    def _compared_columns(self, expected_header: Header, actual_header: Header) -> List[Tuple[Optional[str], str]]:
        """Return (expected column, actual column) pairs; expected is None for actual-only columns."""
        settings = self.settings
        ignored = set(settings.ignore_columns)
        columns: List[Tuple[Optional[str], str]] = []
        mapped = set()

        for column in expected_header:
            actual_column = settings.actual_column(column)
            mapped.add(actual_column)
            if column in ignored or actual_column in ignored:
                continue
            columns.append((column, actual_column))

        for column in actual_header:
            if column not in mapped and column not in ignored:
                columns.append((None, column))
        return columns

    def _compare_pair(self, name: str, expected_row: Row, actual_row: Row) -> DiffResult:
        settings = self.settings
        info_columns = set(settings.info_columns)
        result = DiffResult(name=name)

        for expected_column, actual_column in self._compared_columns(expected_row.header, actual_row.header):
            actual_value = actual_row.get(actual_column)
            if expected_column is None:
                result.add_field(FieldDiff(actual_column, None, actual_value, Outcome.INFO))
                continue

            expected_value = expected_row.get(expected_column)
            if expected_column in info_columns:
                result.add_field(FieldDiff(expected_column, expected_value, actual_value, Outcome.INFO))
            else:
                result.add_field(self._compare_cell(expected_column, expected_value, actual_value))
        return result

    def _compare_cell(self, column: str, expected: Optional[str], actual: Optional[str]) -> FieldDiff:
        precision = self.settings.precision(column)
        if precision is not None and not self.matcher.is_expression(expected):
            expected_number = to_decimal(expected.strip() if expected else expected)
            actual_number = to_decimal(actual.strip() if actual else actual)
            if expected_number is not None and actual_number is not None:
                equal = within_precision(expected_number, actual_number, precision)
                return FieldDiff(column, expected, actual, Outcome.MATCH if equal else Outcome.MISMATCH)

        return self.matcher.check(column, expected, actual, case_sensitive=self.settings.case_sensitive)

    def _not_found(self, name: str, expected_row: Row) -> DiffResult:
        result = DiffResult(name=name, comment="Row not found in actual data", failed=True)
        ignored = set(self.settings.ignore_columns)
        for column in expected_row.header:
            if column not in ignored:
                result.add_field(FieldDiff(column, expected_row.get(column), None, Outcome.INFO))
        return result

    def _extra(self, name: str, actual_row: Row, always: bool = False) -> Optional[DiffResult]:
        policy = self.settings.table_extra_policy()
        if policy is ExtraPolicy.IGNORE and not always:
            return None

        result = DiffResult(name=name, comment="Row is absent in expected data", failed=policy is ExtraPolicy.FAIL)
        ignored = set(self.settings.ignore_columns)
        for column in actual_row.header:
            if column not in ignored:
                result.add_field(FieldDiff(column, None, actual_row.get(column), Outcome.INFO))
        return result
