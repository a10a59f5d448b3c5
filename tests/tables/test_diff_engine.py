"""
Unit tests for TabularDiffEngine (datacheck/tables/diff_engine.py)

Coverage:
- Positional strategy, row count failure
- Keyed strategy, idempotence under reordering, first-match-wins
- Duplicate detection
- Column mapping, numeric, ignore and info columns
- Extra policies and per-section caps
- Source lifecycle (factories closed, caller sources left open)
"""

from decimal import Decimal

import pytest

from datacheck.comparison.diff_result import Outcome
from datacheck.config.settings import ComparisonSettings, ExtraPolicy
from datacheck.exceptions import ParametersError, SourceError
from datacheck.tables.diff_engine import (
    EXTRA_ROWS,
    FAILED_ROWS,
    NOT_FOUND_ROWS,
    NOTHING_TO_COMPARE,
    PASSED_ROWS,
    ROW_COUNT,
    TabularDiffEngine,
    should_log_progress,
)
from datacheck.tables.sources import MemoryRowSource

COLUMNS = ["Id", "Name", "Amount"]
ROWS = [
    ["1", "Alpha", "10.00"],
    ["2", "Beta", "20.50"],
    ["3", "Gamma", "30"],
]


def source(rows, columns=COLUMNS):
    return MemoryRowSource(columns, rows)


def names(section):
    return [child.name for child in section.children]


class TestPositionalComparison:
    """Rows paired by position"""

    def test_identical_sources_round_trip(self):
        """Test: Identical streams give all-match leaves and success"""
        result = TabularDiffEngine().compare(source(ROWS), source(ROWS))

        assert result.success is True
        assert result.comment == "Processed 3 rows: 3 passed / 0 failed"
        assert all(leaf.outcome is Outcome.MATCH for leaf in result.iter_fields())
        assert names(result.child(PASSED_ROWS)) == ["Row #1", "Row #2", "Row #3"]

    def test_sections_in_fixed_order(self):
        """Test: Four sections are always present in fixed order"""
        result = TabularDiffEngine().compare(source(ROWS), source(ROWS))
        assert [child.name for child in result.children] == [PASSED_ROWS, FAILED_ROWS, NOT_FOUND_ROWS, EXTRA_ROWS]

    def test_cell_mismatch_goes_to_failed_rows(self):
        """Test: Row with a differing cell is failed, others pass"""
        actual = [list(row) for row in ROWS]
        actual[1][1] = "Bravo"

        result = TabularDiffEngine().compare(source(ROWS), source(actual))

        assert result.success is False
        assert result.comment == "Processed 3 rows: 2 passed / 1 failed"
        failed = result.child(FAILED_ROWS).children[0]
        assert failed.name == "Row #2"
        mismatches = [leaf.name for leaf in failed.fields if leaf.outcome is Outcome.MISMATCH]
        assert mismatches == ["Name"]

    def test_expected_longer_than_actual(self):
        """Test: Tail expected rows are not found and row count fails"""
        result = TabularDiffEngine().compare(source(ROWS), source(ROWS[:2]))

        assert names(result.child(NOT_FOUND_ROWS)) == ["Row #3"]
        row_count = result.child(ROW_COUNT)
        assert row_count.success is False
        assert row_count.comment == "Expected 3 rows, actual 2 rows"
        assert result.success is False

    def test_actual_longer_than_expected(self):
        """Test: Tail actual rows are extra rows"""
        result = TabularDiffEngine().compare(source(ROWS[:1]), source(ROWS))

        assert names(result.child(EXTRA_ROWS)) == ["Extra row #2", "Extra row #3"]
        assert result.child(ROW_COUNT).comment == "Expected 1 rows, actual 3 rows"

    def test_both_sources_empty(self):
        """Test: Nothing to compare is a passed result"""
        result = TabularDiffEngine().compare(source([]), source([]))

        assert result.success is True
        assert result.comment == NOTHING_TO_COMPARE
        assert result.children == []

    def test_expressions_in_expected_cells(self):
        """Test: Expected cells may contain matcher expressions"""
        expected = [["1", "@{pattern('[A-Z][a-z]+')}", "@{asNumber(10, 0.5)}"]]
        result = TabularDiffEngine().compare(source(expected), source([["1", "Alpha", "10.3"]]))
        assert result.success is True

    def test_error_leaf_does_not_abort_row(self):
        """Test: Malformed expression gives ERROR leaf, other cells still compared"""
        expected = [["1", "Alpha", "@{isBetween(1)}"]]
        result = TabularDiffEngine().compare(source(expected), source([["1", "Alpha", "5"]]))

        row = result.child(FAILED_ROWS).children[0]
        outcomes = {leaf.name: leaf.outcome for leaf in row.fields}
        assert outcomes == {"Id": Outcome.MATCH, "Name": Outcome.MATCH, "Amount": Outcome.ERROR}
        assert result.has_errors is True

    def test_case_insensitive_setting(self):
        """Test: case_sensitive=False applies to literal cells"""
        engine = TabularDiffEngine(ComparisonSettings(case_sensitive=False))
        result = engine.compare(source([["1", "alpha", "1"]]), source([["1", "ALPHA", "1"]]))
        assert result.success is True


class TestKeyedComparison:
    """Rows paired by key columns"""

    @pytest.fixture
    def engine(self):
        return TabularDiffEngine(ComparisonSettings(key_columns=["Id"]))

    def test_reordered_rows_match(self, engine):
        """Test: Physical order of actual rows doesn't matter"""
        reordered = [ROWS[2], ROWS[0], ROWS[1]]
        result = engine.compare(source(ROWS), source(reordered))

        assert result.success is True
        assert names(result.child(PASSED_ROWS)) == ["Row #1", "Row #2", "Row #3"]

    def test_keyed_comparison_is_idempotent(self, engine):
        """Test: Re-running on the same data gives the same result"""
        reordered = [ROWS[1], ROWS[2], ROWS[0]]
        first = engine.compare(source(ROWS), source(reordered))
        second = engine.compare(source(ROWS), source(reordered))
        assert first.to_dict() == second.to_dict()

    def test_not_found_and_extra(self, engine):
        """Test: Unpaired rows land in not found and extra sections"""
        result = engine.compare(source(ROWS[:2]), source(ROWS[1:]))

        not_found = result.child(NOT_FOUND_ROWS).children
        assert [row.name for row in not_found] == ["Row #1"]
        assert not_found[0].comment == "Row not found in actual data. Key: Id=1"
        assert names(result.child(PASSED_ROWS)) == ["Row #2"]
        assert names(result.child(EXTRA_ROWS)) == ["Extra row #2"]
        assert result.comment == "Processed 3 rows: 1 passed / 2 failed"

    def test_extra_policy_ignore(self):
        """Test: Ignored extras aren't reported"""
        engine = TabularDiffEngine(ComparisonSettings(key_columns=["Id"], extra_policy=ExtraPolicy.IGNORE))
        result = engine.compare(source(ROWS[:1]), source(ROWS))

        assert result.child(EXTRA_ROWS).children == []
        assert result.success is True

    def test_extra_policy_info(self):
        """Test: Informational extras are reported but don't fail"""
        engine = TabularDiffEngine(ComparisonSettings(key_columns=["Id"], extra_policy=ExtraPolicy.INFO))
        result = engine.compare(source(ROWS[:1]), source(ROWS))

        assert len(result.child(EXTRA_ROWS).children) == 2
        assert result.success is True

    def test_first_match_wins_with_repeated_keys(self):
        """Test: Repeated actual keys are consumed in source order"""
        engine = TabularDiffEngine(ComparisonSettings(key_columns=["Id"]))
        expected = [["A", "first", "1"]]
        actual = [["A", "first", "1"], ["A", "second", "1"]]

        result = engine.compare(source(expected), source(actual))

        assert names(result.child(PASSED_ROWS)) == ["Row #1"]
        extra = result.child(EXTRA_ROWS).children[0]
        assert extra.name == "Extra row #2"
        assert extra.fields[1].actual == "second"

    def test_numeric_key_column(self):
        """Test: Numeric key matches "1.0" with "1" """
        settings = ComparisonSettings(key_columns=["Id"], numeric_columns={"Id": Decimal(0)})
        result = TabularDiffEngine(settings).compare(source([["1", "A", "5"]]), source([["1.0", "A", "5"]]))
        assert result.success is True

    def test_missing_key_column_raises(self):
        """Test: Key column absent from a header is a parameters error"""
        engine = TabularDiffEngine(ComparisonSettings(key_columns=["Code"]))
        with pytest.raises(ParametersError):
            engine.compare(source(ROWS), source(ROWS))

    def test_both_sources_empty(self, engine):
        """Test: Empty keyed sources give the nothing-to-compare result"""
        result = engine.compare(source([]), source([]))
        assert result.comment == NOTHING_TO_COMPARE


class TestDuplicateDetection:
    """Optional duplicate-key pass"""

    def test_actual_duplicates_flag_only_second_a(self):
        """Test: Actual keys [A, B, A] flag exactly the second A"""
        settings = ComparisonSettings(key_columns=["Id"], check_duplicates=True, extra_policy=ExtraPolicy.INFO)
        expected = [["A", "x", "1"], ["B", "y", "2"]]
        actual = [["A", "x", "1"], ["B", "y", "2"], ["A", "x", "1"]]

        result = TabularDiffEngine(settings).compare(source(expected), source(actual))

        assert names(result.child(PASSED_ROWS)) == ["Row #1", "Row #2"]
        extra = result.child(EXTRA_ROWS).children
        assert [row.name for row in extra] == ["Extra row #3 (duplicate of row named 'Actual row #1')"]
        assert extra[0].success is False
        assert result.success is False

    def test_actual_duplicates_reported_when_extras_ignored(self):
        """Test: Ignored extra policy drops plain extras but never a duplicate"""
        settings = ComparisonSettings(key_columns=["Id"], check_duplicates=True, extra_policy=ExtraPolicy.IGNORE)
        expected = [["A", "x", "1"], ["B", "y", "2"]]
        actual = [["A", "x", "1"], ["B", "y", "2"], ["A", "x", "1"], ["C", "z", "3"]]

        result = TabularDiffEngine(settings).compare(source(expected), source(actual))

        extra = result.child(EXTRA_ROWS).children
        assert [row.name for row in extra] == ["Extra row #3 (duplicate of row named 'Actual row #1')"]
        assert extra[0].success is False
        assert result.success is False

    def test_expected_duplicate_moves_row_to_failed(self):
        """Test: Duplicate expected key fails a row that would pass"""
        settings = ComparisonSettings(key_columns=["Id"], check_duplicates=True)
        expected = [["A", "x", "1"], ["B", "y", "2"], ["A", "x", "1"]]
        actual = [["A", "x", "1"], ["B", "y", "2"]]

        result = TabularDiffEngine(settings).compare(source(expected), source(actual))

        assert names(result.child(PASSED_ROWS)) == ["Row #1", "Row #2"]
        not_found = result.child(NOT_FOUND_ROWS).children
        assert [row.name for row in not_found] == ["Row #3 (duplicate of row named 'Row #1')"]

    def test_duplicates_not_checked_by_default(self):
        """Test: Without check_duplicates repeated keys aren't flagged"""
        settings = ComparisonSettings(key_columns=["Id"], extra_policy=ExtraPolicy.INFO)
        actual = [["A", "x", "1"], ["A", "x", "1"]]
        result = TabularDiffEngine(settings).compare(source(actual[:1]), source(actual))

        assert names(result.child(EXTRA_ROWS)) == ["Extra row #2"]
        assert result.success is True


class TestColumns:
    """Column mapping and per-column behaviour"""

    def test_column_mapping(self):
        """Test: Expected column resolved to renamed actual column"""
        settings = ComparisonSettings(column_mapping={"Price": "Px"})
        expected = MemoryRowSource(["Id", "Price"], [["1", "9.5"]])
        actual = MemoryRowSource(["Id", "Px"], [["1", "9.5"]])

        result = TabularDiffEngine(settings).compare(expected, actual)

        row = result.child(PASSED_ROWS).children[0]
        assert [leaf.name for leaf in row.fields] == ["Id", "Price"]

    def test_actual_only_column_is_info(self):
        """Test: Columns only in actual data are reported as INFO"""
        expected = MemoryRowSource(["Id"], [["1"]])
        actual = MemoryRowSource(["Id", "Note"], [["1", "hello"]])

        result = TabularDiffEngine().compare(expected, actual)

        row = result.child(PASSED_ROWS).children[0]
        note = row.fields[1]
        assert (note.name, note.expected, note.actual, note.outcome) == ("Note", None, "hello", Outcome.INFO)

    def test_numeric_column_precision(self):
        """Test: Numeric column compares decimals within precision"""
        settings = ComparisonSettings(numeric_columns={"Amount": Decimal("0.01")})
        engine = TabularDiffEngine(settings)

        assert engine.compare(source([["1", "A", "10.00"]]), source([["1", "A", "10.009"]])).success is True
        assert engine.compare(source([["1", "A", "10"]]), source([["1", "A", "10.02"]])).success is False

    def test_numeric_column_exact_by_default(self):
        """Test: Precision 0 still equates differently formatted numbers"""
        settings = ComparisonSettings(numeric_columns={"Amount": Decimal(0)})
        result = TabularDiffEngine(settings).compare(source([["3", "Gamma", "30.00"]]), source(ROWS[2:]))
        assert result.success is True
        assert result.child(PASSED_ROWS).children[0].fields[2].outcome is Outcome.MATCH

    def test_numeric_column_with_expression(self):
        """Test: Expressions in numeric columns go through the matcher"""
        settings = ComparisonSettings(numeric_columns={"Amount": Decimal(0)})
        result = TabularDiffEngine(settings).compare(
            source([["1", "Alpha", "@{isGreaterThan(5)}"]]), source([["1", "Alpha", "7"]])
        )
        assert result.success is True

    def test_ignore_and_info_columns(self):
        """Test: Ignored columns are skipped, info columns never fail"""
        settings = ComparisonSettings(ignore_columns=["Amount"], info_columns=["Name"])
        result = TabularDiffEngine(settings).compare(source([["1", "Alpha", "1"]]), source([["1", "Omega", "2"]]))

        row = result.child(PASSED_ROWS).children[0]
        assert [(leaf.name, leaf.outcome) for leaf in row.fields] == [("Id", Outcome.MATCH), ("Name", Outcome.INFO)]


class TestSectionCaps:
    """Per-section limits on stored rows"""

    def test_passed_rows_cap(self):
        """Test: Rows beyond the cap are counted but not stored"""
        rows = [[str(number), "A", "1"] for number in range(5)]
        settings = ComparisonSettings(max_passed_rows=2)

        result = TabularDiffEngine(settings).compare(source(rows), source(rows))

        passed = result.child(PASSED_ROWS)
        assert len(passed.children) == 2
        assert passed.comment == "5 rows, 3 not stored in report"
        assert result.comment == "Processed 5 rows: 5 passed / 0 failed"
        assert result.success is True

    def test_dropped_failing_row_fails_section(self):
        """Test: Section stays failed even when failing rows aren't stored"""
        settings = ComparisonSettings(max_failed_rows=0)
        result = TabularDiffEngine(settings).compare(source(ROWS[:1]), source([["1", "Other", "10.00"]]))

        failed = result.child(FAILED_ROWS)
        assert failed.children == []
        assert failed.success is False
        assert result.success is False


class TestSourceLifecycle:
    """Scoped resource handling"""

    def test_caller_sources_stay_open(self):
        """Test: Sources passed as instances are not closed"""
        expected, actual = source(ROWS), source(ROWS)
        TabularDiffEngine().compare(expected, actual)
        assert expected.closed is False
        assert actual.closed is False

    def test_factory_sources_are_closed(self):
        """Test: Sources opened from factories are closed after comparison"""
        expected, actual = source(ROWS), source(ROWS)
        TabularDiffEngine().compare(lambda: expected, lambda: actual)
        assert expected.closed is True
        assert actual.closed is True

    def test_factory_sources_closed_on_error(self):
        """Test: Opened sources are closed when comparison raises"""
        expected, actual = source(ROWS), source(ROWS)
        engine = TabularDiffEngine(ComparisonSettings(key_columns=["Missing"]))

        with pytest.raises(ParametersError):
            engine.compare(lambda: expected, lambda: actual)
        assert expected.closed is True
        assert actual.closed is True

    def test_read_error_becomes_source_error(self):
        """Test: I/O failure while reading propagates as SourceError"""

        class BrokenSource(MemoryRowSource):
            def __iter__(self):
                raise OSError("disk is gone")

        expected = source(ROWS)
        with pytest.raises(SourceError):
            TabularDiffEngine().compare(lambda: expected, BrokenSource(COLUMNS, ROWS))
        assert expected.closed is True

    def test_open_error_becomes_source_error(self):
        """Test: Factory failing with I/O error raises SourceError"""

        def broken_factory():
            raise FileNotFoundError("expected.csv")

        with pytest.raises(SourceError):
            TabularDiffEngine().compare(broken_factory, source(ROWS))


class TestProgressLogging:
    """Growing progress intervals"""

    @pytest.mark.parametrize(
        "rows, expected",
        [
            (0, False),
            (1000, True),
            (1500, False),
            (10000, True),
            (11000, False),
            (20000, True),
            (110000, False),
            (200000, True),
        ],
    )
    def test_should_log_progress(self, rows, expected):
        """Test: Every 1,000 rows up to 10,000, then every 10,000 and so on"""
        assert should_log_progress(rows) is expected
