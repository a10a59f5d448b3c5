"""
Value Matcher - Evaluates one expected expression against one actual value.

The expected value is first classified by ``parse_expression`` into an
``ExpressionKind``; the matcher then dispatches on that kind through a
handler table. Handlers are pure: no handler keeps state between calls, so one
matcher instance can be shared by every comparison built from the same
configuration.

Supported expressions:
- {pattern('regex')} embedded into literal text
- @{isTimestamp('fmt')}
- @{isBeforeDate(date, fmt)}, @{isAfterDate(date, fmt)},
  @{isBetweenDates(left, right, fmt[, inclusion])}
- @{isGreaterThan(n)}, @{isGreaterOrEqual(n)}, @{isLessThan(n)},
  @{isLessOrEqual(n)}, @{isBetween(left, right[, inclusion])}
- @{asNumber(n[, margin[, scale]])}, @{asAbsNumber(...)},
  @{isNotEqualNumber(...)}
- sentinels: @{isNull}, @{isNotNull}, @{isEmpty}, @{isNotEmpty},
  @{isNullOrEmpty}, @{isAnyValue}, @{isNumber}, @{isInteger}, @{isFloat}
  and their aliases
- @{isNotEqualText('text'[, caseSensitive[, ignoreSpaces]])}
- anything else: literal equality
"""

import logging
import re
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

from datacheck.comparison.diff_result import DiffResult, FieldDiff, Outcome
from datacheck.exceptions import ParametersError
from datacheck.matching import numeric
from datacheck.matching.dates import is_timestamp, parse_date
from datacheck.matching.expressions import (
    IS_ANY_VALUE,
    IS_EMPTY,
    IS_FLOAT,
    IS_INTEGER,
    IS_NOT_EMPTY,
    IS_NUMBER,
    NOT_NULL_VALUES,
    NULL_OR_EMPTY_VALUES,
    NULL_VALUES,
    PATTERN_SPLITTER,
    Expression,
    ExpressionKind,
    boolean_argument,
    check_arity,
    decimal_argument,
    inclusion_argument,
    integer_argument,
    parse_expression,
    text_argument,
)
from datacheck.utils.logger import shorten_value

logger = logging.getLogger(__name__)


class InfoIndication(Enum):
    """When an expected value is treated as "not checked" instead of compared."""

    NULL = "null"  # expected value is absent
    NULL_OR_EMPTY = "null_or_empty"  # expected value is absent or ""


def _sentinel_checks() -> Dict[str, Callable[[Optional[str]], bool]]:
    checks: Dict[str, Callable[[Optional[str]], bool]] = {}
    for token in NULL_VALUES:
        checks[token] = lambda actual: actual is None
    for token in NOT_NULL_VALUES:
        checks[token] = lambda actual: actual is not None
    for token in NULL_OR_EMPTY_VALUES:
        checks[token] = lambda actual: not actual
    checks[IS_EMPTY] = lambda actual: actual == ""
    checks[IS_NOT_EMPTY] = lambda actual: bool(actual)
    checks[IS_ANY_VALUE] = lambda actual: True
    checks[IS_NUMBER] = lambda actual: _full_match(numeric.NUMBER_PATTERN, actual)
    checks[IS_INTEGER] = lambda actual: _full_match(numeric.INTEGER_PATTERN, actual)
    checks[IS_FLOAT] = lambda actual: _full_match(numeric.FLOAT_PATTERN, actual)
    return checks


def _full_match(pattern: "re.Pattern", actual: Optional[str]) -> bool:
    return actual is not None and pattern.fullmatch(actual) is not None


SENTINEL_CHECKS = _sentinel_checks()


def build_pattern(expected: str) -> "re.Pattern":
    """
    Compile an expected value with embedded {pattern('...')} markers.

    Text outside the markers is escaped, text inside is used verbatim.

    Raises:
        ParametersError: If the resulting regular expression is invalid

    Example:
        >>> build_pattern("ID-{pattern('[0-9]+')}.txt").pattern
        'ID\\-[0-9]+\\.txt'
    """
    parts = PATTERN_SPLITTER.split(expected)
    regex = "".join(part if index % 2 else re.escape(part) for index, part in enumerate(parts))
    try:
        return re.compile(regex)
    except re.error as e:
        raise ParametersError(f"Invalid pattern in expected value '{expected}': {e}") from e


class ValueMatcher:
    """
    Stateless evaluator of expected expressions.

    Usage:
        matcher = ValueMatcher()
        matcher.match("@{asNumber(500.1, 10, 1)}", "505")  # True
        matcher.check("Price", "@{isGreaterThan(0)}", "12.5")  # FieldDiff(outcome=MATCH)
    """

    def __init__(self):
        self._handlers: Dict[ExpressionKind, Callable[[Expression, Optional[str]], bool]] = {
            ExpressionKind.PATTERN: self._match_pattern,
            ExpressionKind.TIMESTAMP: self._match_timestamp,
            ExpressionKind.BEFORE_DATE: self._match_date_bound,
            ExpressionKind.AFTER_DATE: self._match_date_bound,
            ExpressionKind.BETWEEN_DATES: self._match_between_dates,
            ExpressionKind.GREATER_THAN: self._match_number_bound,
            ExpressionKind.GREATER_OR_EQUAL: self._match_number_bound,
            ExpressionKind.LESS_THAN: self._match_number_bound,
            ExpressionKind.LESS_OR_EQUAL: self._match_number_bound,
            ExpressionKind.BETWEEN: self._match_between,
            ExpressionKind.AS_NUMBER: self._match_as_number,
            ExpressionKind.AS_ABS_NUMBER: self._match_as_number,
            ExpressionKind.NOT_EQUAL_NUMBER: self._match_as_number,
            ExpressionKind.SENTINEL: self._match_sentinel,
            ExpressionKind.NOT_EQUAL_TEXT: self._match_not_equal_text,
        }

    def match(self, expected: Optional[str], actual: Optional[str], case_sensitive: bool = True) -> bool:
        """
        Check whether actual value satisfies the expected expression.

        Args:
            expected: Literal value or DSL expression
            actual: Actual value, None when absent
            case_sensitive: Used for the literal fallback only

        Returns:
            bool: True if actual matches

        Raises:
            ParametersError: If the expression has malformed arguments
        """
        expression = parse_expression(expected)
        if expression.kind is ExpressionKind.LITERAL:
            return self._match_literal(expected, actual, case_sensitive)

        if expression.is_function:
            check_arity(expression)

        result = self._handlers[expression.kind](expression, actual)
        logger.debug(
            f"match: kind={expression.kind.value}, expected={shorten_value(expected)}, "
            f"actual={shorten_value(actual)}, result={result}"
        )
        return result

    def is_expression(self, expected: Optional[str]) -> bool:
        """Check whether expected value uses the matcher DSL rather than a literal."""
        return parse_expression(expected).kind is not ExpressionKind.LITERAL

    def check(
        self,
        name: str,
        expected: Optional[str],
        actual: Optional[str],
        info: Optional[InfoIndication] = None,
        case_sensitive: bool = True,
    ) -> FieldDiff:
        """
        Compare one field and convert the outcome into a diff leaf.

        Argument errors never escape: they become an ERROR leaf so sibling
        fields are still compared.
        """
        if (info is InfoIndication.NULL and expected is None) or (
            info is InfoIndication.NULL_OR_EMPTY and not expected
        ):
            return FieldDiff(name, expected, actual, Outcome.INFO)

        try:
            matched = self.match(expected, actual, case_sensitive)
        except ParametersError as e:
            logger.debug(f"check: field={name} could not be evaluated: {e}")
            return FieldDiff(name, expected, actual, Outcome.ERROR, error=str(e))

        return FieldDiff(name, expected, actual, Outcome.MATCH if matched else Outcome.MISMATCH)

    def compare_lists(
        self,
        expected_values: Sequence[Optional[str]],
        actual_values: Sequence[Optional[str]],
        prefix: str = "",
    ) -> DiffResult:
        """
        Compare two value lists regardless of order.

        Each expected value consumes the first unused actual value it matches.
        Actual values left unused are reported as unexpected.

        Args:
            expected_values: Expected values or expressions
            actual_values: Actual values
            prefix: Prefix for leaf names

        Returns:
            DiffResult with one leaf per expected value and per unexpected value
        """
        result = DiffResult(name=f"{prefix}values" if prefix else "Values")
        used = [False] * len(actual_values)

        for number, expected in enumerate(expected_values, start=1):
            name = f"{prefix}#{number}"
            found = None
            error = None
            for index, actual in enumerate(actual_values):
                if used[index]:
                    continue
                try:
                    if self.match(expected, actual):
                        found = index
                        break
                except ParametersError as e:
                    error = str(e)
                    break

            if error is not None:
                result.add_field(FieldDiff(name, expected, None, Outcome.ERROR, error=error))
            elif found is None:
                result.add_field(FieldDiff(name, expected, None, Outcome.MISMATCH))
            else:
                used[found] = True
                result.add_field(FieldDiff(name, expected, actual_values[found], Outcome.MATCH))

        for index, actual in enumerate(actual_values):
            if not used[index]:
                result.add_field(
                    FieldDiff(f"{prefix}unexpected #{index + 1}", None, actual, Outcome.MISMATCH)
                )

        if not result.success:
            result.comment = "Lists of values don't match"
        return result

    # Handlers

    @staticmethod
    def _match_literal(expected: Optional[str], actual: Optional[str], case_sensitive: bool) -> bool:
        if expected is None or actual is None:
            return expected is None and actual is None
        if case_sensitive:
            return expected == actual
        return expected.casefold() == actual.casefold()

    @staticmethod
    def _match_pattern(expression: Expression, actual: Optional[str]) -> bool:
        pattern = build_pattern(expression.raw)
        return pattern.fullmatch(actual if actual is not None else "") is not None

    @staticmethod
    def _match_timestamp(expression: Expression, actual: Optional[str]) -> bool:
        date_format = text_argument(expression, 0, "Format")
        return is_timestamp(actual, date_format)

    @staticmethod
    def _expected_date(expression: Expression, index: int, date_format: str, parameter: str):
        text = text_argument(expression, index, parameter)
        value = parse_date(text, date_format)
        if value is None:
            raise ParametersError(
                f"In function '{expression.name}' value '{text}' not valid for "
                f"param[{index + 1}] - '{parameter}': doesn't match format '{date_format}'."
            )
        return value

    def _match_date_bound(self, expression: Expression, actual: Optional[str]) -> bool:
        date_format = text_argument(expression, 1, "Format")
        expected = self._expected_date(expression, 0, date_format, "Date")
        actual_date = parse_date(actual, date_format)
        if actual_date is None:
            return False
        if expression.kind is ExpressionKind.BEFORE_DATE:
            return actual_date < expected
        return actual_date > expected

    def _match_between_dates(self, expression: Expression, actual: Optional[str]) -> bool:
        date_format = text_argument(expression, 2, "Format")
        left = self._expected_date(expression, 0, date_format, "Left date")
        right = self._expected_date(expression, 1, date_format, "Right date")
        inclusion = inclusion_argument(expression, 3)
        actual_date = parse_date(actual, date_format)
        if actual_date is None:
            return False
        return inclusion.contains(actual_date, left, right)

    @staticmethod
    def _match_number_bound(expression: Expression, actual: Optional[str]) -> bool:
        bound = decimal_argument(expression, 0, "Expected value", required=True)
        value = numeric.to_decimal(actual)
        if value is None:
            return False

        kind = expression.kind
        if kind is ExpressionKind.GREATER_THAN:
            return value > bound
        if kind is ExpressionKind.GREATER_OR_EQUAL:
            return value >= bound
        if kind is ExpressionKind.LESS_THAN:
            return value < bound
        return value <= bound

    @staticmethod
    def _match_between(expression: Expression, actual: Optional[str]) -> bool:
        left = decimal_argument(expression, 0, "Left bound", required=True)
        right = decimal_argument(expression, 1, "Right bound", required=True)
        inclusion = inclusion_argument(expression, 2)
        value = numeric.to_decimal(actual)
        if value is None:
            return False
        return inclusion.contains(value, left, right)

    @staticmethod
    def _match_as_number(expression: Expression, actual: Optional[str]) -> bool:
        expected = decimal_argument(expression, 0, "Expected value", required=True)
        margin = decimal_argument(expression, 1, "Error")
        scale = integer_argument(expression, 2, "Scale", limit=numeric.MAX_EXPONENT)

        value = numeric.to_decimal(actual)
        if value is None:
            return False

        equal = numeric.numbers_equal(
            expected,
            value,
            scale=scale,
            margin=margin,
            absolute=expression.kind is ExpressionKind.AS_ABS_NUMBER,
        )
        if expression.kind is ExpressionKind.NOT_EQUAL_NUMBER:
            return not equal
        return equal

    @staticmethod
    def _match_sentinel(expression: Expression, actual: Optional[str]) -> bool:
        return SENTINEL_CHECKS[expression.raw](actual)

    @staticmethod
    def _match_not_equal_text(expression: Expression, actual: Optional[str]) -> bool:
        first = expression.arguments[0]
        if not first.quoted:
            raise ParametersError(
                f"In function '{expression.name}' value '{first.text}' not valid for "
                f"param[1] - 'Expected value'."
            )
        case_sensitive = boolean_argument(expression, 1, "Case sensitive")
        ignore_spaces = boolean_argument(expression, 2, "Ignore spaces")

        expected = first.text
        if actual is None:
            return True
        if not case_sensitive:
            expected = expected.lower()
            actual = actual.lower()
        if ignore_spaces:
            expected = expected.strip()
            actual = actual.strip()
        return expected != actual
