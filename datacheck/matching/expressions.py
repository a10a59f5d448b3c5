"""
Expected Expression Parser

Classifies an expected-value string into one of the DSL expression kinds and
parses function arguments. Classification follows a fixed precedence table:

1. pattern markers            {pattern('...')}
2. timestamp check            @{isTimestamp('fmt')}
3. date range functions       isBeforeDate / isAfterDate / isBetweenDates
4. numeric functions          isGreaterThan ... isBetween, asNumber, asAbsNumber
5. sentinel tokens            @{isNull}, @{isEmpty}, @{isAnyValue}, ...
6. negations                  isNotEqualNumber / isNotEqualText
7. anything else is a literal

Function calls are written as ``@{name(arg1, arg2)}`` (the leading ``@`` is
optional). Arguments are separated by commas outside single quotes; quoted
arguments keep their inner text verbatim.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from datacheck.exceptions import ParametersError
from datacheck.matching.numeric import INTEGER_PATTERN, to_decimal


class ExpressionKind(Enum):
    """Kind of expected expression, one member per DSL function family."""

    PATTERN = "pattern"
    TIMESTAMP = "isTimestamp"
    BEFORE_DATE = "isBeforeDate"
    AFTER_DATE = "isAfterDate"
    BETWEEN_DATES = "isBetweenDates"
    GREATER_THAN = "isGreaterThan"
    GREATER_OR_EQUAL = "isGreaterOrEqual"
    LESS_THAN = "isLessThan"
    LESS_OR_EQUAL = "isLessOrEqual"
    BETWEEN = "isBetween"
    AS_NUMBER = "asNumber"
    AS_ABS_NUMBER = "asAbsNumber"
    SENTINEL = "sentinel"
    NOT_EQUAL_NUMBER = "isNotEqualNumber"
    NOT_EQUAL_TEXT = "isNotEqualText"
    LITERAL = "literal"


DATE_FUNCTIONS = (
    ExpressionKind.BEFORE_DATE,
    ExpressionKind.AFTER_DATE,
    ExpressionKind.BETWEEN_DATES,
)

NUMERIC_FUNCTIONS = (
    ExpressionKind.GREATER_THAN,
    ExpressionKind.GREATER_OR_EQUAL,
    ExpressionKind.LESS_THAN,
    ExpressionKind.LESS_OR_EQUAL,
    ExpressionKind.BETWEEN,
    ExpressionKind.AS_NUMBER,
    ExpressionKind.AS_ABS_NUMBER,
)

NEGATION_FUNCTIONS = (
    ExpressionKind.NOT_EQUAL_NUMBER,
    ExpressionKind.NOT_EQUAL_TEXT,
)

# Allowed [min, max] number of arguments per function
FUNCTION_ARITY = {
    ExpressionKind.TIMESTAMP: (1, 1),
    ExpressionKind.BEFORE_DATE: (2, 2),
    ExpressionKind.AFTER_DATE: (2, 2),
    ExpressionKind.BETWEEN_DATES: (3, 4),
    ExpressionKind.GREATER_THAN: (1, 1),
    ExpressionKind.GREATER_OR_EQUAL: (1, 1),
    ExpressionKind.LESS_THAN: (1, 1),
    ExpressionKind.LESS_OR_EQUAL: (1, 1),
    ExpressionKind.BETWEEN: (2, 3),
    ExpressionKind.AS_NUMBER: (1, 3),
    ExpressionKind.AS_ABS_NUMBER: (1, 3),
    ExpressionKind.NOT_EQUAL_NUMBER: (1, 3),
    ExpressionKind.NOT_EQUAL_TEXT: (1, 3),
}

_FUNCTIONS_BY_NAME = {kind.value: kind for kind in FUNCTION_ARITY}

IS_NULL = "@{isNull}"
IS_NOT_PRESENT = "@{isNotPresent}"
IS_NOT_SET = "@{isNotSet}"
IS_NOT_NULL = "@{isNotNull}"
IS_PRESENT = "@{isPresent}"
IS_SET = "@{isSet}"
IS_EMPTY = "@{isEmpty}"
IS_NOT_EMPTY = "@{isNotEmpty}"
IS_NULL_OR_EMPTY = "@{isNullOrEmpty}"
IS_NOT_PRESENT_OR_EMPTY = "@{isNotPresentOrEmpty}"
IS_NOT_SET_OR_EMPTY = "@{isNotSetOrEmpty}"
IS_ANY_VALUE = "@{isAnyValue}"
IS_NUMBER = "@{isNumber}"
IS_INTEGER = "@{isInteger}"
IS_FLOAT = "@{isFloat}"

NULL_VALUES = frozenset({IS_NULL, IS_NOT_PRESENT, IS_NOT_SET})
NOT_NULL_VALUES = frozenset({IS_NOT_NULL, IS_PRESENT, IS_SET})
NULL_OR_EMPTY_VALUES = frozenset({IS_NULL_OR_EMPTY, IS_NOT_PRESENT_OR_EMPTY, IS_NOT_SET_OR_EMPTY})
SENTINEL_VALUES = NULL_VALUES | NOT_NULL_VALUES | NULL_OR_EMPTY_VALUES | frozenset(
    {IS_EMPTY, IS_NOT_EMPTY, IS_ANY_VALUE, IS_NUMBER, IS_INTEGER, IS_FLOAT}
)

PATTERN_MARKER = "{pattern('"
PATTERN_SPLITTER = re.compile(r"@?\{pattern\('|'\)\}")

_CALL_PATTERN = re.compile(r"@?\{\s*([A-Za-z_]\w*)\s*\((.*)\)\s*\}", re.DOTALL)


class Inclusion(Enum):
    """Which bounds of a range belong to it. Ranges are open by default."""

    NONE = "none"
    INCLUDE_LEFT = "includeLeft"
    INCLUDE_RIGHT = "includeRight"
    INCLUDE_BOTH = "includeBoth"

    def contains(self, value, left, right) -> bool:
        """Check left < value < right, with bounds included according to mode."""
        if self in (Inclusion.INCLUDE_LEFT, Inclusion.INCLUDE_BOTH):
            above_left = value >= left
        else:
            above_left = value > left

        if self in (Inclusion.INCLUDE_RIGHT, Inclusion.INCLUDE_BOTH):
            below_right = value <= right
        else:
            below_right = value < right

        return above_left and below_right


@dataclass(frozen=True)
class Argument:
    """Single function argument as written in the expression."""

    text: str
    quoted: bool = False


@dataclass(frozen=True)
class Expression:
    """Classified expected expression."""

    kind: ExpressionKind
    raw: str
    name: Optional[str] = None
    arguments: Tuple[Argument, ...] = field(default_factory=tuple)

    @property
    def is_function(self) -> bool:
        return self.kind in FUNCTION_ARITY


def split_arguments(params: str) -> List[Argument]:
    """
    Split a function parameter line into arguments.

    Commas inside single-quoted arguments don't split.

    Example:
        >>> split_arguments("'01 Jan, 2024', 'dd MMM, yyyy'")
        [Argument(text='01 Jan, 2024', quoted=True), Argument(text='dd MMM, yyyy', quoted=True)]
    """
    if not params.strip():
        return []

    arguments = []
    buffer: List[str] = []
    in_quotes = False
    for char in params:
        if char == "'":
            in_quotes = not in_quotes
            buffer.append(char)
        elif char == "," and not in_quotes:
            arguments.append(_make_argument("".join(buffer)))
            buffer = []
        else:
            buffer.append(char)
    arguments.append(_make_argument("".join(buffer)))
    return arguments


def _make_argument(text: str) -> Argument:
    text = text.strip()
    if len(text) >= 2 and text.startswith("'") and text.endswith("'"):
        return Argument(text[1:-1], quoted=True)
    return Argument(text)


def _classify_pattern(expected: str, trimmed: str) -> Optional[Expression]:
    if PATTERN_MARKER in expected:
        return Expression(ExpressionKind.PATTERN, expected)
    return None


def _classify_sentinel(expected: str, trimmed: str) -> Optional[Expression]:
    if trimmed in SENTINEL_VALUES:
        return Expression(ExpressionKind.SENTINEL, trimmed)
    return None


def _call_classifier(kinds: Sequence[ExpressionKind]) -> Callable[[str, str], Optional[Expression]]:
    def classify(expected: str, trimmed: str) -> Optional[Expression]:
        match = _CALL_PATTERN.fullmatch(trimmed)
        if match is None:
            return None
        kind = _FUNCTIONS_BY_NAME.get(match.group(1))
        if kind not in kinds:
            return None
        return Expression(kind, expected, match.group(1), tuple(split_arguments(match.group(2))))

    return classify


# Precedence matters: the first classifier returning an expression wins
CLASSIFIERS = (
    _classify_pattern,
    _call_classifier((ExpressionKind.TIMESTAMP,)),
    _call_classifier(DATE_FUNCTIONS),
    _call_classifier(NUMERIC_FUNCTIONS),
    _classify_sentinel,
    _call_classifier(NEGATION_FUNCTIONS),
)


def parse_expression(expected: Optional[str]) -> Expression:
    """
    Classify an expected value.

    Args:
        expected: Expected value as written in the test scenario (may be None)

    Returns:
        Expression with its kind and, for function calls, parsed arguments
    """
    if expected is None:
        return Expression(ExpressionKind.LITERAL, expected)

    trimmed = expected.strip()
    for classifier in CLASSIFIERS:
        expression = classifier(expected, trimmed)
        if expression is not None:
            return expression
    return Expression(ExpressionKind.LITERAL, expected)


def check_arity(expression: Expression) -> None:
    """
    Validate the number of arguments of a function expression.

    Raises:
        ParametersError: If no arguments were given or their count is out of range
    """
    minimum, maximum = FUNCTION_ARITY[expression.kind]
    count = len(expression.arguments)
    if count == 0 and minimum > 0:
        raise ParametersError(f"Parameters in function '{expression.name}' are missing.")
    if not minimum <= count <= maximum:
        raise ParametersError(
            f"Wrong number of parameters in function '{expression.name}', "
            f"min = {minimum}, max = {maximum}."
        )


def _argument_text(expression: Expression, index: int) -> Optional[str]:
    if index >= len(expression.arguments):
        return None
    text = expression.arguments[index].text.strip()
    return text or None


def _invalid(expression: Expression, index: int, value: str, parameter: str) -> ParametersError:
    return ParametersError(
        f"In function '{expression.name}' value '{value}' not valid for "
        f"param[{index + 1}] - '{parameter}'."
    )


def decimal_argument(
    expression: Expression, index: int, parameter: str, required: bool = False
) -> Optional[Decimal]:
    """Return argument as Decimal, None when omitted and not required."""
    text = _argument_text(expression, index)
    if text is None:
        if required:
            raise _invalid(expression, index, "", parameter)
        return None

    value = to_decimal(text)
    if value is None:
        raise _invalid(expression, index, text, parameter)
    return value


def integer_argument(
    expression: Expression, index: int, parameter: str, limit: Optional[int] = None
) -> Optional[int]:
    """Return argument as int, None when omitted. With limit, |value| must not exceed it."""
    text = _argument_text(expression, index)
    if text is None:
        return None
    if INTEGER_PATTERN.fullmatch(text) is None:
        raise _invalid(expression, index, text, parameter)
    try:
        value = int(text)
    except ValueError as e:
        raise _invalid(expression, index, text, parameter) from e
    if limit is not None and abs(value) > limit:
        raise _invalid(expression, index, text, parameter)
    return value


def boolean_argument(expression: Expression, index: int, parameter: str) -> bool:
    """Return argument as bool; omitted or empty arguments mean True."""
    text = _argument_text(expression, index)
    if text is None or text == "true":
        return True
    if text == "false":
        return False
    raise _invalid(expression, index, text, parameter)


def text_argument(expression: Expression, index: int, parameter: str) -> str:
    """Return a required text argument."""
    text = _argument_text(expression, index)
    if text is None:
        raise _invalid(expression, index, "", parameter)
    return text


def inclusion_argument(expression: Expression, index: int) -> Inclusion:
    """Return inclusion mode; omitted means an open interval."""
    text = _argument_text(expression, index)
    if text is None:
        return Inclusion.NONE
    for inclusion in Inclusion:
        if inclusion.value == text:
            return inclusion
    allowed = ", ".join(inclusion.value for inclusion in Inclusion)
    raise ParametersError(
        f"In function '{expression.name}' inclusion '{text}' is invalid, expected one of: {allowed}."
    )
