"""
Date and time parsing for matcher functions.

Formats may be given either as ``strptime`` directives (``%d.%m.%Y``) or as
the date patterns test matrices are usually written with (``dd.MM.yyyy``).
Parsing is strict: the whole value must be consumed by the format.
"""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional

from datacheck.exceptions import ParametersError

logger = logging.getLogger(__name__)

# Pattern letter -> directive for a run of that letter of the given length
_LETTER_DIRECTIVES = {
    "y": lambda count: "%y" if count == 2 else "%Y",
    "M": lambda count: "%m" if count <= 2 else ("%b" if count == 3 else "%B"),
    "d": lambda count: "%d",
    "H": lambda count: "%H",
    "k": lambda count: "%H",
    "h": lambda count: "%I",
    "K": lambda count: "%I",
    "m": lambda count: "%M",
    "s": lambda count: "%S",
    "S": lambda count: "%f",
    "a": lambda count: "%p",
    "E": lambda count: "%a" if count <= 3 else "%A",
    "D": lambda count: "%j",
    "z": lambda count: "%Z",
    "Z": lambda count: "%z",
    "X": lambda count: "%z",
}


@lru_cache(maxsize=256)
def to_strptime_format(pattern: str) -> str:
    """
    Translate a date pattern into a ``strptime`` format.

    Patterns already containing ``%`` are returned unchanged. Text in single
    quotes is copied literally (``''`` stands for one quote).

    Raises:
        ParametersError: If the pattern uses an unsupported letter or has an
            unterminated quote

    Example:
        >>> to_strptime_format("dd.MM.yyyy HH:mm:ss")
        "%d.%m.%Y %H:%M:%S"
        >>> to_strptime_format("yyyy-MM-dd'T'HH:mm")
        "%Y-%m-%dT%H:%M"
    """
    if "%" in pattern:
        return pattern

    result = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]

        if char == "'":
            end = pattern.find("'", index + 1)
            if end == index + 1:
                result.append("'")
                index += 2
                continue
            if end < 0:
                raise ParametersError(f"Unterminated quote in date format '{pattern}'")
            result.append(pattern[index + 1 : end])
            index = end + 1
            continue

        if char.isalpha():
            run_end = index
            while run_end < length and pattern[run_end] == char:
                run_end += 1
            directive = _LETTER_DIRECTIVES.get(char)
            if directive is None:
                raise ParametersError(f"Unsupported letter '{char}' in date format '{pattern}'")
            result.append(directive(run_end - index))
            index = run_end
            continue

        result.append(char)
        index += 1

    return "".join(result)


def parse_date(value: Optional[str], pattern: str) -> Optional[datetime]:
    """
    Parse value with the given pattern.

    Returns:
        Parsed datetime, or None if value is absent or doesn't fit the pattern
    """
    if value is None:
        return None

    date_format = to_strptime_format(pattern)
    try:
        return datetime.strptime(value, date_format)
    except ValueError as e:
        logger.debug(f"Value '{value}' doesn't match date format '{pattern}': {e}")
        return None


def is_timestamp(value: Optional[str], pattern: str) -> bool:
    """Check that the entire value is a valid timestamp in the given pattern."""
    return parse_date(value, pattern) is not None
