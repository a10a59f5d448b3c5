"""
Custom exception hierarchy for comparison operations.

This module defines domain-specific exceptions used across the package
to separate "could not evaluate" failures from ordinary mismatches.
"""


class DataCheckError(Exception):
    """
    Base exception for all comparison-related errors.
    """

    pass


class ParametersError(DataCheckError):
    """
    Raised when an expected expression or comparison setting is malformed.

    Examples: wrong number of function arguments, a non-numeric value where a
    number is required, an unknown inclusion mode or a key column that is
    missing from a header.

    DSL-level instances are caught per field by the comparators and reported
    as an ERROR outcome, so one bad expression never aborts sibling checks.
    """

    pass


class ConfigurationError(DataCheckError):
    """
    Raised when a settings file is missing, unparsable or violates the schema.
    """

    pass


class SourceError(DataCheckError):
    """
    Raised when a row source cannot be opened or read.

    Propagates out of the comparison entirely: the caller treats the whole
    comparison as failed-to-run rather than failed-to-match.
    """

    pass
