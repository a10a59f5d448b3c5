"""
Comparison settings.

Settings come either from a flat parameter map (as an action passes them)
or from a YAML file validated against ``comparison.schema.json``.

Flat parameters:
    KeyColumns        comma-separated key columns, in key order
    NumericColumns    comma-separated "column[:precision]" entries
    ColumnMapping     comma-separated "expected=actual" column renames
    IgnoreColumns     comma-separated columns skipped entirely
    InfoColumns       comma-separated columns reported but never scored
    CaseSensitive     true/false (default true)
    CheckDuplicates   true/false (default false)
    ExtraPolicy       ignore/info/fail (default fail for tables, ignore for messages)
    ServiceFields     comma-separated message fields not compared
    Max<Section>RowsInReport  row cap per report section (-1 = unlimited)
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import jsonschema
import yaml

from datacheck.exceptions import ConfigurationError, ParametersError
from datacheck.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SCHEMA_PATH = Path(__file__).with_name("comparison.schema.json")

UNLIMITED = -1

KEY_COLUMNS = "KeyColumns"
NUMERIC_COLUMNS = "NumericColumns"
COLUMN_MAPPING = "ColumnMapping"
IGNORE_COLUMNS = "IgnoreColumns"
INFO_COLUMNS = "InfoColumns"
CASE_SENSITIVE = "CaseSensitive"
CHECK_DUPLICATES = "CheckDuplicates"
EXTRA_POLICY = "ExtraPolicy"
SERVICE_FIELDS = "ServiceFields"
MAX_ROWS_TEMPLATE = "Max{}RowsInReport"

# Report section -> settings attribute holding its row cap
SECTION_CAPS = {
    "Passed": "max_passed_rows",
    "Failed": "max_failed_rows",
    "NotFound": "max_not_found_rows",
    "Extra": "max_extra_rows",
}


class ExtraPolicy(Enum):
    """How actual rows or sub-messages without an expected counterpart are reported."""

    IGNORE = "ignore"
    INFO = "info"
    FAIL = "fail"


@dataclass
class ComparisonSettings:
    """Configuration of one tabular or structural comparison."""

    key_columns: List[str] = field(default_factory=list)
    numeric_columns: Dict[str, Decimal] = field(default_factory=dict)
    column_mapping: Dict[str, str] = field(default_factory=dict)
    ignore_columns: List[str] = field(default_factory=list)
    info_columns: List[str] = field(default_factory=list)
    case_sensitive: bool = True
    check_duplicates: bool = False
    extra_policy: Optional[ExtraPolicy] = None
    group_key_fields: Dict[str, List[str]] = field(default_factory=dict)
    service_fields: List[str] = field(default_factory=list)
    max_passed_rows: int = UNLIMITED
    max_failed_rows: int = UNLIMITED
    max_not_found_rows: int = UNLIMITED
    max_extra_rows: int = UNLIMITED

    @property
    def keyed(self) -> bool:
        return bool(self.key_columns)

    def table_extra_policy(self) -> ExtraPolicy:
        """Policy for extra rows; tables fail on them unless configured otherwise."""
        return self.extra_policy or ExtraPolicy.FAIL

    def message_extra_policy(self) -> ExtraPolicy:
        """Policy for extra repeating groups; ignored unless configured otherwise."""
        return self.extra_policy or ExtraPolicy.IGNORE

    def actual_column(self, expected_column: str) -> str:
        """Resolve the actual-side name of an expected column."""
        return self.column_mapping.get(expected_column, expected_column)

    def precision(self, column: str) -> Optional[Decimal]:
        """Return precision of a numeric column, None for non-numeric columns."""
        return self.numeric_columns.get(column)

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "ComparisonSettings":
        """
        Build settings from flat action parameters.

        Raises:
            ParametersError: If a parameter value can't be interpreted
        """
        settings = cls(
            key_columns=_split_list(params.get(KEY_COLUMNS)),
            numeric_columns=parse_numeric_columns(_split_list(params.get(NUMERIC_COLUMNS))),
            column_mapping=_parse_mapping(params.get(COLUMN_MAPPING)),
            ignore_columns=_split_list(params.get(IGNORE_COLUMNS)),
            info_columns=_split_list(params.get(INFO_COLUMNS)),
            case_sensitive=_parse_flag(params, CASE_SENSITIVE, True),
            check_duplicates=_parse_flag(params, CHECK_DUPLICATES, False),
            extra_policy=_parse_policy(params.get(EXTRA_POLICY)),
            service_fields=_split_list(params.get(SERVICE_FIELDS)),
        )
        for section, attribute in SECTION_CAPS.items():
            name = MAX_ROWS_TEMPLATE.format(section)
            setattr(settings, attribute, _parse_cap(name, params.get(name)))

        logger.debug(
            "Comparison settings built from parameters",
            operation="settings_from_params",
            context={"key_columns": settings.key_columns, "numeric_columns": list(settings.numeric_columns)},
        )
        return settings

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComparisonSettings":
        """Build settings from a schema-valid mapping (e.g. parsed YAML)."""
        numeric = data.get("numeric_columns") or {}
        if isinstance(numeric, list):
            numeric_columns = parse_numeric_columns([str(item) for item in numeric])
        else:
            numeric_columns = {
                column: _parse_precision(column, str(precision if precision is not None else 0))
                for column, precision in numeric.items()
            }

        settings = cls(
            key_columns=list(data.get("key_columns") or []),
            numeric_columns=numeric_columns,
            column_mapping=dict(data.get("column_mapping") or {}),
            ignore_columns=list(data.get("ignore_columns") or []),
            info_columns=list(data.get("info_columns") or []),
            case_sensitive=data.get("case_sensitive", True),
            check_duplicates=data.get("check_duplicates", False),
            extra_policy=_parse_policy(data.get("extra_policy")),
            group_key_fields={
                group: list(fields) for group, fields in (data.get("group_key_fields") or {}).items()
            },
            service_fields=list(data.get("service_fields") or []),
        )
        for attribute in SECTION_CAPS.values():
            if attribute in data:
                setattr(settings, attribute, data[attribute])
        return settings


def parse_numeric_columns(entries: List[str]) -> Dict[str, Decimal]:
    """
    Parse "column[:precision]" entries, precision defaults to 0.

    Example:
        >>> parse_numeric_columns(["Amount:0.01", "Qty"])
        {'Amount': Decimal('0.01'), 'Qty': Decimal('0')}
    """
    columns: Dict[str, Decimal] = {}
    for entry in entries:
        column, _, precision = entry.partition(":")
        column = column.strip()
        precision = precision.strip()
        columns[column] = _parse_precision(column, precision) if precision else Decimal(0)
    return columns


def _parse_precision(column: str, text: str) -> Decimal:
    try:
        precision = Decimal(text)
    except InvalidOperation as e:
        raise ParametersError(
            f"Numeric column '{column}' with specified precision '{text}' couldn't be obtained."
        ) from e
    if not precision.is_finite() or precision < 0:
        raise ParametersError(f"Numeric column '{column}' has invalid precision '{text}'.")
    return precision


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_mapping(value: Optional[str]) -> Dict[str, str]:
    mapping = {}
    for entry in _split_list(value):
        expected, separator, actual = entry.partition("=")
        if not separator or not expected.strip() or not actual.strip():
            raise ParametersError(f"Invalid column mapping entry '{entry}', expected 'expected=actual'.")
        mapping[expected.strip()] = actual.strip()
    return mapping


def _parse_flag(params: Mapping[str, str], name: str, default: bool) -> bool:
    value = params.get(name)
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized in ("true", "yes", "y", "1"):
        return True
    if normalized in ("false", "no", "n", "0"):
        return False
    raise ParametersError(f"Parameter '{name}' has invalid boolean value '{value}'.")


def _parse_policy(value: Optional[str]) -> Optional[ExtraPolicy]:
    if value is None or not str(value).strip():
        return None
    try:
        return ExtraPolicy(str(value).strip().lower())
    except ValueError as e:
        allowed = ", ".join(policy.value for policy in ExtraPolicy)
        raise ParametersError(f"Invalid extra policy '{value}', expected one of: {allowed}.") from e


def _parse_cap(name: str, value: Optional[str]) -> int:
    if value is None or not value.strip():
        return UNLIMITED
    try:
        cap = int(value.strip())
    except ValueError as e:
        raise ParametersError(f"Parameter '{name}' must be an integer, got '{value}'.") from e
    if cap < UNLIMITED:
        raise ParametersError(f"Parameter '{name}' must be -1 (unlimited) or greater, got {cap}.")
    return cap


def load_settings(path, schema_path=None) -> ComparisonSettings:
    """
    Load comparison settings from YAML and validate against schema.

    Args:
        path: Path to settings YAML file
        schema_path: Path to JSON schema (defaults to the bundled comparison.schema.json)

    Returns:
        ComparisonSettings

    Raises:
        ConfigurationError: If a file is missing, unparsable or fails validation
    """
    schema_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH

    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)
    except FileNotFoundError as e:
        logger.error("Settings schema file not found", operation="load_settings", error=str(schema_path))
        raise ConfigurationError(f"Settings schema file not found: {schema_path}") from e
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in settings schema", operation="load_settings", error=str(e))
        raise ConfigurationError(f"Invalid JSON in {schema_path}: {e}") from e

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        logger.error("Settings file not found", operation="load_settings", error=str(path))
        raise ConfigurationError(f"Settings file not found: {path}") from e
    except yaml.YAMLError as e:
        logger.error("Invalid YAML in settings file", operation="load_settings", error=str(e))
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not data:
        logger.warning("Empty settings file, using defaults", operation="load_settings", context={"path": str(path)})
        return ComparisonSettings()

    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        logger.error("Settings failed schema validation", operation="load_settings", error=e.message)
        raise ConfigurationError(f"Settings validation failed: {e.message}") from e
    except jsonschema.SchemaError as e:
        logger.error("Settings schema is invalid", operation="load_settings", error=e.message)
        raise ConfigurationError(f"Settings schema is invalid: {e.message}") from e

    try:
        settings = ComparisonSettings.from_dict(data)
    except ParametersError as e:
        logger.error("Settings contain invalid values", operation="load_settings", error=str(e))
        raise ConfigurationError(str(e)) from e

    logger.info(
        "Loaded comparison settings",
        operation="load_settings",
        context={"path": str(path), "key_columns": settings.key_columns},
    )
    return settings
