"""
Unit tests for comparison settings (datacheck/config/settings.py)

Covers:
- Flat action parameters
- YAML loading validated against comparison.schema.json
- Error reporting for bad values and files
"""

import json
from decimal import Decimal

import pytest

from datacheck.config.settings import (
    DEFAULT_SCHEMA_PATH,
    UNLIMITED,
    ComparisonSettings,
    ExtraPolicy,
    load_settings,
    parse_numeric_columns,
)
from datacheck.exceptions import ConfigurationError, ParametersError


class TestDefaults:
    """Tests for default settings."""

    def test_defaults(self):
        """Test: Default settings compare positionally and fail on extras"""
        settings = ComparisonSettings()
        assert settings.keyed is False
        assert settings.case_sensitive is True
        assert settings.check_duplicates is False
        assert settings.extra_policy is None
        assert settings.table_extra_policy() is ExtraPolicy.FAIL
        assert settings.message_extra_policy() is ExtraPolicy.IGNORE
        assert settings.max_passed_rows == UNLIMITED

    def test_configured_extra_policy_applies_to_both(self):
        """Test: Explicit extra policy overrides both defaults"""
        settings = ComparisonSettings(extra_policy=ExtraPolicy.INFO)
        assert settings.table_extra_policy() is ExtraPolicy.INFO
        assert settings.message_extra_policy() is ExtraPolicy.INFO

    def test_actual_column_resolution(self):
        """Test: Unmapped columns keep their name"""
        settings = ComparisonSettings(column_mapping={"Price": "Px"})
        assert settings.actual_column("Price") == "Px"
        assert settings.actual_column("Qty") == "Qty"


class TestFromParams:
    """Tests for building settings from flat parameters."""

    def test_full_parameter_set(self):
        """Test: All supported parameters are interpreted"""
        settings = ComparisonSettings.from_params(
            {
                "KeyColumns": "Account, OrderId",
                "NumericColumns": "Amount:0.01,Qty",
                "ColumnMapping": "Price=Px, Qty=Quantity",
                "IgnoreColumns": "Timestamp",
                "InfoColumns": "Comment",
                "CaseSensitive": "false",
                "CheckDuplicates": "true",
                "ExtraPolicy": "Info",
                "ServiceFields": "SendingTime",
                "MaxPassedRowsInReport": "100",
                "MaxExtraRowsInReport": "-1",
            }
        )

        assert settings.key_columns == ["Account", "OrderId"]
        assert settings.numeric_columns == {"Amount": Decimal("0.01"), "Qty": Decimal(0)}
        assert settings.column_mapping == {"Price": "Px", "Qty": "Quantity"}
        assert settings.ignore_columns == ["Timestamp"]
        assert settings.info_columns == ["Comment"]
        assert settings.case_sensitive is False
        assert settings.check_duplicates is True
        assert settings.extra_policy is ExtraPolicy.INFO
        assert settings.service_fields == ["SendingTime"]
        assert settings.max_passed_rows == 100
        assert settings.max_failed_rows == UNLIMITED
        assert settings.max_extra_rows == UNLIMITED

    def test_empty_parameters(self):
        """Test: Empty parameter map gives defaults"""
        assert ComparisonSettings.from_params({}) == ComparisonSettings()

    @pytest.mark.parametrize(
        "params",
        [
            {"NumericColumns": "Amount:abc"},
            {"NumericColumns": "Amount:-1"},
            {"CheckDuplicates": "maybe"},
            {"ExtraPolicy": "explode"},
            {"ColumnMapping": "Price"},
            {"MaxFailedRowsInReport": "ten"},
            {"MaxFailedRowsInReport": "-5"},
        ],
    )
    def test_invalid_values(self, params):
        """Test: Uninterpretable values raise ParametersError"""
        with pytest.raises(ParametersError):
            ComparisonSettings.from_params(params)

    def test_parse_numeric_columns(self):
        """Test: Precision defaults to 0"""
        assert parse_numeric_columns(["Amount:0.5", "Qty"]) == {"Amount": Decimal("0.5"), "Qty": Decimal(0)}


class TestLoadSettings:
    """Tests for YAML settings loading."""

    def test_load_valid_file(self, tmp_path):
        """Test: Valid YAML is loaded into settings"""
        path = tmp_path / "comparison.yaml"
        path.write_text(
            "key_columns: [Id]\n"
            "numeric_columns:\n"
            "  Amount: 0.01\n"
            "  Qty:\n"
            "column_mapping:\n"
            "  Price: Px\n"
            "check_duplicates: true\n"
            "extra_policy: ignore\n"
            "group_key_fields:\n"
            "  Leg: [LegId]\n"
            "max_failed_rows: 50\n",
            encoding="utf-8",
        )

        settings = load_settings(path)

        assert settings.key_columns == ["Id"]
        assert settings.numeric_columns == {"Amount": Decimal("0.01"), "Qty": Decimal(0)}
        assert settings.column_mapping == {"Price": "Px"}
        assert settings.check_duplicates is True
        assert settings.extra_policy is ExtraPolicy.IGNORE
        assert settings.group_key_fields == {"Leg": ["LegId"]}
        assert settings.max_failed_rows == 50

    def test_numeric_columns_as_list(self, tmp_path):
        """Test: Numeric columns may be listed as column:precision strings"""
        path = tmp_path / "comparison.yaml"
        path.write_text("numeric_columns: ['Amount:0.1', Qty]\n", encoding="utf-8")

        settings = load_settings(path)

        assert settings.numeric_columns == {"Amount": Decimal("0.1"), "Qty": Decimal(0)}

    def test_empty_file_gives_defaults(self, tmp_path):
        """Test: Empty file falls back to default settings"""
        path = tmp_path / "comparison.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path) == ComparisonSettings()

    def test_missing_file(self, tmp_path):
        """Test: Missing settings file raises ConfigurationError"""
        with pytest.raises(ConfigurationError):
            load_settings(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        """Test: Broken YAML raises ConfigurationError"""
        path = tmp_path / "comparison.yaml"
        path.write_text("key_columns: [Id\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_schema_violation(self, tmp_path):
        """Test: Unknown keys and wrong types are rejected by the schema"""
        path = tmp_path / "comparison.yaml"
        path.write_text("extra_policy: explode\n", encoding="utf-8")
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(path)
        assert "validation failed" in str(exc_info.value)

    def test_unknown_key_rejected(self, tmp_path):
        """Test: additionalProperties is false"""
        path = tmp_path / "comparison.yaml"
        path.write_text("key_column: [Id]\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_invalid_precision_value(self, tmp_path):
        """Test: Precision that isn't a number raises ConfigurationError"""
        path = tmp_path / "comparison.yaml"
        path.write_text("numeric_columns:\n  Amount: abc\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_custom_schema_path(self, tmp_path):
        """Test: Explicit schema file is used for validation"""
        schema = tmp_path / "strict.schema.json"
        schema.write_text(json.dumps({"type": "object", "required": ["key_columns"]}), encoding="utf-8")
        path = tmp_path / "comparison.yaml"
        path.write_text("case_sensitive: false\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_settings(path, schema_path=schema)

    def test_bundled_schema_is_valid_json(self):
        """Test: Bundled schema file ships with the package"""
        with open(DEFAULT_SCHEMA_PATH, "r", encoding="utf-8") as f:
            schema = json.load(f)
        assert schema["additionalProperties"] is False
