"""Unit tests for roster_etl.config."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from roster_etl.config import (
    ImportSettings,
    load_import_settings,
    settings_from_dict,
    validate_import_settings,
)
from roster_etl.errors import ImportSettingsError

REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "maintenance_import.yml"

CUSTOM_YAML = textwrap.dedent("""\
    max_rows: 50
    clear_sentinels: ["none", "n/a"]
    true_literals: ["active"]
    false_literals: ["inactive"]
    instructor_suggestion_limit: 3
    national_id_pattern: '^[A-Z]{2}\\d{4}$'
""")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

class TestLoadImportSettings:
    def test_none_gives_defaults(self):
        settings = load_import_settings(None)
        assert settings == ImportSettings()
        assert settings.max_rows == 2000
        assert settings.clear_sentinels == frozenset({"CLEAR", "-"})

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("", encoding="utf-8")
        assert load_import_settings(path).max_rows == 2000

    def test_repo_config_matches_defaults(self):
        settings = load_import_settings(REPO_CONFIG)
        defaults = ImportSettings()
        assert settings.max_rows == defaults.max_rows
        assert settings.clear_sentinels == defaults.clear_sentinels
        assert settings.true_literals == defaults.true_literals
        assert settings.false_literals == defaults.false_literals
        assert settings.national_id_pattern.pattern == defaults.national_id_pattern.pattern

    def test_custom_values(self, tmp_path):
        path = tmp_path / "custom.yml"
        path.write_text(CUSTOM_YAML, encoding="utf-8")
        settings = load_import_settings(path)
        assert settings.max_rows == 50
        assert settings.clear_sentinels == frozenset({"NONE", "N/A"})
        assert settings.true_literals == frozenset({"active"})
        assert settings.instructor_suggestion_limit == 3
        assert settings.national_id_pattern.match("AB1234")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_import_settings(tmp_path / "nope.yml")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidateImportSettings:
    def test_not_a_mapping(self):
        with pytest.raises(ImportSettingsError, match="mapping"):
            validate_import_settings(["max_rows"])

    def test_unknown_key(self):
        with pytest.raises(ImportSettingsError, match="unknown settings keys"):
            validate_import_settings({"max_row": 10})

    @pytest.mark.parametrize("value", [0, -1, "10", True, 1.5])
    def test_max_rows_positive_int(self, value):
        with pytest.raises(ImportSettingsError, match="max_rows"):
            validate_import_settings({"max_rows": value})

    def test_empty_sentinels(self):
        with pytest.raises(ImportSettingsError, match="clear_sentinels"):
            validate_import_settings({"clear_sentinels": []})

    def test_blank_literal(self):
        with pytest.raises(ImportSettingsError, match="true_literals"):
            validate_import_settings({"true_literals": ["yes", " "]})

    def test_overlapping_literals(self):
        with pytest.raises(ImportSettingsError, match="both true and false"):
            validate_import_settings({"true_literals": ["yes", "ok"], "false_literals": ["OK"]})

    def test_overlap_with_default_false(self):
        with pytest.raises(ImportSettingsError, match="both true and false"):
            validate_import_settings({"true_literals": ["no"]})

    def test_bad_pattern(self):
        with pytest.raises(ImportSettingsError, match="national_id_pattern"):
            validate_import_settings({"national_id_pattern": "(unclosed"})

    def test_custom_pattern_matches_ascii_digits_only(self):
        settings = settings_from_dict({"national_id_pattern": r"^\d{5,12}$"})
        assert settings.national_id_pattern.match("123456789")
        assert settings.national_id_pattern.match("١٢٣٤٥٦٧٨٩") is None

    def test_settings_error_is_value_error(self):
        with pytest.raises(ValueError):
            settings_from_dict({"bogus": 1})
