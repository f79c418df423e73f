"""roster_etl.config

YAML-backed settings for the student maintenance import.

Usage:
    from pathlib import Path
    from roster_etl.config import load_import_settings

    settings = load_import_settings(Path("config/maintenance_import.yml"))

Omitted keys keep their defaults, so an empty file (or no file at all) yields
the stock behaviour: 2000-row cap, CLEAR/- sentinels, English + Hebrew boolean
literals.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from roster_etl.coerce import (
    DEFAULT_FALSE_LITERALS,
    DEFAULT_NATIONAL_ID_PATTERN,
    DEFAULT_TRUE_LITERALS,
)
from roster_etl.errors import ImportSettingsError
from roster_etl.normalize import DEFAULT_CLEAR_SENTINELS

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_MAX_ROWS = 2000
DEFAULT_SUGGESTION_LIMIT = 5

KNOWN_KEYS = frozenset({
    "max_rows",
    "clear_sentinels",
    "true_literals",
    "false_literals",
    "instructor_suggestion_limit",
    "national_id_pattern",
})


# ---------------------------------------------------------------------------
# Settings dataclass
# ---------------------------------------------------------------------------

@dataclass
class ImportSettings:
    """Validated import settings."""

    max_rows: int = DEFAULT_MAX_ROWS
    clear_sentinels: frozenset[str] = DEFAULT_CLEAR_SENTINELS
    true_literals: frozenset[str] = DEFAULT_TRUE_LITERALS
    false_literals: frozenset[str] = DEFAULT_FALSE_LITERALS
    instructor_suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT
    national_id_pattern: re.Pattern[str] = field(default=DEFAULT_NATIONAL_ID_PATTERN)


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_import_settings(yaml_path: Path | None) -> ImportSettings:
    """Load, validate, and return ImportSettings from a YAML file.

    Args:
        yaml_path: Path to the settings file, or None for defaults.

    Raises:
        ImportSettingsError: If any key is unknown or has an invalid value.
        FileNotFoundError: If the YAML file does not exist.
    """
    if yaml_path is None:
        return ImportSettings()
    raw = yaml_path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    return settings_from_dict(data)


def settings_from_dict(data: dict[str, Any]) -> ImportSettings:
    validate_import_settings(data)
    settings = ImportSettings()
    if "max_rows" in data:
        settings.max_rows = int(data["max_rows"])
    if "instructor_suggestion_limit" in data:
        settings.instructor_suggestion_limit = int(data["instructor_suggestion_limit"])
    if "clear_sentinels" in data:
        settings.clear_sentinels = frozenset(str(s).strip().upper() for s in data["clear_sentinels"])
    if "true_literals" in data:
        settings.true_literals = frozenset(str(s).strip().lower() for s in data["true_literals"])
    if "false_literals" in data:
        settings.false_literals = frozenset(str(s).strip().lower() for s in data["false_literals"])
    if "national_id_pattern" in data:
        settings.national_id_pattern = re.compile(data["national_id_pattern"], re.ASCII)
    return settings


def validate_import_settings(data: Any) -> None:
    """Raise ImportSettingsError if data does not match the settings schema.

    Validates:
      - top level is a mapping with no unknown keys
      - max_rows and instructor_suggestion_limit are positive integers
      - sentinel and literal lists are non-empty lists of strings
      - true_literals and false_literals do not overlap
      - national_id_pattern compiles; it is matched in ASCII mode
    """
    if not isinstance(data, dict):
        raise ImportSettingsError("settings file must contain a mapping")

    unknown = set(data) - KNOWN_KEYS
    if unknown:
        raise ImportSettingsError(f"unknown settings keys: {sorted(unknown)}")

    for key in ("max_rows", "instructor_suggestion_limit"):
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ImportSettingsError(f"{key} must be a positive integer, got {value!r}")

    for key in ("clear_sentinels", "true_literals", "false_literals"):
        if key in data:
            value = data[key]
            if not isinstance(value, list) or not value:
                raise ImportSettingsError(f"{key} must be a non-empty list")
            if not all(isinstance(v, str) and v.strip() for v in value):
                raise ImportSettingsError(f"{key} entries must be non-blank strings")

    true_set = {v.strip().lower() for v in data.get("true_literals") or DEFAULT_TRUE_LITERALS}
    false_set = {v.strip().lower() for v in data.get("false_literals") or DEFAULT_FALSE_LITERALS}
    overlap = true_set & false_set
    if overlap:
        raise ImportSettingsError(f"literals listed as both true and false: {sorted(overlap)}")

    if "national_id_pattern" in data:
        try:
            re.compile(data["national_id_pattern"], re.ASCII)
        except (re.error, TypeError) as exc:
            raise ImportSettingsError(f"national_id_pattern does not compile: {exc}") from exc
