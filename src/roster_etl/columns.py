"""roster_etl.columns

Canonical student fields and the header alias table.

Every header in an input file must resolve to exactly one CanonicalField
(or to an ignored export-metadata column); anything else aborts the batch
before a single row is read. Matching is case-insensitive after trimming.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from roster_etl.errors import BatchAbortError


class CanonicalField(str, enum.Enum):
    STUDENT_ID = "student_id"
    NAME = "name"
    NATIONAL_ID = "national_id"
    CONTACT_NAME = "contact_name"
    CONTACT_PHONE = "contact_phone"
    INSTRUCTOR = "assigned_instructor_id"
    DEFAULT_SERVICE = "default_service"
    DEFAULT_DAY = "default_day_of_week"
    DEFAULT_TIME = "default_session_time"
    NOTES = "notes"
    TAGS = "tags"
    IS_ACTIVE = "is_active"


# ---------------------------------------------------------------------------
# Alias table
# ---------------------------------------------------------------------------

FIELD_ALIASES: dict[CanonicalField, tuple[str, ...]] = {
    CanonicalField.STUDENT_ID: (
        "system_uuid", "student_id", "id", "מזהה מערכת (uuid)", "מזהה מערכת",
    ),
    CanonicalField.NAME: ("name", "student_name", "שם התלמיד"),
    CanonicalField.NATIONAL_ID: ("national_id", "nationalid", "מספר זהות"),
    CanonicalField.CONTACT_NAME: ("contact_name", "contactname", "שם איש קשר"),
    CanonicalField.CONTACT_PHONE: ("contact_phone", "contactphone", "phone", "טלפון"),
    CanonicalField.INSTRUCTOR: (
        "assigned_instructor_name", "assigned_instructor", "assigned_instructor_id",
        "instructor_name", "instructor_id", "instructor", "שם מדריך",
    ),
    CanonicalField.DEFAULT_SERVICE: ("default_service", "service", "שירות ברירת מחדל"),
    CanonicalField.DEFAULT_DAY: ("default_day_of_week", "day", "יום ברירת מחדל"),
    CanonicalField.DEFAULT_TIME: (
        "default_session_time", "session_time", "sessiontime", "שעת מפגש ברירת מחדל",
    ),
    CanonicalField.NOTES: ("notes", "הערות"),
    CanonicalField.TAGS: ("tags", "tag_ids", "תגיות"),
    CanonicalField.IS_ACTIVE: ("is_active", "active", "status", "פעיל"),
}

# Export metadata written by the roster export; recognized but never read.
IGNORED_COLUMNS = frozenset({"extraction_reason", "סיבת ייצוא"})

ALIAS_TO_FIELD: dict[str, CanonicalField] = {
    alias: canonical
    for canonical, aliases in FIELD_ALIASES.items()
    for alias in aliases
}


def _header_key(header: str) -> str:
    return header.strip().lower()


def valid_column_names() -> list[str]:
    """Every accepted header, in alias-table order (for remediation output)."""
    names = [alias for aliases in FIELD_ALIASES.values() for alias in aliases]
    return names + sorted(IGNORED_COLUMNS)


# ---------------------------------------------------------------------------
# Column map
# ---------------------------------------------------------------------------

@dataclass
class ColumnMap:
    """Resolved headers: canonical field -> the header that supplies it."""

    headers: dict[CanonicalField, str] = field(default_factory=dict)
    ignored: list[str] = field(default_factory=list)

    @property
    def id_column(self) -> str:
        return self.headers[CanonicalField.STUDENT_ID]

    def has(self, canonical: CanonicalField) -> bool:
        return canonical in self.headers

    def cell(self, row: Mapping[str, Any], canonical: CanonicalField) -> Any:
        """Raw cell for a canonical field, or None when the column is absent."""
        header = self.headers.get(canonical)
        if header is None:
            return None
        return row.get(header)


def resolve_columns(headers: Iterable[str]) -> ColumnMap:
    """Resolve input headers against the alias table.

    Raises:
        BatchAbortError: ``missing_id_column``, ``unrecognized_columns`` or
            ``duplicate_columns``.
    """
    column_map = ColumnMap()
    unrecognized: list[str] = []
    duplicates: dict[str, list[str]] = {}

    for header in headers:
        key = _header_key(header)
        if key in IGNORED_COLUMNS:
            column_map.ignored.append(header)
            continue
        canonical = ALIAS_TO_FIELD.get(key)
        if canonical is None:
            unrecognized.append(header)
            continue
        if canonical in column_map.headers:
            duplicates.setdefault(canonical.value, [column_map.headers[canonical]]).append(header)
            continue
        column_map.headers[canonical] = header

    if CanonicalField.STUDENT_ID not in column_map.headers:
        raise BatchAbortError(
            "missing_id_column",
            "No student id column found.",
            accepted=list(FIELD_ALIASES[CanonicalField.STUDENT_ID]),
        )
    if unrecognized:
        raise BatchAbortError(
            "unrecognized_columns",
            "Check for typos in column names.",
            columns=unrecognized,
            valid_columns=valid_column_names(),
        )
    if duplicates:
        raise BatchAbortError(
            "duplicate_columns",
            "More than one column maps to the same field.",
            fields=duplicates,
        )
    return column_map
