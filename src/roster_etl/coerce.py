"""roster_etl.coerce

Field coercers for student maintenance rows.

Every coercer takes one raw cell value and returns a three-state result:

  Absent           : nothing was supplied; the field is left unchanged.
  Invalid(reason)  : something was supplied but cannot be used; the row fails.
  Provided(value)  : a usable value; ``value=None`` means "clear this field".

Absent may carry a caller-supplied ``default`` (boolean flags use it), but an
Absent result never enters a diff.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

from roster_etl.normalize import (
    DEFAULT_CLEAR_SENTINELS,
    is_clear_sentinel,
    is_empty_cell,
    split_tags,
    trim,
)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

HHMM_PATTERN = re.compile(r"^([01][0-9]|2[0-3]):([0-5][0-9])$")
TIME_PATTERN = re.compile(
    r"^(?:[01][0-9]|2[0-3]):[0-5][0-9](?::[0-5][0-9](?:\.[0-9]{1,6})?)?"
    r"(?:Z|[+-](?:0[0-9]|1[0-9]|2[0-3])(?::?[0-5][0-9])?)?$"
)
DEFAULT_NATIONAL_ID_PATTERN = re.compile(r"^[0-9]{5,12}$")
ISRAELI_PHONE_PATTERN = re.compile(
    r"^(?:0(?:5[0-9]|[2-489][0-9])-?[0-9]{7}|(?:\+?972-?)?5[0-9]-?[0-9]{7})$"
)
_MISSING_LEADING_ZERO = re.compile(r"^[2-589][0-9]{7,8}$")
_DIGITS = re.compile(r"^[0-9]+$")

DEFAULT_TRUE_LITERALS = frozenset({"true", "1", "yes", "y", "on", "כן"})
DEFAULT_FALSE_LITERALS = frozenset({"false", "0", "no", "n", "off", "לא"})


# ---------------------------------------------------------------------------
# Result variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Absent:
    default: Any = None


@dataclass(frozen=True)
class Invalid:
    reason: str = ""
    code: str | None = None


@dataclass(frozen=True)
class Provided:
    value: Any


FieldResult = Union[Absent, Invalid, Provided]

ABSENT = Absent()


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

def coerce_required_text(raw: Any) -> FieldResult:
    """Text that may be replaced but never cleared (e.g. student name)."""
    if is_empty_cell(raw):
        return ABSENT
    if not isinstance(raw, str):
        return Invalid("expected text")
    return Provided(trim(raw))


def coerce_optional_text(
    raw: Any,
    sentinels: frozenset[str] = DEFAULT_CLEAR_SENTINELS,
) -> FieldResult:
    if is_empty_cell(raw):
        return ABSENT
    if not isinstance(raw, str):
        return Invalid("expected text")
    if is_clear_sentinel(raw, sentinels):
        return Provided(None)
    return Provided(trim(raw))


# ---------------------------------------------------------------------------
# Day of week / time of day
# ---------------------------------------------------------------------------

def coerce_day_of_week(raw: Any) -> FieldResult:
    """Integer day in [1, 7]; anything else is invalid."""
    if is_empty_cell(raw):
        return ABSENT
    if isinstance(raw, bool):
        return Invalid("expected a day number 1-7")
    if isinstance(raw, int):
        day = raw
    elif isinstance(raw, str) and _DIGITS.match(raw.strip()):
        day = int(raw.strip())
    else:
        return Invalid("expected a day number 1-7")
    if 1 <= day <= 7:
        return Provided(day)
    return Invalid(f"day {day} out of range 1-7")


def coerce_session_time(raw: Any) -> FieldResult:
    """HH:MM[:SS[.ffffff]][timezone]; the stored value is always HH:MM."""
    if is_empty_cell(raw):
        return ABSENT
    if not isinstance(raw, str):
        return Invalid("expected HH:MM")
    v = raw.strip()
    if HHMM_PATTERN.match(v):
        return Provided(v)
    if TIME_PATTERN.match(v):
        return Provided(v[:5])
    return Invalid(f"unrecognized time {v!r}")


# ---------------------------------------------------------------------------
# Boolean flag
# ---------------------------------------------------------------------------

def coerce_boolean_flag(
    raw: Any,
    *,
    default: Any = None,
    allow_undefined: bool = True,
    true_literals: frozenset[str] = DEFAULT_TRUE_LITERALS,
    false_literals: frozenset[str] = DEFAULT_FALSE_LITERALS,
) -> FieldResult:
    """Accept bool, 1/0, and case-insensitive literal synonyms.

    A blank or missing cell is Absent(default) when ``allow_undefined`` is
    set. Anything present but unrecognized is Invalid, never defaulted.
    """
    if is_empty_cell(raw):
        if allow_undefined:
            return Absent(default=default)
        return Invalid("value required")
    if isinstance(raw, bool):
        return Provided(raw)
    if isinstance(raw, int):
        if raw in (0, 1):
            return Provided(bool(raw))
        return Invalid(f"unrecognized flag {raw!r}")
    if isinstance(raw, str):
        v = raw.strip().lower()
        if v in true_literals:
            return Provided(True)
        if v in false_literals:
            return Provided(False)
    return Invalid(f"unrecognized flag {raw!r}")


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

def coerce_tags(
    raw: Any,
    sentinels: frozenset[str] = DEFAULT_CLEAR_SENTINELS,
) -> FieldResult:
    """Return Provided(list of tag names), Provided(None) to clear, or Absent."""
    if is_empty_cell(raw):
        return ABSENT
    if isinstance(raw, (list, tuple)):
        names: list[str] = []
        for entry in raw:
            if not isinstance(entry, str):
                return Invalid("tag entries must be text")
            if entry.strip():
                names.append(entry.strip())
        return Provided(names) if names else ABSENT
    if not isinstance(raw, str):
        return Invalid("expected a delimited tag list")
    if is_clear_sentinel(raw, sentinels):
        return Provided(None)
    names = split_tags(raw)
    return Provided(names) if names else ABSENT


# ---------------------------------------------------------------------------
# Identifier-like values
# ---------------------------------------------------------------------------

def coerce_national_id(
    raw: Any,
    pattern: re.Pattern[str] = DEFAULT_NATIONAL_ID_PATTERN,
) -> FieldResult:
    if is_empty_cell(raw):
        return ABSENT
    if isinstance(raw, str) and pattern.match(raw.strip()):
        return Provided(raw.strip())
    return Invalid("national id must be 5-12 digits")


def coerce_phone(raw: Any) -> FieldResult:
    """Israeli phone number.

    Excel text formulas (="0541234567") are unwrapped and a leading zero is
    restored when Excel dropped it. The stored value keeps the caller's
    separators.
    """
    if is_empty_cell(raw):
        return ABSENT
    if not isinstance(raw, str):
        return Invalid("expected text")
    v = raw.strip()
    if v.startswith('="') and v.endswith('"'):
        v = v[2:-1].strip()
    compact = re.sub(r"[\s-]", "", v)
    if _MISSING_LEADING_ZERO.match(compact):
        v = "0" + v
        compact = "0" + compact
    if ISRAELI_PHONE_PATTERN.match(compact):
        return Provided(v)
    return Invalid(f"unrecognized phone {raw.strip()!r}")
