"""Normalization functions for student maintenance CSV ingestion.

Most functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

DEFAULT_CLEAR_SENTINELS = frozenset({"CLEAR", "-"})

_TAG_DELIMITERS = re.compile(r"[,;|]")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: Any) -> str | None:
    """Strip leading/trailing whitespace; treat empty or non-string as None."""
    if not isinstance(value, str):
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: Any) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: normalize_key  (catalog lookups)
# ---------------------------------------------------------------------------

def normalize_key(value: Any) -> str | None:
    """Case-insensitive lookup key for instructor and tag names.

    NFKC-folds, lowercases, and collapses whitespace. Punctuation is kept:
    tag names such as "ADHD / ADD" must stay distinct from "ADHD ADD".
    """
    v = normalize_space(value)
    if v is None:
        return None
    v = unicodedata.normalize("NFKC", v)
    return v.casefold()


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and UUID_PATTERN.match(value.strip()) is not None


# ---------------------------------------------------------------------------
# Rule 4: cell state
# ---------------------------------------------------------------------------

def is_empty_cell(value: Any) -> bool:
    """None, or a string that is blank after trimming."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def is_clear_sentinel(
    value: Any,
    sentinels: frozenset[str] = DEFAULT_CLEAR_SENTINELS,
) -> bool:
    """True when the cell explicitly asks for the field to be emptied."""
    if not isinstance(value, str):
        return False
    return value.strip().upper() in sentinels


# ---------------------------------------------------------------------------
# Rule 5: split_tags
# ---------------------------------------------------------------------------

def split_tags(value: str | None) -> list[str]:
    """Split a tag cell on ',', ';' or '|'; trim and drop empty tokens.

    Duplicates are kept; they collapse once names resolve to catalog ids.
    """
    v = trim(value)
    if v is None:
        return []
    return [t.strip() for t in _TAG_DELIMITERS.split(v) if t.strip()]


# ---------------------------------------------------------------------------
# Rule 6: normalize_time_for_comparison
# ---------------------------------------------------------------------------

def normalize_time_for_comparison(value: Any) -> Any:
    """Reduce a stored or supplied time to zero-padded 'HH:MM'.

    Handles "16:30", "16:30:00", "16:30:00+00", "16:30:00Z" and
    "16:30:00-05:00". Non-strings are returned unchanged so that None
    compares equal to None.
    """
    if not isinstance(value, str):
        return value
    v = value.strip()
    if not v:
        return None
    time_only = re.split(r"[Z+]|(?<=[0-9])-(?=[0-9]{2}(?::?[0-9]{2})?$)", v, maxsplit=1)[0]
    parts = time_only.split(":")
    if len(parts) >= 2:
        return f"{parts[0].zfill(2)}:{parts[1].zfill(2)}"
    return v
