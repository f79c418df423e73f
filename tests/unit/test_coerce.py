"""Unit tests for roster_etl.coerce three-state field coercers."""

from __future__ import annotations

import re

import pytest

from roster_etl.coerce import (
    ABSENT,
    Absent,
    Invalid,
    Provided,
    coerce_boolean_flag,
    coerce_day_of_week,
    coerce_national_id,
    coerce_optional_text,
    coerce_phone,
    coerce_required_text,
    coerce_session_time,
    coerce_tags,
)


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

class TestOptionalText:
    def test_trims(self):
        assert coerce_optional_text("  Rina ") == Provided("Rina")

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_is_absent(self, raw):
        assert coerce_optional_text(raw) == ABSENT

    @pytest.mark.parametrize("raw", ["CLEAR", "clear", "-", " - "])
    def test_sentinel_clears(self, raw):
        assert coerce_optional_text(raw) == Provided(None)

    def test_non_text_invalid(self):
        assert isinstance(coerce_optional_text(12), Invalid)


class TestRequiredText:
    def test_value(self):
        assert coerce_required_text(" Noa ") == Provided("Noa")

    def test_sentinel_is_literal(self):
        # Names cannot be cleared; the sentinel is just text here.
        assert coerce_required_text("CLEAR") == Provided("CLEAR")

    def test_blank_absent(self):
        assert coerce_required_text("") == ABSENT


# ---------------------------------------------------------------------------
# Day of week
# ---------------------------------------------------------------------------

class TestDayOfWeek:
    @pytest.mark.parametrize("raw,expected", [("1", 1), (" 7 ", 7), (3, 3), ("04", 4)])
    def test_valid(self, raw, expected):
        assert coerce_day_of_week(raw) == Provided(expected)

    @pytest.mark.parametrize("raw", ["0", "8", 0, 8, "-1", "Monday", "2.5", "ראשון", True])
    def test_invalid(self, raw):
        assert isinstance(coerce_day_of_week(raw), Invalid)

    def test_blank_absent(self):
        assert coerce_day_of_week("") == ABSENT

    def test_non_ascii_digit_invalid(self):
        assert isinstance(coerce_day_of_week("٣"), Invalid)


# ---------------------------------------------------------------------------
# Session time
# ---------------------------------------------------------------------------

class TestSessionTime:
    def test_hhmm_kept(self):
        assert coerce_session_time("09:15") == Provided("09:15")

    @pytest.mark.parametrize("raw", ["16:30:00", "16:30:00+00", "16:30:00Z", "16:30:00.5+03:00"])
    def test_full_form_trimmed_to_hhmm(self, raw):
        assert coerce_session_time(raw) == Provided("16:30")

    @pytest.mark.parametrize("raw", ["24:00", "9:15", "16:60", "noon", "16-30"])
    def test_invalid(self, raw):
        assert isinstance(coerce_session_time(raw), Invalid)

    def test_non_string_invalid(self):
        assert isinstance(coerce_session_time(1630), Invalid)

    def test_non_ascii_digits_invalid(self):
        assert isinstance(coerce_session_time("١٦:٣٠"), Invalid)

    def test_blank_absent(self):
        assert coerce_session_time("  ") == ABSENT


# ---------------------------------------------------------------------------
# Boolean flag
# ---------------------------------------------------------------------------

class TestBooleanFlag:
    @pytest.mark.parametrize("raw", ["true", "TRUE", "1", "yes", "Y", "on", "כן", True, 1])
    def test_true(self, raw):
        assert coerce_boolean_flag(raw) == Provided(True)

    @pytest.mark.parametrize("raw", ["false", "0", "No", "n", "OFF", "לא", False, 0])
    def test_false(self, raw):
        assert coerce_boolean_flag(raw) == Provided(False)

    def test_absent_carries_default(self):
        result = coerce_boolean_flag(None, default=True, allow_undefined=True)
        assert result == Absent(default=True)
        assert not isinstance(result, Provided)

    def test_absent_not_allowed(self):
        assert isinstance(coerce_boolean_flag(None, allow_undefined=False), Invalid)

    @pytest.mark.parametrize("raw", ["maybe", "2", 2, "active"])
    def test_unrecognized_is_invalid_not_default(self, raw):
        assert isinstance(coerce_boolean_flag(raw, default=True), Invalid)

    def test_custom_literals(self):
        result = coerce_boolean_flag(
            "active",
            true_literals=frozenset({"active"}),
            false_literals=frozenset({"inactive"}),
        )
        assert result == Provided(True)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class TestTags:
    def test_string_split(self):
        assert coerce_tags("Anxiety; Reading|Math") == Provided(["Anxiety", "Reading", "Math"])

    def test_list(self):
        assert coerce_tags([" Anxiety ", "", "Reading"]) == Provided(["Anxiety", "Reading"])

    def test_list_with_non_text_invalid(self):
        assert isinstance(coerce_tags(["Anxiety", 3]), Invalid)

    def test_clear(self):
        assert coerce_tags("CLEAR") == Provided(None)

    def test_only_delimiters_absent(self):
        assert coerce_tags(",;|") == ABSENT

    def test_no_dedup_at_this_stage(self):
        assert coerce_tags("a,a") == Provided(["a", "a"])


# ---------------------------------------------------------------------------
# National id / phone
# ---------------------------------------------------------------------------

class TestNationalId:
    def test_valid(self):
        assert coerce_national_id(" 123456789 ") == Provided("123456789")

    @pytest.mark.parametrize("raw", ["1234", "1234567890123", "12345678a", 123456789])
    def test_invalid(self, raw):
        assert isinstance(coerce_national_id(raw), Invalid)

    def test_absent_not_validated(self):
        assert coerce_national_id(None) == ABSENT
        assert coerce_national_id("") == ABSENT

    def test_custom_pattern(self):
        assert coerce_national_id("AB123", re.compile(r"^[A-Z]{2}\d{3}$")) == Provided("AB123")

    @pytest.mark.parametrize("raw", ["١٢٣٤٥٦٧٨٩", "۱۲۳۴۵۶۷۸۹", "１２３４５６７８９"])
    def test_non_ascii_digits_invalid(self, raw):
        assert coerce_national_id(raw) == Invalid("national id must be 5-12 digits")


class TestPhone:
    def test_mobile(self):
        assert coerce_phone("054-1234567") == Provided("054-1234567")

    def test_excel_formula_unwrapped(self):
        assert coerce_phone('="0541234567"') == Provided("0541234567")

    def test_leading_zero_restored(self):
        assert coerce_phone("541234567") == Provided("0541234567")

    def test_international(self):
        assert coerce_phone("+972541234567") == Provided("+972541234567")

    @pytest.mark.parametrize("raw", ["12345", "phone", "0641234567", "٠٥٤١٢٣٤٥٦٧", "٥٤١٢٣٤٥٦٧"])
    def test_invalid(self, raw):
        assert isinstance(coerce_phone(raw), Invalid)

    def test_blank_absent(self):
        assert coerce_phone(" ") == ABSENT
