"""roster_etl.reconcile

Row reconciler for the student maintenance import.

Per row:
  1.  Resolve the target student by id (missing/malformed id or unknown
      student → Failure; the batch continues).
  2.  Fold over FIELD_STEPS in order. The first step that reports Invalid
      ends the fold with a Failure; the remaining steps for that row are
      skipped.
  3.  Every Provided value is compared against the stored value after
      normalization; only changed fields enter the diff.
  4.  A row with an empty diff is still an UpdateCandidate.

Reconciliation is pure: catalogs and the existing-student snapshot are
loaded before the first row, and no step performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from roster_etl.catalogs import InstructorCatalog, TagCatalog
from roster_etl.coerce import (
    Absent,
    FieldResult,
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
from roster_etl.columns import CanonicalField, ColumnMap
from roster_etl.config import ImportSettings
from roster_etl.normalize import is_uuid, normalize_time_for_comparison, trim

UNIQUE_FIELD = "national_id"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class StagedRow:
    row_index: int
    line_number: int
    student_id: str | None
    raw: Mapping[str, Any]


@dataclass
class Failure:
    line_number: int
    target_id: str | None
    display_name: str
    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "line_number": self.line_number,
            "target_id": self.target_id,
            "display_name": self.display_name,
            "code": self.code,
            "message": self.message,
        }


@dataclass
class UpdateCandidate:
    row_index: int
    line_number: int
    target_id: str
    display_name: str
    diff: dict[str, Any]
    existing: dict[str, Any] = field(repr=False)
    desired_unique_value: str | None = None

    @property
    def unique_value_changed(self) -> bool:
        return (
            self.desired_unique_value is not None
            and self.desired_unique_value != self.existing.get(UNIQUE_FIELD)
        )

    def to_failure(self, code: str, message: str) -> Failure:
        return Failure(self.line_number, self.target_id, self.display_name, code, message)


@dataclass
class ReconcileContext:
    columns: ColumnMap
    instructors: InstructorCatalog
    tags: TagCatalog
    tag_mappings: Mapping[str, str]
    settings: ImportSettings


def stage_rows(rows: Iterable[Mapping[str, Any]], columns: ColumnMap) -> list[StagedRow]:
    """Attach file line numbers (header is line 1) and the raw student id."""
    staged = []
    for idx, raw in enumerate(rows):
        staged.append(StagedRow(
            row_index=idx,
            line_number=idx + 2,
            student_id=trim(columns.cell(raw, CanonicalField.STUDENT_ID)),
            raw=raw,
        ))
    return staged


# ---------------------------------------------------------------------------
# Field steps
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldStep:
    field: CanonicalField
    coerce: Callable[[Any, ReconcileContext, Mapping[str, Any]], FieldResult]
    code: str
    message: str


def _name(raw: Any, ctx: ReconcileContext, existing: Mapping[str, Any]) -> FieldResult:
    return coerce_required_text(raw)


def _national_id(raw: Any, ctx: ReconcileContext, existing: Mapping[str, Any]) -> FieldResult:
    return coerce_national_id(raw, ctx.settings.national_id_pattern)


def _optional_text(raw: Any, ctx: ReconcileContext, existing: Mapping[str, Any]) -> FieldResult:
    return coerce_optional_text(raw, ctx.settings.clear_sentinels)


def _phone(raw: Any, ctx: ReconcileContext, existing: Mapping[str, Any]) -> FieldResult:
    return coerce_phone(raw)


def _instructor(raw: Any, ctx: ReconcileContext, existing: Mapping[str, Any]) -> FieldResult:
    token = trim(raw)
    if token is None:
        return Absent()
    lookup = ctx.instructors.resolve(token)
    if not lookup.ok:
        return Invalid(lookup.message, code=lookup.code)
    return Provided(lookup.instructor_id)


def _day(raw: Any, ctx: ReconcileContext, existing: Mapping[str, Any]) -> FieldResult:
    return coerce_day_of_week(raw)


def _time(raw: Any, ctx: ReconcileContext, existing: Mapping[str, Any]) -> FieldResult:
    return coerce_session_time(raw)


def _tags(raw: Any, ctx: ReconcileContext, existing: Mapping[str, Any]) -> FieldResult:
    result = coerce_tags(raw, ctx.settings.clear_sentinels)
    if not isinstance(result, Provided) or result.value is None:
        return result
    tag_ids: list[str] = []
    for name in result.value:
        tag_id = ctx.tags.resolve(name, ctx.tag_mappings)
        if tag_id and tag_id not in tag_ids:
            tag_ids.append(tag_id)
    if not tag_ids:
        return Invalid("None of the supplied tags exist in the tag catalog.")
    return Provided(tag_ids)


def _is_active(raw: Any, ctx: ReconcileContext, existing: Mapping[str, Any]) -> FieldResult:
    return coerce_boolean_flag(
        raw,
        default=existing.get("is_active"),
        allow_undefined=True,
        true_literals=ctx.settings.true_literals,
        false_literals=ctx.settings.false_literals,
    )


FIELD_STEPS: tuple[FieldStep, ...] = (
    FieldStep(CanonicalField.NAME, _name, "invalid_name", "Student name is not valid."),
    FieldStep(CanonicalField.NATIONAL_ID, _national_id, "invalid_national_id",
              "National id is not valid."),
    FieldStep(CanonicalField.CONTACT_NAME, _optional_text, "invalid_contact_name",
              "Contact name is not valid."),
    FieldStep(CanonicalField.CONTACT_PHONE, _phone, "invalid_contact_phone",
              "Contact phone is not valid."),
    FieldStep(CanonicalField.INSTRUCTOR, _instructor, "instructor_not_found",
              "Instructor could not be resolved."),
    FieldStep(CanonicalField.DEFAULT_SERVICE, _optional_text, "invalid_default_service",
              "Default service is not valid."),
    FieldStep(CanonicalField.DEFAULT_DAY, _day, "invalid_default_day",
              "Default day is not valid; expected 1-7."),
    FieldStep(CanonicalField.DEFAULT_TIME, _time, "invalid_default_session_time",
              "Default session time is not valid; expected HH:MM."),
    FieldStep(CanonicalField.NOTES, _optional_text, "invalid_notes", "Notes are not valid."),
    FieldStep(CanonicalField.TAGS, _tags, "invalid_tags", "Tags are not valid."),
    FieldStep(CanonicalField.IS_ACTIVE, _is_active, "invalid_is_active",
              "Active flag is not valid."),
)


# ---------------------------------------------------------------------------
# Diffing
# ---------------------------------------------------------------------------

def _comparable(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column == "default_session_time":
        return normalize_time_for_comparison(value)
    if column == "tags" and not value:
        return None
    return value


def add_if_changed(diff: dict[str, Any], column: str, desired: Any, current: Any) -> None:
    """Record ``desired`` only when it differs from ``current`` after normalization."""
    if _comparable(column, desired) != _comparable(column, current):
        diff[column] = desired


# ---------------------------------------------------------------------------
# Per-row reconciliation
# ---------------------------------------------------------------------------

def _display_name(row: StagedRow, columns: ColumnMap, existing: Mapping[str, Any] | None) -> str:
    supplied = trim(columns.cell(row.raw, CanonicalField.NAME))
    if supplied:
        return supplied
    if existing:
        return existing.get("name") or ""
    return ""


def _failure_message(step: FieldStep, result: Invalid) -> str:
    if result.code:
        return result.reason
    if result.reason:
        return f"{step.message} ({result.reason})"
    return step.message


def fold_fields(
    row: StagedRow,
    existing: Mapping[str, Any],
    ctx: ReconcileContext,
    target_id: str,
    display_name: str,
) -> dict[str, Any] | Failure:
    """Run FIELD_STEPS in order; return the diff or the first Failure.

    A coercer's own reason is appended to the step's generic message.
    """
    diff: dict[str, Any] = {}
    for step in FIELD_STEPS:
        if not ctx.columns.has(step.field):
            continue
        result = step.coerce(ctx.columns.cell(row.raw, step.field), ctx, existing)
        if isinstance(result, Invalid):
            return Failure(
                row.line_number,
                target_id,
                display_name,
                result.code or step.code,
                _failure_message(step, result),
            )
        if isinstance(result, Provided):
            column = step.field.value
            add_if_changed(diff, column, result.value, existing.get(column))
    return diff


def reconcile_row(
    row: StagedRow,
    existing_by_id: Mapping[str, dict[str, Any]],
    ctx: ReconcileContext,
) -> UpdateCandidate | Failure:
    if not row.student_id or not is_uuid(row.student_id):
        return Failure(
            row.line_number,
            row.student_id,
            _display_name(row, ctx.columns, None),
            "invalid_target_id",
            "Row is missing a valid student id.",
        )

    target_id = row.student_id.lower()
    existing = existing_by_id.get(target_id)
    if existing is None:
        return Failure(
            row.line_number,
            target_id,
            _display_name(row, ctx.columns, None),
            "target_not_found",
            "Student was not found.",
        )

    display_name = _display_name(row, ctx.columns, existing)
    outcome = fold_fields(row, existing, ctx, target_id, display_name)
    if isinstance(outcome, Failure):
        return outcome

    return UpdateCandidate(
        row_index=row.row_index,
        line_number=row.line_number,
        target_id=target_id,
        display_name=display_name,
        diff=outcome,
        existing=existing,
        desired_unique_value=outcome.get(UNIQUE_FIELD, existing.get(UNIQUE_FIELD)),
    )


def reconcile_rows(
    rows: Iterable[StagedRow],
    existing_by_id: Mapping[str, dict[str, Any]],
    ctx: ReconcileContext,
) -> tuple[list[UpdateCandidate], list[Failure]]:
    candidates: list[UpdateCandidate] = []
    failures: list[Failure] = []
    for row in rows:
        outcome = reconcile_row(row, existing_by_id, ctx)
        if isinstance(outcome, Failure):
            failures.append(outcome)
        else:
            candidates.append(outcome)
    return candidates, failures
