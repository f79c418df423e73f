"""roster_etl.maintenance_import

Student maintenance import pipeline: bulk updates to existing students from
an already-parsed table (header list + row mappings).

Processing order:
  1.  Structural checks (any failure raises BatchAbortError; nothing is
      reconciled and nothing is written):
        a.  actor must hold an admin role               → forbidden
        b.  header and at least one row                 → empty_csv
        c.  row count <= settings.max_rows              → too_many_rows
        d.  headers resolve against the alias table     → missing_id_column,
                                                          unrecognized_columns,
                                                          duplicate_columns
  2.  Load run-scoped catalogs (instructors, tags).
  3.  Tag checks: mapping targets must exist            → invalid_tag_mappings
                  every tag name must resolve           → unmatched_tags
  4.  Load the existing students referenced by the batch.
  5.  Reconcile each row (pure; per-row Failures).
  6.  Enforce national_id uniqueness (batch, then store).
  7.  Dry run: return previews. Commit: per-row independent updates, then one
      audit event.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping

from roster_etl.apply import Actor, build_previews, commit_candidates
from roster_etl.catalogs import (
    InstructorCatalog,
    TagCatalog,
    ensure_all_tags_matched,
    parse_tag_mappings,
    validate_tag_mappings,
)
from roster_etl.coerce import Provided, coerce_tags
from roster_etl.columns import CanonicalField, ColumnMap, resolve_columns
from roster_etl.config import ImportSettings
from roster_etl.errors import BatchAbortError
from roster_etl.normalize import is_uuid
from roster_etl.reconcile import ReconcileContext, StagedRow, reconcile_rows, stage_rows
from roster_etl.report import ImportResult
from roster_etl.store import AuditSink, NullAuditSink, StudentStore
from roster_etl.uniqueness import enforce_uniqueness

log = logging.getLogger(__name__)

AUDIT_ACTION = "students.maintenance_import"


# ---------------------------------------------------------------------------
# Structural checks
# ---------------------------------------------------------------------------

def check_batch_shape(
    columns: list[str],
    rows: list[Mapping[str, Any]],
    settings: ImportSettings,
) -> ColumnMap:
    """Run the header/row-count checks that need no store access."""
    if not columns or not rows:
        raise BatchAbortError("empty_csv", "The file has no header or no data rows.")
    if len(rows) > settings.max_rows:
        raise BatchAbortError(
            "too_many_rows",
            f"The file has {len(rows)} rows; the limit is {settings.max_rows}.",
            limit=settings.max_rows,
        )
    return resolve_columns(columns)


def _row_tag_names(
    staged: Iterable[StagedRow],
    column_map: ColumnMap,
    settings: ImportSettings,
) -> list[list[str]]:
    names: list[list[str]] = []
    for row in staged:
        result = coerce_tags(column_map.cell(row.raw, CanonicalField.TAGS), settings.clear_sentinels)
        if isinstance(result, Provided) and result.value:
            names.append(result.value)
    return names


def _prepare(
    store: StudentStore,
    columns: list[str],
    rows: list[Mapping[str, Any]],
    actor: Actor,
    settings: ImportSettings,
    tag_mappings: Mapping[str, Any] | None,
) -> tuple[ColumnMap, list[StagedRow], InstructorCatalog, TagCatalog, dict[str, str]]:
    """Run every batch-level check; raise BatchAbortError on the first that fails."""
    if not actor.is_admin:
        raise BatchAbortError("forbidden", "Only admins and owners may import student updates.")

    column_map = check_batch_shape(columns, rows, settings)
    mappings = parse_tag_mappings(tag_mappings)
    staged = stage_rows(rows, column_map)

    instructors = InstructorCatalog.from_records(
        store.fetch_instructors(),
        suggestion_limit=settings.instructor_suggestion_limit,
    )
    tags = TagCatalog.from_records(store.fetch_tag_catalog())
    validate_tag_mappings(mappings, tags)
    if column_map.has(CanonicalField.TAGS):
        ensure_all_tags_matched(_row_tag_names(staged, column_map, settings), tags, mappings)
    return column_map, staged, instructors, tags, mappings


# ---------------------------------------------------------------------------
# Top-level runner
# ---------------------------------------------------------------------------

def run_maintenance_import(
    store: StudentStore,
    columns: list[str],
    rows: Iterable[Mapping[str, Any]],
    *,
    actor: Actor,
    settings: ImportSettings | None = None,
    tag_mappings: Mapping[str, Any] | None = None,
    dry_run: bool = False,
    excluded_ids: Iterable[str] = (),
    audit: AuditSink | None = None,
    now: datetime | None = None,
) -> ImportResult:
    """Reconcile a parsed student table against the store and apply it.

    Args:
        store: StudentStore for catalog/student reads and per-row updates.
        columns: Header names in file order.
        rows: One mapping per data row, keyed by header name.
        actor: Acting user; stamped into each updated student's metadata.
        settings: ImportSettings; defaults when omitted.
        tag_mappings: Optional {unmatched tag name: catalog tag id}.
        dry_run: If True, return previews and write nothing.
        excluded_ids: Student ids to drop from the commit set.
        audit: AuditSink receiving one event after a commit; NullAuditSink
            when omitted.

    Returns:
        ImportResult (preview shape when dry_run, commit shape otherwise).

    Raises:
        BatchAbortError: for any structural problem (see module docstring).
    """
    settings = settings or ImportSettings()
    rows = list(rows)

    try:
        column_map, staged, instructors, tags, mappings = _prepare(
            store, list(columns), rows, actor, settings, tag_mappings,
        )
    except BatchAbortError as exc:
        log.info("batch rejected: %s (%d rows)", exc.code, len(rows))
        raise

    student_ids = {
        row.student_id.lower()
        for row in staged
        if row.student_id and is_uuid(row.student_id)
    }
    existing = store.fetch_students(student_ids)

    ctx = ReconcileContext(
        columns=column_map,
        instructors=instructors,
        tags=tags,
        tag_mappings=mappings,
        settings=settings,
    )
    candidates, failures = reconcile_rows(staged, existing, ctx)
    survivors, unique_failures = enforce_uniqueness(candidates, store)
    failures.extend(unique_failures)

    if dry_run:
        result = ImportResult(
            dry_run=True,
            total_rows=len(staged),
            previews=build_previews(survivors),
            failed=failures,
        )
        log.info(
            "dry run: %d rows, %d previews, %d failed",
            result.total_rows, result.preview_count, result.failed_count,
        )
        return result

    outcome = commit_candidates(
        survivors, store, actor, excluded_ids=excluded_ids, now=now,
    )
    result = ImportResult(
        dry_run=False,
        total_rows=len(staged),
        updated=outcome.updated,
        failed=failures + outcome.failed,
        excluded=outcome.excluded,
    )
    log.info(
        "commit: %d rows, %d updated, %d failed, %d excluded",
        result.total_rows, result.updated_count, result.failed_count, len(result.excluded),
    )

    if audit is None:
        audit = NullAuditSink()
    audit.append({
        "action": AUDIT_ACTION,
        "actor_id": actor.user_id,
        "actor_role": actor.role,
        "details": {
            "total_rows": result.total_rows,
            "updated_count": result.updated_count,
            "failed_count": result.failed_count,
            "excluded_count": len(result.excluded),
            "updated_ids": [u["target_id"] for u in result.updated if u["changed_fields"]],
        },
    })
    return result
