"""roster_etl.apply

Change applier: preview (dry run) or commit the surviving candidates.

Both modes read ``candidate.diff`` unchanged, so a preview always shows
exactly what a commit with the same input and store state would write.

Commit writes are sequential and independent: each student is updated on
its own, a failing update becomes a Failure for that row only, and rows
already written stay written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from roster_etl.errors import UniqueConflictError
from roster_etl.reconcile import Failure, UpdateCandidate
from roster_etl.store import StudentStore
from roster_etl.uniqueness import DUPLICATE_IN_STORE

log = logging.getLogger(__name__)

ADMIN_ROLES = frozenset({"admin", "owner"})


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role.strip().lower() in ADMIN_ROLES


@dataclass
class CommitOutcome:
    updated: list[dict[str, Any]] = field(default_factory=list)
    failed: list[Failure] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------

def build_preview(candidate: UpdateCandidate) -> dict[str, Any]:
    changes = {
        column: {"old": candidate.existing.get(column), "new": new_value}
        for column, new_value in candidate.diff.items()
    }
    return {
        "target_id": candidate.target_id,
        "display_name": candidate.display_name,
        "line_number": candidate.line_number,
        "changes": changes,
        "has_changes": bool(changes),
    }


def build_previews(candidates: Iterable[UpdateCandidate]) -> list[dict[str, Any]]:
    return [build_preview(c) for c in candidates]


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------

def provenance_for(actor: Actor, now: datetime | None = None) -> dict[str, Any]:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return {"updated_by": actor.user_id, "updated_role": actor.role, "updated_at": stamp}


def commit_candidates(
    candidates: Iterable[UpdateCandidate],
    store: StudentStore,
    actor: Actor,
    *,
    excluded_ids: Iterable[str] = (),
    now: datetime | None = None,
) -> CommitOutcome:
    """Persist each candidate independently; never roll back siblings.

    Candidates whose target id appears in ``excluded_ids`` are dropped
    without touching the store. Empty diffs are reported as updated with no
    changed fields and issue no write.
    """
    outcome = CommitOutcome()
    excluded = {e.strip().lower() for e in excluded_ids if e and e.strip()}
    provenance = provenance_for(actor, now)

    for candidate in candidates:
        if candidate.target_id in excluded:
            outcome.excluded.append(candidate.target_id)
            continue

        if not candidate.diff:
            outcome.updated.append({
                "target_id": candidate.target_id,
                "display_name": candidate.display_name,
                "changed_fields": [],
            })
            continue

        try:
            store.update_student(candidate.target_id, dict(candidate.diff), provenance)
        except UniqueConflictError as exc:
            log.warning(
                "line %d student %s: national id claimed concurrently: %s",
                candidate.line_number, candidate.target_id, exc,
            )
            outcome.failed.append(candidate.to_failure(
                DUPLICATE_IN_STORE,
                "National id already belongs to another student.",
            ))
            continue
        except Exception as exc:
            log.error(
                "line %d student %s: update failed: %s",
                candidate.line_number, candidate.target_id, exc,
            )
            outcome.failed.append(candidate.to_failure(
                "update_failed",
                "Updating the student failed.",
            ))
            continue

        outcome.updated.append({
            "target_id": candidate.target_id,
            "display_name": candidate.display_name,
            "changed_fields": list(candidate.diff),
        })

    return outcome
