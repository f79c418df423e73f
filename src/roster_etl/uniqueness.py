"""roster_etl.uniqueness

Batch uniqueness enforcement for national_id.

Two passes over the reconciled candidates:
  1.  Intra-batch: candidates are grouped by their post-diff national_id
      (the stored value when the row does not change it). A value claimed by
      more than one distinct student fails every row in the group.
  2.  Store-wide: for the survivors whose national_id actually changes, one
      batched lookup against the store; a hit owned by any other student
      fails that row.

The store check and the later commit are not one transaction. A concurrent
writer can claim the same national_id in between; the unique index on
student.national_id then rejects the commit and the applier reports the row
with the same store-duplicate failure code.
"""

from __future__ import annotations

from typing import Iterable

from roster_etl.reconcile import Failure, UpdateCandidate
from roster_etl.store import StudentStore

DUPLICATE_IN_BATCH = "duplicate_unique_field_in_batch"
DUPLICATE_IN_STORE = "duplicate_unique_field_in_store"


def find_batch_conflicts(candidates: Iterable[UpdateCandidate]) -> set[int]:
    """Return row indexes whose national_id is shared with another student."""
    groups: dict[str, list[UpdateCandidate]] = {}
    for candidate in candidates:
        if candidate.desired_unique_value:
            groups.setdefault(candidate.desired_unique_value, []).append(candidate)

    conflicted: set[int] = set()
    for members in groups.values():
        if len({m.target_id for m in members}) > 1:
            conflicted.update(m.row_index for m in members)
    return conflicted


def enforce_uniqueness(
    candidates: list[UpdateCandidate],
    store: StudentStore,
) -> tuple[list[UpdateCandidate], list[Failure]]:
    """Split candidates into survivors and uniqueness Failures."""
    failures: list[Failure] = []

    conflicted = find_batch_conflicts(candidates)
    survivors: list[UpdateCandidate] = []
    for candidate in candidates:
        if candidate.row_index in conflicted:
            failures.append(candidate.to_failure(
                DUPLICATE_IN_BATCH,
                "National id is used by more than one student in this file.",
            ))
        else:
            survivors.append(candidate)

    to_check = {c.desired_unique_value for c in survivors if c.unique_value_changed}
    if not to_check:
        return survivors, failures

    owners = store.find_national_id_owners(sorted(to_check))
    accepted: list[UpdateCandidate] = []
    for candidate in survivors:
        others = set()
        if candidate.unique_value_changed:
            others = owners.get(candidate.desired_unique_value, set()) - {candidate.target_id}
        if others:
            failures.append(candidate.to_failure(
                DUPLICATE_IN_STORE,
                "National id already belongs to another student.",
            ))
        else:
            accepted.append(candidate)
    return accepted, failures
