"""Unit tests for roster_etl.uniqueness."""

from __future__ import annotations

import copy

from roster_etl.reconcile import UpdateCandidate
from roster_etl.uniqueness import (
    DUPLICATE_IN_BATCH,
    DUPLICATE_IN_STORE,
    enforce_uniqueness,
    find_batch_conflicts,
)
from roster_seed import S1, S2, S3, STUDENTS


def _candidate(row_index: int, target_id: str, national_id: str | None) -> UpdateCandidate:
    existing = copy.deepcopy(STUDENTS[target_id])
    diff = {}
    if national_id is not None and national_id != existing["national_id"]:
        diff["national_id"] = national_id
    return UpdateCandidate(
        row_index=row_index,
        line_number=row_index + 2,
        target_id=target_id,
        display_name=existing["name"],
        diff=diff,
        existing=existing,
        desired_unique_value=national_id if national_id is not None else existing["national_id"],
    )


class TestFindBatchConflicts:
    def test_distinct_values(self):
        assert find_batch_conflicts([_candidate(0, S1, "111111111"), _candidate(1, S2, "222222222")]) == set()

    def test_same_student_twice_is_not_a_conflict(self):
        assert find_batch_conflicts([_candidate(0, S1, "111111111"), _candidate(1, S1, "111111111")]) == set()

    def test_two_students_same_value(self):
        rows = [_candidate(0, S2, "555555555"), _candidate(1, S3, "555555555"), _candidate(2, S1, None)]
        assert find_batch_conflicts(rows) == {0, 1}

    def test_unchanged_stored_value_counts(self):
        # S2 tries to take S1's id while S1's row leaves it in place.
        rows = [_candidate(0, S1, None), _candidate(1, S2, "123456780")]
        assert find_batch_conflicts(rows) == {0, 1}

    def test_null_values_ignored(self):
        assert find_batch_conflicts([_candidate(0, S3, None), _candidate(1, S3, None)]) == set()


class TestEnforceUniqueness:
    def test_batch_duplicates_fail_every_member(self, store):
        survivors, failures = enforce_uniqueness(
            [_candidate(0, S2, "555555555"), _candidate(1, S3, "555555555")], store,
        )
        assert survivors == []
        assert [f.code for f in failures] == [DUPLICATE_IN_BATCH, DUPLICATE_IN_BATCH]
        assert [f.line_number for f in failures] == [2, 3]

    def test_store_duplicate(self, store):
        survivors, failures = enforce_uniqueness([_candidate(0, S3, "987654321")], store)
        assert survivors == []
        assert failures[0].code == DUPLICATE_IN_STORE
        assert failures[0].target_id == S3

    def test_own_value_not_a_store_conflict(self, store):
        survivors, failures = enforce_uniqueness([_candidate(0, S1, "123456780")], store)
        assert len(survivors) == 1
        assert failures == []
        assert store.owner_queries == []

    def test_single_store_query_for_changed_values(self, store):
        survivors, failures = enforce_uniqueness(
            [_candidate(0, S1, "111111111"), _candidate(1, S2, "222222222"), _candidate(2, S3, None)],
            store,
        )
        assert len(survivors) == 3
        assert failures == []
        assert store.owner_queries == [["111111111", "222222222"]]

    def test_swap_inside_batch_is_checked_against_store(self, store):
        # The store still holds the old values, so a swap is rejected.
        survivors, failures = enforce_uniqueness(
            [_candidate(0, S1, "987654321"), _candidate(1, S2, "123456780")], store,
        )
        assert survivors == []
        assert {f.code for f in failures} == {DUPLICATE_IN_STORE}
