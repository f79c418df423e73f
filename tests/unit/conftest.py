"""Unit test fixtures: a small seeded in-memory roster."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Iterable

import pytest

from roster_etl.apply import Actor
from roster_etl.store import InMemoryStudentStore
from roster_seed import INSTRUCTORS, STUDENTS, TAGS


@dataclass
class RecordingStudentStore(InMemoryStudentStore):
    """InMemoryStudentStore that records store calls.

    ``fail_updates`` lists student ids whose update raises RuntimeError.
    """

    fail_updates: set[str] = field(default_factory=set)
    update_calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    owner_queries: list[list[str]] = field(default_factory=list)

    def find_national_id_owners(self, values: Iterable[str]) -> dict[str, set[str]]:
        values = sorted(set(values))
        self.owner_queries.append(values)
        return super().find_national_id_owners(values)

    def update_student(
        self,
        student_id: str,
        changes: dict[str, Any],
        provenance: dict[str, Any],
    ) -> None:
        self.update_calls.append((student_id, dict(changes)))
        if student_id in self.fail_updates:
            raise RuntimeError(f"simulated update failure for {student_id}")
        super().update_student(student_id, changes, provenance)


@pytest.fixture
def store() -> RecordingStudentStore:
    return RecordingStudentStore(
        students=copy.deepcopy(STUDENTS),
        instructors=copy.deepcopy(INSTRUCTORS),
        tags=copy.deepcopy(TAGS),
    )


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="u-admin", role="admin")
