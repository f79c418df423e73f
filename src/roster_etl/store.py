"""roster_etl.store

Persistence collaborators for the maintenance import.

  StudentStore  read-only bulk fetches (catalogs, students, national-id
                owners) plus one independent update per student.
  AuditSink     fire-and-forget event append.

PgStudentStore runs every update inside its own SAVEPOINT so that a failing
row never poisons the surrounding transaction; the caller owns COMMIT /
ROLLBACK of the connection.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import time
from typing import Any, Iterable, Protocol

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from roster_etl.errors import UniqueConflictError

log = logging.getLogger(__name__)

STUDENT_TABLE = "student"
INSTRUCTOR_TABLE = "instructor"
SETTINGS_TABLE = "settings"
AUDIT_TABLE = "audit_log"
TAG_SETTINGS_KEY = "student_tags"

# Columns the import may write; anything else in a payload is a programming error.
UPDATABLE_COLUMNS = frozenset({
    "name",
    "national_id",
    "contact_name",
    "contact_phone",
    "assigned_instructor_id",
    "default_service",
    "default_day_of_week",
    "default_session_time",
    "notes",
    "tags",
    "is_active",
})


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class StudentStore(Protocol):
    def fetch_instructors(self) -> list[dict[str, Any]]:
        """Every instructor: id, name, email, is_active."""
        ...

    def fetch_tag_catalog(self) -> list[dict[str, Any]]:
        """The student tag catalog: [{id, name}, ...]."""
        ...

    def fetch_students(self, student_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Return {student_id: record} for the ids that exist."""
        ...

    def find_national_id_owners(self, values: Iterable[str]) -> dict[str, set[str]]:
        """Return {national_id: {student_id, ...}} restricted to ``values``."""
        ...

    def update_student(
        self,
        student_id: str,
        changes: dict[str, Any],
        provenance: dict[str, Any],
    ) -> None:
        """Apply ``changes`` and merge ``provenance`` into metadata.

        Raises UniqueConflictError on a unique-constraint collision and
        LookupError when the student no longer exists.
        """
        ...


class AuditSink(Protocol):
    def append(self, event: dict[str, Any]) -> None:
        ...


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def _plain(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def _record_from_row(row: dict[str, Any]) -> dict[str, Any]:
    return {k: _plain(v) for k, v in row.items()}


# ---------------------------------------------------------------------------
# PostgreSQL store
# ---------------------------------------------------------------------------

class PgStudentStore:
    """StudentStore backed by a psycopg connection (caller manages transaction)."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn

    def fetch_instructors(self) -> list[dict[str, Any]]:
        with self.conn.cursor(row_factory=dict_row) as cur:
            cur.execute(f"SELECT id, name, email, is_active FROM {INSTRUCTOR_TABLE}")
            return [_record_from_row(r) for r in cur.fetchall()]

    def fetch_tag_catalog(self) -> list[dict[str, Any]]:
        row = self.conn.execute(
            f"SELECT settings_value FROM {SETTINGS_TABLE} WHERE key = %s",
            (TAG_SETTINGS_KEY,),
        ).fetchone()
        if row is None or not isinstance(row[0], list):
            return []
        return row[0]

    def fetch_students(self, student_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        ids = sorted(set(student_ids))
        if not ids:
            return {}
        with self.conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"SELECT * FROM {STUDENT_TABLE} WHERE id = ANY(%s::uuid[])",
                (ids,),
            )
            records = [_record_from_row(r) for r in cur.fetchall()]
        return {r["id"]: r for r in records}

    def find_national_id_owners(self, values: Iterable[str]) -> dict[str, set[str]]:
        wanted = sorted(set(values))
        owners: dict[str, set[str]] = {}
        if not wanted:
            return owners
        rows = self.conn.execute(
            f"SELECT id, national_id FROM {STUDENT_TABLE} WHERE national_id = ANY(%s)",
            (wanted,),
        ).fetchall()
        for student_id, national_id in rows:
            owners.setdefault(national_id, set()).add(str(student_id))
        return owners

    def update_student(
        self,
        student_id: str,
        changes: dict[str, Any],
        provenance: dict[str, Any],
    ) -> None:
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"not updatable: {sorted(unknown)}")

        assignments = [f"{col} = %s" for col in changes]
        assignments.append("metadata = COALESCE(metadata, '{}'::jsonb) || %s")
        params: list[Any] = list(changes.values()) + [Jsonb(provenance), student_id]

        self.conn.execute("SAVEPOINT student_update")
        try:
            row = self.conn.execute(
                f"""
                UPDATE {STUDENT_TABLE}
                SET {", ".join(assignments)}
                WHERE id = %s
                RETURNING id
                """,
                params,
            ).fetchone()
            if row is None:
                raise LookupError(f"student {student_id} not found")
            self.conn.execute("RELEASE SAVEPOINT student_update")
        except psycopg.errors.UniqueViolation as exc:
            self.conn.execute("ROLLBACK TO SAVEPOINT student_update")
            raise UniqueConflictError(str(exc)) from exc
        except Exception:
            self.conn.execute("ROLLBACK TO SAVEPOINT student_update")
            raise


class PgAuditSink:
    """Append audit events to audit_log; failures are logged, never raised."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn

    def append(self, event: dict[str, Any]) -> None:
        self.conn.execute("SAVEPOINT audit_append")
        try:
            self.conn.execute(
                f"""
                INSERT INTO {AUDIT_TABLE} (action, actor_id, actor_role, details)
                VALUES (%s, %s, %s, %s)
                """,
                (
                    event.get("action"),
                    event.get("actor_id"),
                    event.get("actor_role"),
                    Jsonb(event.get("details") or {}),
                ),
            )
            self.conn.execute("RELEASE SAVEPOINT audit_append")
        except psycopg.Error as exc:
            self.conn.execute("ROLLBACK TO SAVEPOINT audit_append")
            log.warning("Audit append failed for %s: %s", event.get("action"), exc)


class NullAuditSink:
    """No-op audit sink for dry runs and unit tests."""

    def append(self, event: dict[str, Any]) -> None:
        return None


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

@dataclass
class InMemoryStudentStore:
    """Dict-backed StudentStore for tests and local previews.

    With ``enforce_unique_national_id`` set, updates that would duplicate a
    national id raise UniqueConflictError like the real unique index.
    """

    students: dict[str, dict[str, Any]] = field(default_factory=dict)
    instructors: list[dict[str, Any]] = field(default_factory=list)
    tags: list[dict[str, Any]] = field(default_factory=list)
    enforce_unique_national_id: bool = True

    def fetch_instructors(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.instructors)

    def fetch_tag_catalog(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.tags)

    def fetch_students(self, student_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        return {
            sid: copy.deepcopy(self.students[sid])
            for sid in set(student_ids)
            if sid in self.students
        }

    def find_national_id_owners(self, values: Iterable[str]) -> dict[str, set[str]]:
        wanted = sorted(set(values))
        owners: dict[str, set[str]] = {}
        for sid, record in self.students.items():
            if record.get("national_id") in wanted:
                owners.setdefault(record["national_id"], set()).add(sid)
        return owners

    def update_student(
        self,
        student_id: str,
        changes: dict[str, Any],
        provenance: dict[str, Any],
    ) -> None:
        record = self.students.get(student_id)
        if record is None:
            raise LookupError(f"student {student_id} not found")
        new_nid = changes.get("national_id")
        if self.enforce_unique_national_id and new_nid:
            for sid, other in self.students.items():
                if sid != student_id and other.get("national_id") == new_nid:
                    raise UniqueConflictError(f"national_id {new_nid} already used by {sid}")
        record.update(copy.deepcopy(changes))
        record["metadata"] = {**(record.get("metadata") or {}), **provenance}
