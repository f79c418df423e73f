"""roster_etl.errors

Exceptions shared across the maintenance import pipeline.
"""

from __future__ import annotations

from typing import Any


class BatchAbortError(Exception):
    """Raised for structural problems that reject the whole batch.

    ``code`` is a stable machine-readable string; ``details`` carries the
    remediation data returned to the caller (valid columns, available tags,
    the row limit, ...). No row has been reconciled when this is raised.
    """

    def __init__(self, code: str, message: str, **details: Any) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class UniqueConflictError(Exception):
    """Raised by a store when a write collides with a unique constraint."""


class ImportSettingsError(ValueError):
    """Raised when an import settings YAML file fails validation."""
