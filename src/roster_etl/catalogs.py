"""roster_etl.catalogs

Run-scoped reference catalogs for the maintenance import.

Both catalogs are built once per run from a full fetch (never filtered by
the batch) so that every row resolves in memory:

  InstructorCatalog  id -> entry, normalized name -> entry
  TagCatalog         id -> entry, normalized name -> id

plus the caller-supplied disambiguation map (normalized unmatched tag name ->
catalog tag id), which is validated against the TagCatalog before use.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from roster_etl.errors import BatchAbortError
from roster_etl.normalize import is_uuid, normalize_key, trim

# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InstructorEntry:
    id: str
    name: str
    normalized_name: str
    is_active: bool = True


@dataclass(frozen=True)
class TagEntry:
    id: str
    name: str
    normalized_name: str


@dataclass(frozen=True)
class InstructorLookup:
    """Outcome of resolving one instructor cell."""

    instructor_id: str | None
    code: str | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.code is None


# ---------------------------------------------------------------------------
# Instructor catalog
# ---------------------------------------------------------------------------

@dataclass
class InstructorCatalog:
    by_id: dict[str, InstructorEntry] = field(default_factory=dict)
    by_name: dict[str, InstructorEntry] = field(default_factory=dict)
    active_names: list[str] = field(default_factory=list)
    suggestion_limit: int = 5

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        suggestion_limit: int = 5,
    ) -> InstructorCatalog:
        """Build from instructor rows with id, name, email, is_active.

        Instructors without a name are matched by email instead.
        """
        catalog = cls(suggestion_limit=suggestion_limit)
        for record in records:
            instructor_id = trim(str(record["id"])) if record.get("id") else None
            if not instructor_id:
                continue
            display = trim(record.get("name")) or trim(record.get("email")) or ""
            entry = InstructorEntry(
                id=instructor_id,
                name=display,
                normalized_name=normalize_key(display) or "",
                is_active=record.get("is_active") is not False,
            )
            catalog.by_id[instructor_id.lower()] = entry
            if entry.normalized_name:
                catalog.by_name[entry.normalized_name] = entry
                if entry.is_active:
                    catalog.active_names.append(display)
        return catalog

    def _suggestions(self) -> str:
        shown = ", ".join(self.active_names[: self.suggestion_limit])
        if len(self.active_names) > self.suggestion_limit:
            shown += ", ..."
        return shown

    def resolve(self, token: str) -> InstructorLookup:
        """Resolve an id-or-name cell.

        An id-shaped token is looked up by id only; a miss there is a hard
        failure and never falls back to name matching.
        """
        token = token.strip()
        if is_uuid(token):
            entry = self.by_id.get(token.lower())
            if entry is None:
                return InstructorLookup(
                    None,
                    "instructor_not_found",
                    f'Instructor with id "{token}" was not found.',
                )
            return InstructorLookup(entry.id)

        entry = self.by_name.get(normalize_key(token) or "")
        if entry is None:
            return InstructorLookup(
                None,
                "instructor_name_not_found",
                f'Instructor named "{token}" was not found. '
                f"Available instructors: {self._suggestions()}",
            )
        if not entry.is_active:
            return InstructorLookup(
                None,
                "instructor_inactive",
                f'Instructor "{token}" is inactive. '
                f"Active instructors: {self._suggestions()}",
            )
        return InstructorLookup(entry.id)


# ---------------------------------------------------------------------------
# Tag catalog
# ---------------------------------------------------------------------------

@dataclass
class TagCatalog:
    by_id: dict[str, TagEntry] = field(default_factory=dict)
    by_name: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> TagCatalog:
        """Build from the settings-stored tag list ([{id, name}, ...])."""
        catalog = cls()
        for record in records:
            if not isinstance(record, Mapping):
                continue
            tag_id = trim(record.get("id"))
            name = trim(record.get("name"))
            if not tag_id or not name:
                continue
            entry = TagEntry(id=tag_id, name=name, normalized_name=normalize_key(name) or "")
            catalog.by_id[tag_id] = entry
            catalog.by_name[entry.normalized_name] = tag_id
        return catalog

    def resolve(self, name: str, mappings: Mapping[str, str] | None = None) -> str | None:
        """Catalog id for a tag name: exact catalog name first, then mappings."""
        key = normalize_key(name)
        if key is None:
            return None
        tag_id = self.by_name.get(key)
        if tag_id is None and mappings:
            tag_id = mappings.get(key)
        return tag_id

    def available_tags(self) -> list[dict[str, str]]:
        return [{"id": e.id, "name": e.name} for e in self.by_id.values()]


# ---------------------------------------------------------------------------
# Disambiguation map
# ---------------------------------------------------------------------------

def parse_tag_mappings(raw: Mapping[str, Any] | None) -> dict[str, str]:
    """Normalize a caller-supplied {unmatched name: tag id} map.

    Entries whose target is not id-shaped, or whose name is blank, are
    dropped here; id-shaped targets are checked against the catalog by
    validate_tag_mappings.
    """
    mappings: dict[str, str] = {}
    if not raw:
        return mappings
    for name, target in raw.items():
        if not isinstance(target, str) or not is_uuid(target):
            continue
        key = normalize_key(name)
        if key:
            mappings[key] = target.strip()
    return mappings


def validate_tag_mappings(mappings: Mapping[str, str], catalog: TagCatalog) -> None:
    """Abort the batch if any mapping points at a tag that does not exist."""
    invalid = [
        {"source": name, "target": target}
        for name, target in mappings.items()
        if target not in catalog.by_id
    ]
    if invalid:
        raise BatchAbortError(
            "invalid_tag_mappings",
            "Mappings must point to existing tags.",
            invalid_mappings=invalid,
            available_tags=catalog.available_tags(),
        )


def collect_unmatched_tags(
    tag_lists: Iterable[list[str] | None],
    catalog: TagCatalog,
    mappings: Mapping[str, str],
) -> list[str]:
    """Every tag name in the batch that neither the catalog nor the mappings know.

    Names are deduplicated case-insensitively; the first spelling wins.
    """
    unmatched: dict[str, str] = {}
    for names in tag_lists:
        for name in names or ():
            if catalog.resolve(name, mappings) is None:
                unmatched.setdefault(normalize_key(name) or name, name)
    return list(unmatched.values())


def ensure_all_tags_matched(
    tag_lists: Iterable[list[str] | None],
    catalog: TagCatalog,
    mappings: Mapping[str, str],
) -> None:
    """Abort the batch with the full unmatched set plus the available catalog."""
    unmatched = collect_unmatched_tags(tag_lists, catalog, mappings)
    if unmatched:
        raise BatchAbortError(
            "unmatched_tags",
            "Some tags in the file were not found in the catalog. "
            "Map them to existing tags and resubmit.",
            unmatched_tags=unmatched,
            available_tags=catalog.available_tags(),
        )
