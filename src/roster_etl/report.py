"""roster_etl.report

Result shaping for the maintenance import: the caller-facing ImportResult,
the human-readable run report, and the JSON run report on disk.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from roster_etl.reconcile import Failure


# ---------------------------------------------------------------------------
# ImportResult
# ---------------------------------------------------------------------------

@dataclass
class ImportResult:
    dry_run: bool
    total_rows: int
    previews: list[dict[str, Any]] = field(default_factory=list)
    updated: list[dict[str, Any]] = field(default_factory=list)
    failed: list[Failure] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return len(self.updated)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def preview_count(self) -> int:
        return len(self.previews)

    def sorted_failures(self) -> list[Failure]:
        return sorted(self.failed, key=lambda f: f.line_number)

    def to_dict(self) -> dict[str, Any]:
        failed = [f.to_dict() for f in self.sorted_failures()]
        if self.dry_run:
            return {
                "dry_run": True,
                "total_rows": self.total_rows,
                "preview_count": self.preview_count,
                "failed_count": self.failed_count,
                "previews": self.previews,
                "failed": failed,
            }
        return {
            "total_rows": self.total_rows,
            "updated_count": self.updated_count,
            "failed_count": self.failed_count,
            "excluded_count": len(self.excluded),
            "updated": self.updated,
            "failed": failed,
        }


# ---------------------------------------------------------------------------
# Text report
# ---------------------------------------------------------------------------

def build_import_report(result: ImportResult) -> str:
    lines = [
        "=" * 60,
        "Student Maintenance Import Report",
        f"  dry_run: {result.dry_run}",
        "=" * 60,
        f"  total rows:                     {result.total_rows}",
    ]
    if result.dry_run:
        with_changes = sum(1 for p in result.previews if p["has_changes"])
        lines += [
            f"  rows previewed:                 {result.preview_count}",
            f"  previews with changes:          {with_changes}",
        ]
    else:
        changed = sum(1 for u in result.updated if u["changed_fields"])
        lines += [
            f"  rows updated:                   {result.updated_count}",
            f"  rows with field changes:        {changed}",
            f"  rows excluded:                  {len(result.excluded)}",
        ]
    lines.append(f"  rows failed:                    {result.failed_count}")

    failures = result.sorted_failures()
    if failures:
        lines.append(f"\nFailures ({len(failures)}):")
        for f in failures[:20]:
            lines.append(f"  line {f.line_number} [{f.code}] {f.target_id or '-'}: {f.message}")
        if len(failures) > 20:
            lines.append(f"  ... and {len(failures) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)


def build_abort_report(payload: dict[str, Any]) -> str:
    lines = [
        "=" * 60,
        "Student Maintenance Import REJECTED",
        f"  code: {payload.get('code')}",
        f"  {payload.get('message', '')}",
    ]
    for key, value in payload.items():
        if key in ("code", "message"):
            continue
        if isinstance(value, list):
            lines.append(f"  {key} ({len(value)}):")
            for item in value[:20]:
                lines.append(f"    {item}")
            if len(value) > 20:
                lines.append(f"    ... and {len(value) - 20} more")
        else:
            lines.append(f"  {key}: {value}")
    lines.append("=" * 60)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    dry_run: bool,
    source_paths: dict[str, str | None],
    payload: dict[str, Any],
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": "student_maintenance_import",
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "result": payload,
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str, ensure_ascii=False), encoding="utf-8")
    return report_path
