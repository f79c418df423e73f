"""roster_etl.import_students_csv

CLI entrypoint for the student maintenance import.

Usage (preview):
    python -m roster_etl.import_students_csv \\
        --db-dsn "$ROSTER_DB_DSN" \\
        --csv-path "exports/students_maintenance.csv" \\
        --actor-id "5b0c7a52-3f1e-4b8e-9d7e-1f0a2c3d4e5f" \\
        --dry-run

Usage (commit, skipping two students, with tag disambiguation):
    python -m roster_etl.import_students_csv \\
        --db-dsn "$ROSTER_DB_DSN" \\
        --csv-path "exports/students_maintenance.csv" \\
        --actor-id "5b0c7a52-3f1e-4b8e-9d7e-1f0a2c3d4e5f" \\
        --tag-mappings "exports/tag_mappings.json" \\
        --exclude-id 0f6c... --exclude-id 9a1d...

Exit codes: 0 when the batch ran (row-level failures are reported, not
fatal); 1 when the batch was rejected or settings were invalid.
"""

from __future__ import annotations

import csv
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import click
import psycopg

from roster_etl.apply import Actor
from roster_etl.config import load_import_settings
from roster_etl.errors import BatchAbortError, ImportSettingsError
from roster_etl.maintenance_import import run_maintenance_import
from roster_etl.report import build_abort_report, build_import_report, write_run_report
from roster_etl.store import PgAuditSink, PgStudentStore

# ---------------------------------------------------------------------------
# Input adapters
# ---------------------------------------------------------------------------

def read_csv_table(path: Path, encoding: str = "utf-8-sig") -> tuple[list[str], list[dict[str, Any]]]:
    """Return (headers, rows) with header whitespace stripped and blank rows dropped."""
    with path.open(newline="", encoding=encoding) as fh:
        reader = csv.DictReader(fh)
        if reader.fieldnames is None:
            return [], []
        headers = [h.strip() for h in reader.fieldnames if h and h.strip()]
        rows: list[dict[str, Any]] = []
        for raw in reader:
            row = {(k or "").strip(): v for k, v in raw.items() if k}
            if any(isinstance(v, str) and v.strip() for v in row.values()):
                rows.append(row)
    return headers, rows


def read_tag_mappings(path: Path | None) -> dict[str, Any] | None:
    if path is None:
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise click.BadParameter("tag mappings file must contain a JSON object", param_hint="--tag-mappings")
    return data


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option("--db-dsn", required=True, envvar="ROSTER_DB_DSN", help="PostgreSQL DSN")
@click.option("--csv-path", required=True, type=click.Path(exists=True, dir_okay=False), help="Maintenance CSV")
@click.option("--actor-id", required=True, help="User id stamped into updated_by")
@click.option(
    "--actor-role",
    default="admin",
    show_default=True,
    help="Role stamped into updated_role (must be admin or owner)",
)
@click.option(
    "--tag-mappings",
    "tag_mappings_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON object mapping unmatched tag names to catalog tag ids",
)
@click.option("--exclude-id", "excluded_ids", multiple=True, help="Student id to leave out of the commit (repeatable)")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False), help="Import settings YAML")
@click.option("--encoding", default="utf-8-sig", show_default=True, help="CSV file encoding")
@click.option("--dry-run", is_flag=True, default=False)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--report-dir",
    default="./artifacts/reports",
    show_default=True,
    type=click.Path(file_okay=False),
)
@click.option("--print-json", is_flag=True, default=False, help="Echo the result payload as JSON")
def main(
    db_dsn: str,
    csv_path: str,
    actor_id: str,
    actor_role: str,
    tag_mappings_path: str | None,
    excluded_ids: tuple[str, ...],
    config_path: str | None,
    encoding: str,
    dry_run: bool,
    run_id: str | None,
    report_dir: str,
    print_json: bool,
) -> None:
    """Apply a student maintenance CSV to existing students."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    click.echo(f"[{run_id}] Starting student_maintenance_import run (dry_run={dry_run})")

    try:
        settings = load_import_settings(Path(config_path) if config_path else None)
    except ImportSettingsError as exc:
        click.echo(f"[{run_id}] FATAL: invalid settings: {exc}", err=True)
        sys.exit(1)

    columns, rows = read_csv_table(Path(csv_path), encoding=encoding)
    tag_mappings = read_tag_mappings(Path(tag_mappings_path) if tag_mappings_path else None)
    actor = Actor(user_id=actor_id, role=actor_role)
    click.echo(f"[{run_id}] csv_path={csv_path} rows={len(rows)} columns={len(columns)}")

    payload: dict[str, Any]
    aborted = False
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        result = run_maintenance_import(
            PgStudentStore(conn),
            columns,
            rows,
            actor=actor,
            settings=settings,
            tag_mappings=tag_mappings,
            dry_run=dry_run,
            excluded_ids=excluded_ids,
            audit=None if dry_run else PgAuditSink(conn),
        )
        payload = result.to_dict()
        click.echo(build_import_report(result))
        if dry_run:
            conn.rollback()
            click.echo(f"[{run_id}] DRY RUN - nothing written.")
        else:
            conn.commit()
            click.echo(f"[{run_id}] Committed.")
    except BatchAbortError as exc:
        conn.rollback()
        aborted = True
        payload = exc.to_dict()
        click.echo(build_abort_report(payload), err=True)
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    if print_json:
        click.echo(json.dumps(payload, indent=2, default=str, ensure_ascii=False))

    report_path = write_run_report(
        run_id, started_at, dry_run,
        {"csv_path": csv_path, "tag_mappings_path": tag_mappings_path},
        payload,
        report_dir=Path(report_dir),
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if aborted:
        click.echo(f"[{run_id}] Batch rejected: {payload['code']}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
