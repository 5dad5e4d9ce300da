"""graduation_etl.import_graduation_status

CLI entrypoint for the graduation-status reconciliation import.

Source (exactly one):
  --csv-path                      local CSV file
  --gcs-bucket + --gcs-object     uploaded object; only CSV objects under
                                  --gcs-prefix (default admin-imports/) are processed

Usage (uploaded object):
    python -m graduation_etl.import_graduation_status \\
        --db-dsn "$GRADUATION_DB_DSN" \\
        --gcs-bucket my-project.appspot.com \\
        --gcs-object "admin-imports/kelulusan-2025.csv"

Usage (local file, keep the file afterwards):
    python -m graduation_etl.import_graduation_status \\
        --db-dsn "$GRADUATION_DB_DSN" \\
        --csv-path "kelulusan-2025.csv" \\
        --keep-artifact

Exit status is 1 when the file cannot be read or the commit fails; in both
cases the source file is left in place.
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime
from pathlib import Path

import click
import psycopg

from graduation_etl.artifacts import (
    DEFAULT_IMPORT_PREFIX,
    Artifact,
    GcsArtifact,
    LocalArtifact,
    should_process,
)
from graduation_etl.reconcile import build_import_report, run_import
from graduation_etl.shared import (
    CommitError,
    RejectWriter,
    StreamReadError,
    write_run_report,
)
from graduation_etl.store import PostgresRecordStore


def _validate_source_flags(
    csv_path: str | None,
    gcs_bucket: str | None,
    gcs_object: str | None,
    run_id: str,
) -> None:
    has_gcs = bool(gcs_bucket or gcs_object)
    if csv_path and has_gcs:
        click.echo(
            f"[{run_id}] ERROR: use either --csv-path or --gcs-bucket/--gcs-object, not both.",
            err=True,
        )
        sys.exit(1)
    if not csv_path and not has_gcs:
        click.echo(
            f"[{run_id}] ERROR: provide --csv-path or --gcs-bucket + --gcs-object.",
            err=True,
        )
        sys.exit(1)
    if has_gcs and not (gcs_bucket and gcs_object):
        click.echo(
            f"[{run_id}] ERROR: --gcs-bucket and --gcs-object must be given together.",
            err=True,
        )
        sys.exit(1)


@click.command()
@click.option(
    "--db-dsn",
    required=True,
    envvar="GRADUATION_DB_DSN",
    help="PostgreSQL DSN (or set GRADUATION_DB_DSN)",
)
@click.option("--csv-path", default=None, type=click.Path(exists=True, dir_okay=False), help="Local CSV to import")
@click.option("--gcs-bucket", default=None, help="Bucket holding the uploaded CSV")
@click.option("--gcs-object", default=None, help="Object name of the uploaded CSV")
@click.option(
    "--gcs-prefix",
    default=DEFAULT_IMPORT_PREFIX,
    show_default=True,
    help="Only objects under this prefix are imported",
)
@click.option("--dry-run", is_flag=True, default=False, help="Validate and resolve, then roll back; never deletes the file")
@click.option("--keep-artifact", is_flag=True, default=False, help="Do not delete the file after a successful import")
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/graduation_status_rejects.csv",
    show_default=True,
)
@click.option(
    "--reports-dir",
    default="./artifacts/reports",
    show_default=True,
    type=click.Path(file_okay=False),
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
)
def main(
    db_dsn: str,
    csv_path: str | None,
    gcs_bucket: str | None,
    gcs_object: str | None,
    gcs_prefix: str,
    dry_run: bool,
    keep_artifact: bool,
    rejects_path: str,
    reports_dir: str,
    run_id: str | None,
    log_level: str,
) -> None:
    """Apply a graduation-status CSV to existing registrations."""
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()

    _validate_source_flags(csv_path, gcs_bucket, gcs_object, run_id)

    artifact: Artifact
    if csv_path:
        artifact = LocalArtifact(Path(csv_path))
    else:
        gcs_artifact = GcsArtifact(bucket_name=gcs_bucket, object_name=gcs_object)  # type: ignore[arg-type]
        try:
            content_type = gcs_artifact.content_type
        except StreamReadError as exc:
            click.echo(f"[{run_id}] FATAL: {exc}", err=True)
            sys.exit(1)
        if not should_process(gcs_object, content_type, gcs_prefix):  # type: ignore[arg-type]
            click.echo(
                f"[{run_id}] {gcs_artifact.name} is not a CSV under {gcs_prefix!r}; skipping."
            )
            return
        artifact = gcs_artifact

    click.echo(f"[{run_id}] Starting graduation status import of {artifact.name} (dry_run={dry_run})")

    rejects = RejectWriter(Path(rejects_path))
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        outcome = run_import(
            artifact,
            PostgresRecordStore(conn),
            run_id=run_id,
            rejects=rejects,
            dry_run=dry_run,
            release_artifact=not keep_artifact,
        )
    except StreamReadError as exc:
        click.echo(f"[{run_id}] FATAL: could not read {artifact.name}: {exc}", err=True)
        sys.exit(1)
    except CommitError as exc:
        click.echo(
            f"[{run_id}] FATAL: commit failed, no updates applied; "
            f"{artifact.name} kept for inspection: {exc}",
            err=True,
        )
        sys.exit(1)
    finally:
        conn.close()
        rejects.close()

    click.echo(build_import_report(outcome))
    report_path = write_run_report(
        run_id, started_at, dry_run, artifact.name, outcome.to_dict(),
        reports_dir=Path(reports_dir),
    )
    click.echo(f"[{run_id}] Run report: {report_path}")
    if dry_run:
        click.echo(f"[{run_id}] [dry-run] All changes rolled back.")


if __name__ == "__main__":
    main()
