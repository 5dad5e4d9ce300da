"""graduation_etl.reconcile

Graduation-status reconciliation pipeline.

Reads one uploaded CSV (columns Nama, NRP, Status; others ignored), matches
each row to an existing registration by NRP and applies the new status and
display name to every matched registration in a single atomic commit.

Run sequence:
  a. Parse the whole artifact. StreamReadError aborts the run before the
     store is touched; the artifact is kept.
  b. No data rows -> EmptyInputOutcome; the artifact is released.
  c. Per row, in input order:
       i.   validate          (missing_field / invalid_key_format / invalid_status_value)
       ii.  resolve by NRP    (key_not_found / store_read_error)
       iii. stage the update in the PendingBatch
     Row failures are recorded and the loop continues.
  d. Commit the batch once. CommitError aborts the run and keeps the
     artifact so it can be inspected and re-imported.
  e. Release the artifact and return the ImportOutcome.

Nothing is committed or released if the loop is interrupted.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from graduation_etl.artifacts import Artifact
from graduation_etl.row_parser import RawRow, missing_columns, parse_rows
from graduation_etl.row_validator import (
    RejectionKind,
    RejectionReason,
    UpdateIntent,
    validate,
)
from graduation_etl.shared import RejectWriter, StoreReadError
from graduation_etl.store import PendingBatch, RecordStore

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RowDiagnostic:
    row_index: int
    # None means the row was staged successfully.
    reason: RejectionReason | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    def to_dict(self) -> dict[str, Any]:
        if self.reason is None:
            return {"row": self.row_index, "result": "success"}
        return {
            "row": self.row_index,
            "result": self.reason.kind.value,
            "raw": dict(self.reason.raw),
            "detail": self.reason.detail,
        }


@dataclass(frozen=True)
class ImportOutcome:
    run_id: str
    updated: int
    failed: int
    diagnostics: tuple[RowDiagnostic, ...]
    records_staged: int = 0
    warnings: tuple[str, ...] = ()
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": "import",
            "run_id": self.run_id,
            "updated": self.updated,
            "failed": self.failed,
            "records_staged": self.records_staged,
            "dry_run": self.dry_run,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "warnings": list(self.warnings[:50]),
        }


@dataclass(frozen=True)
class EmptyInputOutcome:
    run_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"outcome": "empty", "run_id": self.run_id}


@dataclass
class _RunState:
    """Mutable per-run accumulator; never shared between runs."""

    batch: PendingBatch
    updated: int = 0
    failed: int = 0
    diagnostics: list[RowDiagnostic] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Row processing
# ---------------------------------------------------------------------------

def _reject(
    state: _RunState,
    idx: int,
    row: RawRow,
    reason: RejectionReason,
    rejects: RejectWriter | None,
) -> None:
    state.failed += 1
    state.diagnostics.append(RowDiagnostic(idx, reason))
    if rejects is not None:
        rejects.write(row, reason.describe())
    log.warning("Row %d skipped (%s)", idx, reason.describe())


def _process_row(
    store: RecordStore,
    state: _RunState,
    idx: int,
    row: RawRow,
    rejects: RejectWriter | None,
) -> None:
    result = validate(row)
    if isinstance(result, RejectionReason):
        _reject(state, idx, row, result, rejects)
        return

    intent: UpdateIntent = result
    try:
        record = store.find_one_by_key(intent.key)
    except StoreReadError as exc:
        reason = RejectionReason(
            RejectionKind.STORE_READ_ERROR, {"nrp": intent.key}, detail=str(exc)
        )
        _reject(state, idx, row, reason, rejects)
        return

    if record is None:
        reason = RejectionReason(RejectionKind.KEY_NOT_FOUND, {"nrp": intent.key})
        _reject(state, idx, row, reason, rejects)
        return

    if record.ambiguous:
        msg = f"row {idx}: duplicate_key nrp={intent.key!r}; updating record {record.record_id}"
        state.warnings.append(msg)
        log.warning("Row %d: more than one registration has NRP %s; using %s",
                    idx, intent.key, record.record_id)

    state.batch = state.batch.stage(record, intent)
    state.updated += 1
    state.diagnostics.append(RowDiagnostic(idx))


# ---------------------------------------------------------------------------
# Top-level runner
# ---------------------------------------------------------------------------

def run_import(
    artifact: Artifact,
    store: RecordStore,
    *,
    run_id: str | None = None,
    rejects: RejectWriter | None = None,
    dry_run: bool = False,
    release_artifact: bool = True,
) -> ImportOutcome | EmptyInputOutcome:
    """Reconcile one uploaded CSV against the registration store.

    Args:
        artifact: The uploaded CSV; released only after a successful commit
            or when it holds no data rows.
        store: Record store; the engine never creates or deletes records.
        run_id: Correlation id for logs and reports (generated if omitted).
        rejects: Optional writer receiving every failed row.
        dry_run: Validate and resolve, then discard the batch. The artifact
            is never released on a dry run.
        release_artifact: Set False to keep the artifact after a real run.

    Returns:
        ImportOutcome, or EmptyInputOutcome for a header-only/empty file.

    Raises:
        StreamReadError: The artifact could not be read as CSV.
        CommitError: The batch commit failed; no update was applied and the
            artifact is kept.
    """
    run_id = run_id or str(uuid.uuid4())
    log.info("[%s] Processing %s", run_id, artifact.name)

    with artifact.open() as stream:
        row_stream = parse_rows(stream)
        rows = list(row_stream)

    if not rows:
        log.info("[%s] %s has no data rows; nothing to import", run_id, artifact.name)
        if release_artifact and not dry_run:
            artifact.release()
        return EmptyInputOutcome(run_id=run_id)

    log.info("[%s] Found %d data row(s)", run_id, len(rows))
    state = _RunState(batch=store.open_batch())

    absent = missing_columns(row_stream.fieldnames)
    if absent:
        msg = f"header is missing column(s): {', '.join(absent)}"
        state.warnings.append(msg)
        log.warning("[%s] %s", run_id, msg)

    for idx, row in enumerate(rows, start=1):
        _process_row(store, state, idx, row, rejects)

    records_staged = len(state.batch)
    if dry_run:
        store.discard(state.batch)
        log.info("[%s] [dry-run] %d update(s) staged, batch discarded", run_id, records_staged)
    elif state.updated + state.failed > 0:
        store.commit(state.batch)

    log.info(
        "[%s] Import finished: %d row(s) updated, %d row(s) failed/skipped",
        run_id, state.updated, state.failed,
    )

    if release_artifact and not dry_run:
        artifact.release()
    else:
        log.info("[%s] Keeping %s", run_id, artifact.name)

    return ImportOutcome(
        run_id=run_id,
        updated=state.updated,
        failed=state.failed,
        diagnostics=tuple(state.diagnostics),
        records_staged=records_staged,
        warnings=tuple(state.warnings),
        dry_run=dry_run,
    )


# ---------------------------------------------------------------------------
# Report builder
# ---------------------------------------------------------------------------

def build_import_report(outcome: ImportOutcome | EmptyInputOutcome) -> str:
    if isinstance(outcome, EmptyInputOutcome):
        return "\n".join([
            "=" * 60,
            "Graduation Status Import Report",
            "  input had no data rows; nothing imported",
            "=" * 60,
        ])

    failures = [d for d in outcome.diagnostics if not d.ok]
    lines = [
        "=" * 60,
        "Graduation Status Import Report",
        f"  dry_run: {outcome.dry_run}",
        "=" * 60,
        f"  rows read:                      {len(outcome.diagnostics)}",
        f"  rows updated:                   {outcome.updated}",
        f"  rows failed/skipped:            {outcome.failed}",
        f"  records staged:                 {outcome.records_staged}",
    ]
    if failures:
        lines.append(f"\nFailed rows ({len(failures)}):")
        for d in failures[:20]:
            lines.append(f"  row {d.row_index}: {d.reason.describe()}")
        if len(failures) > 20:
            lines.append(f"  ... and {len(failures) - 20} more")
    if outcome.warnings:
        lines.append(f"\nWarnings ({len(outcome.warnings)}):")
        for w in outcome.warnings[:20]:
            lines.append(f"  {w}")
        if len(outcome.warnings) > 20:
            lines.append(f"  ... and {len(outcome.warnings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)
