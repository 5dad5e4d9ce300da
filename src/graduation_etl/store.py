"""graduation_etl.store

Record store used by the reconciliation engine.

The engine only needs three things from a store:
  - find_one_by_key(nrp)  -> TargetRecord | None   (exact match, first by store order)
  - open_batch()          -> PendingBatch          (nothing touches the store yet)
  - commit(batch)                                  (all staged updates or none)
plus discard(batch) for dry runs.

PostgresRecordStore keeps the whole import inside one transaction on a
caller-owned psycopg connection (autocommit=False). Each lookup runs in its
own SAVEPOINT so a failed read does not abort the transaction; the staged
updates are only written when commit() is called.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import psycopg

from graduation_etl.row_validator import GraduationStatus, UpdateIntent
from graduation_etl.shared import CommitError, StoreReadError

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Records and the pending batch
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TargetRecord:
    record_id: str
    key: str
    status: str | None
    display_name: str | None
    # True when more than one record carries this key; the first one is used.
    ambiguous: bool = False


@dataclass(frozen=True)
class StagedUpdate:
    record_id: str
    key: str
    status: GraduationStatus
    display_name: str


class PendingBatch:
    """Builder for the updates of one run, consumed exactly once by commit.

    Staging the same record twice keeps only the last update.
    """

    def __init__(self) -> None:
        self._updates: dict[str, StagedUpdate] = {}
        self._consumed = False

    def stage(self, record: TargetRecord, intent: UpdateIntent) -> PendingBatch:
        if self._consumed:
            raise RuntimeError("batch already committed or discarded")
        self._updates[record.record_id] = StagedUpdate(
            record_id=record.record_id,
            key=record.key,
            status=intent.new_status,
            display_name=intent.new_display_name,
        )
        return self

    @property
    def updates(self) -> tuple[StagedUpdate, ...]:
        return tuple(self._updates.values())

    @property
    def consumed(self) -> bool:
        return self._consumed

    def consume(self) -> tuple[StagedUpdate, ...]:
        if self._consumed:
            raise RuntimeError("batch already committed or discarded")
        self._consumed = True
        return self.updates

    def __len__(self) -> int:
        return len(self._updates)


class RecordStore(Protocol):
    def find_one_by_key(self, key: str) -> TargetRecord | None:
        ...

    def open_batch(self) -> PendingBatch:
        ...

    def commit(self, batch: PendingBatch) -> None:
        """Apply every staged update atomically or raise CommitError."""
        ...

    def discard(self, batch: PendingBatch) -> None:
        ...


# ---------------------------------------------------------------------------
# PostgreSQL store
# ---------------------------------------------------------------------------

class PostgresRecordStore:
    """Registration records in the ``pendaftaran`` table."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn
        self._lookups = 0

    def find_one_by_key(self, key: str) -> TargetRecord | None:
        self._lookups += 1
        sp = f"lookup_{self._lookups}"
        try:
            self._conn.execute(f"SAVEPOINT {sp}")
            try:
                rows = self._conn.execute(
                    """
                    SELECT id, nrp, name, status_kelulusan
                    FROM pendaftaran
                    WHERE nrp = %s
                    ORDER BY created_at ASC, id ASC
                    LIMIT 2
                    """,
                    (key,),
                ).fetchall()
            except psycopg.Error:
                self._conn.execute(f"ROLLBACK TO SAVEPOINT {sp}")
                raise
            self._conn.execute(f"RELEASE SAVEPOINT {sp}")
        except psycopg.Error as exc:
            raise StoreReadError(f"lookup failed for nrp {key}: {exc}") from exc

        if not rows:
            return None
        first = rows[0]
        return TargetRecord(
            record_id=str(first[0]),
            key=first[1],
            display_name=first[2],
            status=first[3],
            ambiguous=len(rows) > 1,
        )

    def open_batch(self) -> PendingBatch:
        return PendingBatch()

    def commit(self, batch: PendingBatch) -> None:
        updates = batch.consume()
        try:
            for u in updates:
                cur = self._conn.execute(
                    """
                    UPDATE pendaftaran
                    SET status_kelulusan = %s,
                        name             = %s,
                        updated_at       = now()
                    WHERE id = %s AND nrp = %s
                    """,
                    (u.status.value, u.display_name, u.record_id, u.key),
                )
                if cur.rowcount != 1:
                    raise CommitError(
                        f"record {u.record_id} (nrp {u.key}) no longer exists"
                    )
            self._conn.commit()
        except CommitError:
            self._rollback()
            raise
        except psycopg.Error as exc:
            self._rollback()
            raise CommitError(f"batch commit failed: {exc}") from exc
        log.info("Committed %d staged update(s) to pendaftaran", len(updates))

    def _rollback(self) -> None:
        # A broken connection cannot roll back; the server discards the
        # transaction when the session ends.
        try:
            self._conn.rollback()
        except psycopg.Error as exc:
            log.error("Rollback after failed commit also failed: %s", exc)

    def discard(self, batch: PendingBatch) -> None:
        batch.consume()
        self._conn.rollback()
