"""graduation_etl.row_validator

Turn one raw CSV row into an UpdateIntent or a RejectionReason.

Checks run in order and the first failure wins:
  1. Nama, NRP and Status present and non-blank after trim -> missing_field
  2. NRP is exactly ten ASCII digits                        -> invalid_key_format
  3. Status is one of Lulus / Tidak Lulus / Menunggu         -> invalid_status_value

validate() has no side effects; the same row always gives the same result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from graduation_etl.normalize import is_valid_nrp, trim
from graduation_etl.row_parser import COL_NAME, COL_NRP, COL_STATUS


class GraduationStatus(str, Enum):
    """Recognized Status literals. Matching is case-sensitive."""

    PASS = "Lulus"
    FAIL = "Tidak Lulus"
    PENDING = "Menunggu"


_STATUS_BY_LITERAL = {s.value: s for s in GraduationStatus}


class RejectionKind(str, Enum):
    # Validator outcomes
    MISSING_FIELD = "missing_field"
    INVALID_KEY_FORMAT = "invalid_key_format"
    INVALID_STATUS_VALUE = "invalid_status_value"
    # Resolution outcomes (reported by the engine)
    KEY_NOT_FOUND = "key_not_found"
    STORE_READ_ERROR = "store_read_error"


@dataclass(frozen=True)
class UpdateIntent:
    key: str
    new_status: GraduationStatus
    new_display_name: str


@dataclass(frozen=True)
class RejectionReason:
    kind: RejectionKind
    raw: dict[str, Any] = field(default_factory=dict)
    detail: str | None = None

    def describe(self) -> str:
        parts = [self.kind.value]
        if self.raw:
            parts.append(", ".join(f"{k}={v!r}" for k, v in self.raw.items()))
        if self.detail:
            parts.append(self.detail)
        return ": ".join(parts)


def validate(row: dict[str, Any]) -> UpdateIntent | RejectionReason:
    nama = trim(row.get(COL_NAME))
    nrp = trim(row.get(COL_NRP))
    status = trim(row.get(COL_STATUS))
    raw = {"nama": nama or "", "nrp": nrp or "", "status": status or ""}

    if not nama or not nrp or not status:
        return RejectionReason(RejectionKind.MISSING_FIELD, raw)

    if not is_valid_nrp(nrp):
        return RejectionReason(RejectionKind.INVALID_KEY_FORMAT, {"nrp": nrp})

    new_status = _STATUS_BY_LITERAL.get(status)
    if new_status is None:
        return RejectionReason(
            RejectionKind.INVALID_STATUS_VALUE, {"status": status, "nrp": nrp}
        )

    return UpdateIntent(key=nrp, new_status=new_status, new_display_name=nama)
