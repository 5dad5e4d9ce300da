"""Unit tests for row_validator.validate."""

from __future__ import annotations

import pytest

from graduation_etl.row_validator import (
    GraduationStatus,
    RejectionKind,
    RejectionReason,
    UpdateIntent,
    validate,
)


def _row(nama="Ada Lovelace", nrp="1234567890", status="Lulus", **extra) -> dict:
    row = {"Nama": nama, "NRP": nrp, "Status": status}
    row.update(extra)
    return row


# ---------------------------------------------------------------------------
# Valid rows
# ---------------------------------------------------------------------------

class TestValidRows:
    @pytest.mark.parametrize("literal,expected", [
        ("Lulus", GraduationStatus.PASS),
        ("Tidak Lulus", GraduationStatus.FAIL),
        ("Menunggu", GraduationStatus.PENDING),
    ])
    def test_recognized_statuses(self, literal, expected):
        result = validate(_row(status=literal))
        assert result == UpdateIntent("1234567890", expected, "Ada Lovelace")

    def test_values_are_trimmed(self):
        result = validate(_row(nama="  Ada Lovelace ", nrp=" 0123456789 ", status=" Menunggu "))
        assert result == UpdateIntent("0123456789", GraduationStatus.PENDING, "Ada Lovelace")

    def test_other_columns_ignored(self):
        result = validate(_row(Kelas="TI-A", Angkatan="2021"))
        assert isinstance(result, UpdateIntent)

    def test_intent_is_immutable(self):
        result = validate(_row())
        with pytest.raises(Exception):
            result.key = "0000000000"  # type: ignore[misc]

    def test_deterministic(self):
        row = _row(nrp="12345")
        assert validate(row) == validate(row)
        assert validate(_row()) == validate(_row())


# ---------------------------------------------------------------------------
# Missing fields
# ---------------------------------------------------------------------------

class TestMissingField:
    @pytest.mark.parametrize("field", ["Nama", "NRP", "Status"])
    def test_empty_value(self, field):
        row = _row()
        row[field] = ""
        result = validate(row)
        assert isinstance(result, RejectionReason)
        assert result.kind is RejectionKind.MISSING_FIELD

    @pytest.mark.parametrize("field", ["Nama", "NRP", "Status"])
    def test_whitespace_value(self, field):
        row = _row()
        row[field] = "   "
        assert validate(row).kind is RejectionKind.MISSING_FIELD

    @pytest.mark.parametrize("field", ["Nama", "NRP", "Status"])
    def test_absent_column(self, field):
        row = _row()
        del row[field]
        assert validate(row).kind is RejectionKind.MISSING_FIELD

    def test_none_value_from_short_line(self):
        assert validate(_row(status=None)).kind is RejectionKind.MISSING_FIELD

    def test_missing_wins_over_bad_key_and_status(self):
        # Empty name together with an invalid key and status is still missing_field.
        result = validate(_row(nama="", nrp="111", status="Graduated"))
        assert result.kind is RejectionKind.MISSING_FIELD

    def test_carries_raw_values(self):
        result = validate(_row(nama="", nrp=" 9999999999 "))
        assert result.raw == {"nama": "", "nrp": "9999999999", "status": "Lulus"}


# ---------------------------------------------------------------------------
# Key format
# ---------------------------------------------------------------------------

class TestInvalidKeyFormat:
    @pytest.mark.parametrize("nrp", ["12345", "12345678901", "12345abcde", "123-456-789"])
    def test_rejected(self, nrp):
        result = validate(_row(nrp=nrp))
        assert isinstance(result, RejectionReason)
        assert result.kind is RejectionKind.INVALID_KEY_FORMAT
        assert result.raw["nrp"] == nrp

    def test_leading_zero_accepted(self):
        assert validate(_row(nrp="0123456789")).key == "0123456789"

    def test_key_checked_before_status(self):
        assert validate(_row(nrp="111", status="Graduated")).kind is RejectionKind.INVALID_KEY_FORMAT


# ---------------------------------------------------------------------------
# Status domain
# ---------------------------------------------------------------------------

class TestInvalidStatusValue:
    @pytest.mark.parametrize("status", ["LULUS", "lulus", "Graduated", "Tidak  Lulus", "Pass"])
    def test_rejected(self, status):
        result = validate(_row(status=status))
        assert isinstance(result, RejectionReason)
        assert result.kind is RejectionKind.INVALID_STATUS_VALUE
        assert result.raw["status"] == status


class TestDescribe:
    def test_includes_kind_and_values(self):
        reason = RejectionReason(RejectionKind.INVALID_KEY_FORMAT, {"nrp": "111"})
        assert reason.describe() == "invalid_key_format: nrp='111'"

    def test_includes_detail(self):
        reason = RejectionReason(RejectionKind.STORE_READ_ERROR, {"nrp": "1"}, detail="timeout")
        assert reason.describe().endswith(": timeout")
