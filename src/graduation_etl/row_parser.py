"""graduation_etl.row_parser

Decode an uploaded CSV artifact into raw rows.

The whole stream is decoded up front (strict UTF-8, optional BOM) so an
undecodable file fails with StreamReadError before any row is produced.
Rows themselves are produced lazily.

Each data line maps onto the header positionally. A short line leaves the
trailing columns as ``None`` (absent), which callers can tell apart from a
present-but-empty ``""`` value. Values beyond the header width are dropped.
"""

from __future__ import annotations

import csv
import io
import re
from typing import IO, Iterator

from graduation_etl.shared import StreamReadError, normalize_headers

# Column names the validator reads, matched exactly after whitespace strip.
COL_NAME = "Nama"
COL_NRP = "NRP"
COL_STATUS = "Status"
REQUIRED_COLUMNS = (COL_NAME, COL_NRP, COL_STATUS)

RawRow = dict[str, "str | None"]

_LEADING_BLANK_LINES = re.compile(r"\A(?:[ \t]*(?:\r\n|\r|\n))+")


class RowStream:
    """Lazy, finite, non-restartable sequence of RawRow."""

    def __init__(self, reader: csv.DictReader | None) -> None:
        self._reader = reader
        self.fieldnames: list[str] = list(reader.fieldnames or []) if reader else []

    def __iter__(self) -> Iterator[RawRow]:
        return self

    def __next__(self) -> RawRow:
        if self._reader is None:
            raise StopIteration
        try:
            raw = next(self._reader)
        except csv.Error as exc:
            raise StreamReadError(
                f"malformed CSV near line {self._reader.line_num}: {exc}"
            ) from exc
        return normalize_headers(raw)


def _read_text(stream: IO[bytes] | IO[str]) -> str:
    try:
        data = stream.read()
    except OSError as exc:
        raise StreamReadError(f"could not read input stream: {exc}") from exc
    if isinstance(data, bytes):
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise StreamReadError(f"input is not valid UTF-8: {exc}") from exc
    if data.startswith("\ufeff"):
        return data[1:]
    return data


def parse_rows(stream: IO[bytes] | IO[str]) -> RowStream:
    """Return the rows of a header-led CSV stream.

    Zero bytes or a header-only file give an empty RowStream.
    """
    text = _read_text(stream)
    if not text.strip():
        return RowStream(None)

    # DictReader takes the first physical line as the header, even when blank.
    text = _LEADING_BLANK_LINES.sub("", text)
    reader = csv.DictReader(io.StringIO(text, newline=""))
    try:
        fieldnames = reader.fieldnames
    except csv.Error as exc:
        raise StreamReadError(f"malformed CSV header: {exc}") from exc
    if not fieldnames:
        return RowStream(None)

    reader.fieldnames = [h.strip() for h in fieldnames]
    return RowStream(reader)


def missing_columns(fieldnames: list[str]) -> list[str]:
    """Return the required columns absent from a header, in canonical order."""
    present = set(fieldnames)
    return [c for c in REQUIRED_COLUMNS if c not in present]
