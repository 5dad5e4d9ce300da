"""graduation_etl.artifacts

Where an uploaded CSV comes from, and how it is deleted once imported.

An Artifact exposes open() for a readable byte stream and release() to
delete it. release() is idempotent: deleting an artifact that is already
gone is not an error.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol

from graduation_etl.shared import StreamReadError

log = logging.getLogger(__name__)

DEFAULT_IMPORT_PREFIX = "admin-imports/"
CSV_CONTENT_TYPE = "text/csv"


class Artifact(Protocol):
    name: str

    def open(self) -> BinaryIO:
        ...

    def release(self) -> None:
        ...


def should_process(
    object_name: str,
    content_type: str | None,
    prefix: str = DEFAULT_IMPORT_PREFIX,
) -> bool:
    """Only CSV uploads under the import prefix are reconciled."""
    if not object_name.startswith(prefix):
        return False
    return bool(content_type) and content_type.startswith(CSV_CONTENT_TYPE)


# ---------------------------------------------------------------------------
# GCS artifact (uploaded object in a bucket)
# ---------------------------------------------------------------------------

@dataclass
class GcsArtifact:
    """CSV object in GCS. The client is created lazily on first use."""

    bucket_name: str
    object_name: str

    def __post_init__(self) -> None:
        self._blob = None

    @property
    def name(self) -> str:
        return f"gs://{self.bucket_name}/{self.object_name}"

    def _get_blob(self):
        if self._blob is None:
            from google.cloud import storage  # type: ignore[import-untyped]

            client = storage.Client()
            self._blob = client.bucket(self.bucket_name).blob(self.object_name)
        return self._blob

    @property
    def content_type(self) -> str | None:
        from google.api_core.exceptions import GoogleAPIError  # type: ignore[import-untyped]

        blob = self._get_blob()
        try:
            blob.reload()
        except GoogleAPIError as exc:
            raise StreamReadError(f"could not read metadata of {self.name}: {exc}") from exc
        return blob.content_type

    def open(self) -> BinaryIO:
        from google.api_core.exceptions import GoogleAPIError  # type: ignore[import-untyped]

        try:
            return io.BytesIO(self._get_blob().download_as_bytes())
        except GoogleAPIError as exc:
            raise StreamReadError(f"could not download {self.name}: {exc}") from exc

    def release(self) -> None:
        from google.api_core.exceptions import NotFound  # type: ignore[import-untyped]

        try:
            self._get_blob().delete()
        except NotFound:
            log.info("%s already deleted", self.name)
            return
        log.info("Deleted %s", self.name)


# ---------------------------------------------------------------------------
# Local artifact (file on disk; used for manual runs and tests)
# ---------------------------------------------------------------------------

@dataclass
class LocalArtifact:
    path: Path

    @property
    def name(self) -> str:
        return str(self.path)

    def open(self) -> BinaryIO:
        return self.path.open("rb")

    def release(self) -> None:
        self.path.unlink(missing_ok=True)
        log.info("Deleted %s", self.name)
