"""Destinations for finished result workbooks."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from .ingestion.exporters import XLSX_CONTENT_TYPE

LOGGER = logging.getLogger(__name__)


class StorageSink(Protocol):
    """Upload-by-name with overwrite allowed."""

    def upload(self, name: str, content: bytes, *, content_type: str = XLSX_CONTENT_TYPE) -> str:  # pragma: no cover - runtime protocol
        """Store ``content`` under ``name`` and return its location."""


class SupabaseStorageSink:
    """Uploads artifacts to a Supabase storage bucket."""

    def __init__(self, client, *, bucket: str = "scrapes") -> None:
        self._client = client
        self._bucket = bucket

    def upload(self, name: str, content: bytes, *, content_type: str = XLSX_CONTENT_TYPE) -> str:
        self._client.storage.from_(self._bucket).upload(
            name,
            content,
            file_options={"content-type": content_type, "upsert": "true"},
        )
        LOGGER.info("Uploaded %s bytes to %s/%s", len(content), self._bucket, name)
        return f"{self._bucket}/{name}"


class LocalDirectorySink:
    """Writes artifacts into a local directory; used for dry runs."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def upload(self, name: str, content: bytes, *, content_type: str = XLSX_CONTENT_TYPE) -> str:
        self._directory.mkdir(parents=True, exist_ok=True)
        destination = self._directory / name
        destination.write_bytes(content)
        LOGGER.info("Wrote %s bytes to %s", len(content), destination)
        return str(destination)
