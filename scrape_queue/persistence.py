"""Serialising transformed records, uploading them and finishing the job."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from .ingestion.exporters import XLSX_CONTENT_TYPE, build_results_workbook
from .models import EnrichedRecord, Job, JobStatus
from .storage import StorageSink
from .store import JobLostError, JobQueueStore, StoreError, utcnow

LOGGER = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """Raised when the results workbook cannot be built or uploaded."""


def artifact_name(moment: datetime) -> str:
    return f"queued_{int(moment.timestamp() * 1000)}.xlsx"


class ResultPersister:
    """Builds the workbook once, uploads it, then marks the job completed or failed.

    Nothing is uploaded unless the job is still ``running`` immediately before
    the upload.
    """

    def __init__(
        self,
        store: JobQueueStore,
        sink: StorageSink,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._sink = sink
        self._clock = clock

    def persist(
        self,
        job: Job,
        with_email: Sequence[EnrichedRecord],
        without_email: Sequence[EnrichedRecord],
    ) -> str:
        if self._store.touch_running(job.id) is None:
            raise JobLostError(f"Job {job.id} is no longer running; results were not uploaded")

        name = artifact_name(self._clock())
        try:
            content = build_results_workbook(with_email, without_email)
            location = self._sink.upload(name, content, content_type=XLSX_CONTENT_TYPE)
        except Exception as exc:
            LOGGER.exception("Failed to persist results for job %s", job.id)
            self._store.conditional_update_status(
                job.id, JobStatus.RUNNING, JobStatus.FAILED, {"error": f"Upload failed: {exc}"}
            )
            raise PersistenceError(f"Upload failed: {exc}") from exc

        updated = self._store.conditional_update_status(
            job.id, JobStatus.RUNNING, JobStatus.COMPLETED, {"completed_at": self._clock(), "error": None}
        )
        if updated is None:
            raise StoreError(f"Job {job.id} was no longer running when its results were stored")

        LOGGER.info(
            "Job %s completed: %s row(s) with email, %s without, stored at %s",
            job.id,
            len(with_email),
            len(without_email),
            location,
        )
        return location
