"""Job queue storage: the contract the claimer and persister rely on, plus backends."""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

from .models import Job, JobStatus, ensure_transition

LOGGER = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when the queue backend cannot be read or updated."""


class JobLostError(StoreError):
    """Raised when a job this worker is running was moved out of ``running`` by someone else."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobQueueStore(Protocol):
    """Persisted job table supporting atomic conditional updates."""

    def select_oldest_pending(self, limit: int = 1) -> List[Job]:  # pragma: no cover - runtime protocol
        ...

    def conditional_update_status(
        self,
        job_id: str,
        expected: JobStatus,
        new: JobStatus,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Job]:  # pragma: no cover - runtime protocol
        """Set ``new`` only if the job is still ``expected``; return the updated job or ``None``."""

    def touch_running(self, job_id: str) -> Optional[Job]:  # pragma: no cover - runtime protocol
        """Refresh ``updated_at`` only if the job is still running; return it or ``None``."""

    def fail_stale_running(self, older_than: datetime, error: str) -> List[Job]:  # pragma: no cover - runtime protocol
        """Move every running job last updated before ``older_than`` to failed in one update."""


def _serialise_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            payload[key] = value.isoformat()
        elif isinstance(value, JobStatus):
            payload[key] = value.value
        else:
            payload[key] = value
    return payload


class SupabaseJobStore:
    """Queue table stored in Supabase (PostgREST) and accessed with ``supabase-py``."""

    def __init__(self, client, *, table: str = "scrape_queue", clock=utcnow) -> None:
        self._client = client
        self._table = table
        self._clock = clock

    def _query(self):
        return self._client.table(self._table)

    def select_oldest_pending(self, limit: int = 1) -> List[Job]:
        try:
            response = (
                self._query()
                .select("*")
                .eq("status", JobStatus.PENDING.value)
                .order("created_at")
                .order("id")
                .limit(limit)
                .execute()
            )
        except Exception as exc:
            raise StoreError(f"Failed to read pending jobs from '{self._table}'") from exc
        return [Job.from_row(row) for row in response.data or []]

    def conditional_update_status(
        self,
        job_id: str,
        expected: JobStatus,
        new: JobStatus,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Job]:
        ensure_transition(expected, new)
        payload = _serialise_fields({**dict(fields or {}), "status": new, "updated_at": self._clock()})
        try:
            response = (
                self._query()
                .update(payload)
                .eq("id", job_id)
                .eq("status", expected.value)
                .execute()
            )
        except Exception as exc:
            raise StoreError(f"Failed to update job {job_id} to '{new.value}'") from exc
        rows = response.data or []
        return Job.from_row(rows[0]) if rows else None

    def touch_running(self, job_id: str) -> Optional[Job]:
        payload = _serialise_fields({"updated_at": self._clock()})
        try:
            response = (
                self._query()
                .update(payload)
                .eq("id", job_id)
                .eq("status", JobStatus.RUNNING.value)
                .execute()
            )
        except Exception as exc:
            raise StoreError(f"Failed to refresh running job {job_id}") from exc
        rows = response.data or []
        return Job.from_row(rows[0]) if rows else None

    def fail_stale_running(self, older_than: datetime, error: str) -> List[Job]:
        ensure_transition(JobStatus.RUNNING, JobStatus.FAILED)
        payload = _serialise_fields({"status": JobStatus.FAILED, "error": error, "updated_at": self._clock()})
        try:
            response = (
                self._query()
                .update(payload)
                .eq("status", JobStatus.RUNNING.value)
                .lt("updated_at", older_than.isoformat())
                .execute()
            )
        except Exception as exc:
            raise StoreError("Failed to reap stale running jobs") from exc
        return [Job.from_row(row) for row in response.data or []]


class InMemoryJobStore:
    """Thread-safe in-process queue with the same conditional-update semantics.

    Used for local dry runs and as the store in the test-suite.
    """

    def __init__(self, jobs: Optional[List[Job]] = None, *, clock=utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._jobs: Dict[str, Job] = {}
        self._order: List[str] = []
        self.history: Dict[str, List[JobStatus]] = {}
        for job in jobs or []:
            self.add(job)

    def add(self, job: Job) -> Job:
        with self._lock:
            now = self._clock()
            stored = replace(job, created_at=job.created_at or now, updated_at=job.updated_at or now)
            self._jobs[stored.id] = stored
            self._order.append(stored.id)
            self.history[stored.id] = [stored.status]
            return replace(stored)

    def get(self, job_id: str) -> Job:
        with self._lock:
            return replace(self._jobs[job_id])

    def select_oldest_pending(self, limit: int = 1) -> List[Job]:
        with self._lock:
            pending = [
                (job.created_at, position, job)
                for position, job in enumerate(self._jobs[job_id] for job_id in self._order)
                if job.status is JobStatus.PENDING
            ]
            pending.sort(key=lambda item: (item[0], item[1]))
            return [replace(job) for _, _, job in pending[:limit]]

    def conditional_update_status(
        self,
        job_id: str,
        expected: JobStatus,
        new: JobStatus,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Job]:
        ensure_transition(expected, new)
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status is not expected:
                return None
            updated = replace(job, **dict(fields or {}), status=new, updated_at=self._clock())
            self._jobs[job_id] = updated
            self.history[job_id].append(new)
            return replace(updated)

    def touch_running(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status is not JobStatus.RUNNING:
                return None
            updated = replace(job, updated_at=self._clock())
            self._jobs[job_id] = updated
            return replace(updated)

    def fail_stale_running(self, older_than: datetime, error: str) -> List[Job]:
        ensure_transition(JobStatus.RUNNING, JobStatus.FAILED)
        reaped: List[Job] = []
        with self._lock:
            for job_id, job in self._jobs.items():
                if job.status is JobStatus.RUNNING and job.updated_at is not None and job.updated_at < older_than:
                    updated = replace(job, status=JobStatus.FAILED, error=error, updated_at=self._clock())
                    self._jobs[job_id] = updated
                    self.history[job_id].append(JobStatus.FAILED)
                    reaped.append(replace(updated))
        return reaped


def create_supabase_client(url: str, key: str):
    """Create a ``supabase`` client; imported lazily so tests never need credentials."""

    from supabase import create_client

    client = create_client(url, key)
    LOGGER.info("Supabase client initialized for %s", url)
    return client
