"""Claiming queued jobs and releasing jobs that stopped making progress."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from .models import Job, JobStatus
from .store import JobQueueStore, utcnow

LOGGER = logging.getLogger(__name__)

STALE_AFTER = timedelta(minutes=30)


class JobClaimer:
    """Selects the oldest pending job and atomically moves it to ``running``.

    Each poll cycle also fails ``running`` jobs whose ``updated_at`` is older
    than the stale threshold, whether or not a pending job is found.
    """

    def __init__(
        self,
        store: JobQueueStore,
        *,
        stale_after: timedelta = STALE_AFTER,
        max_claim_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._stale_after = stale_after
        self._max_claim_attempts = max(1, max_claim_attempts)
        self._clock = clock

    @property
    def stale_error(self) -> str:
        minutes = int(self._stale_after.total_seconds() // 60)
        return f"Timed out after {minutes}m"

    def reap_stale(self) -> list[Job]:
        cutoff = self._clock() - self._stale_after
        reaped = self._store.fail_stale_running(cutoff, self.stale_error)
        if reaped:
            LOGGER.warning("Failed %s stale running job(s): %s", len(reaped), ", ".join(job.id for job in reaped))
        else:
            LOGGER.debug("No stale running jobs older than %s", cutoff.isoformat())
        return reaped

    def claim_next(self) -> Optional[Job]:
        self.reap_stale()

        for attempt in range(1, self._max_claim_attempts + 1):
            candidates = self._store.select_oldest_pending(limit=1)
            if not candidates:
                LOGGER.info("No pending jobs")
                return None

            candidate = candidates[0]
            claimed = self._store.conditional_update_status(candidate.id, JobStatus.PENDING, JobStatus.RUNNING)
            if claimed is not None:
                LOGGER.info("Claimed job %s", claimed.id)
                return claimed
            LOGGER.info("Job %s was claimed by another worker (attempt %s)", candidate.id, attempt)

        return None
