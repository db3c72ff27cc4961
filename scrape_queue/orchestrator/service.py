"""Queue processor that runs one scrape job from claim to terminal status."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..area_codes import AreaCodeMap
from ..claimer import JobClaimer
from ..config import ProviderKeys, SettingsProvider
from ..fetcher import DataFetcher, FetchParams
from ..models import Job, JobStatus, RawRecord
from ..persistence import PersistenceError, ResultPersister
from ..store import JobLostError, JobQueueStore, StoreError, utcnow
from ..transform import RecordTransformer, TransformContext
from ..verification import EmailVerifier

LOGGER = logging.getLogger(__name__)

VerifierFactory = Callable[[ProviderKeys], EmailVerifier]

# Roughly one verification call per second once the provider round trip is added.
LONG_RUN_WARNING_EMAILS = 600

# Well inside the 30 minute stale threshold used by the claimer.
HEARTBEAT_INTERVAL = timedelta(minutes=1)


@dataclass
class JobOutcome:
    """Summary of one processed job."""

    job_id: str
    status: JobStatus
    records_fetched: int = 0
    rows_with_email: int = 0
    rows_without_email: int = 0
    artifact: Optional[str] = None
    error: Optional[str] = None


class ScrapeJobProcessor:
    """Claims one job per poll cycle and drives it through fetch, verify, transform and persist."""

    def __init__(
        self,
        *,
        store: JobQueueStore,
        settings: SettingsProvider,
        fetcher: DataFetcher,
        verifier_factory: VerifierFactory,
        persister: ResultPersister,
        claimer: Optional[JobClaimer] = None,
        transformer: Optional[RecordTransformer] = None,
        area_codes_loader: Callable[[], AreaCodeMap] = AreaCodeMap,
        heartbeat_interval: timedelta = HEARTBEAT_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._fetcher = fetcher
        self._verifier_factory = verifier_factory
        self._persister = persister
        self._claimer = claimer or JobClaimer(store)
        self._transformer = transformer or RecordTransformer()
        self._area_codes_loader = area_codes_loader
        self._heartbeat_interval = heartbeat_interval
        self._clock = clock

    def run_once(self) -> Optional[JobOutcome]:
        """Process at most one job; return ``None`` when the queue is empty."""

        job = self._claimer.claim_next()
        if job is None:
            return None

        LOGGER.info("Running job %s (%s in %s, %s)", job.id, job.business_type, job.city, job.country)
        try:
            return self._process(job)
        except JobLostError as exc:
            LOGGER.warning("Abandoning job %s: %s", job.id, exc)
            return JobOutcome(job_id=job.id, status=JobStatus.FAILED, error=str(exc))
        except PersistenceError as exc:
            return JobOutcome(job_id=job.id, status=JobStatus.FAILED, error=str(exc))
        except Exception as exc:
            LOGGER.exception("Job %s failed", job.id)
            self._finish(job, JobStatus.FAILED, {"error": str(exc)})
            return JobOutcome(job_id=job.id, status=JobStatus.FAILED, error=str(exc))

    def run_forever(
        self,
        *,
        interval_seconds: float = 60.0,
        max_cycles: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> List[JobOutcome]:
        """Poll repeatedly; sleeps when a cycle found nothing to do or the store failed."""

        outcomes: List[JobOutcome] = []
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            cycles += 1
            try:
                outcome = self.run_once()
            except StoreError:
                LOGGER.exception("Queue store unavailable; retrying in %ss", interval_seconds)
                sleep(interval_seconds)
                continue
            if outcome is None:
                sleep(interval_seconds)
                continue
            outcomes.append(outcome)
        return outcomes

    def _process(self, job: Job) -> JobOutcome:
        keys = self._settings.get_provider_keys()

        records = self._fetcher.fetch(FetchParams.from_job(job, keys.targetron_api_key))
        if not records:
            LOGGER.info("No data found for job %s", job.id)
            self._finish(job, JobStatus.NO_RESULTS)
            return JobOutcome(job_id=job.id, status=JobStatus.NO_RESULTS)

        self._verify_all(job, records, self._verifier_factory(keys))

        context = TransformContext(area_codes=self._area_codes_loader())
        with_email, without_email = self._transformer.transform(records, context)

        artifact = self._persister.persist(job, with_email, without_email)
        return JobOutcome(
            job_id=job.id,
            status=JobStatus.COMPLETED,
            records_fetched=len(records),
            rows_with_email=len(with_email),
            rows_without_email=len(without_email),
            artifact=artifact,
        )

    def _verify_all(self, job: Job, records: List[RawRecord], verifier: EmailVerifier) -> None:
        pending = sum(verifier.count_candidates(record) for record in records)
        if pending >= LONG_RUN_WARNING_EMAILS:
            LOGGER.warning("Verifying %s emails sequentially; this job will take a while", pending)
        else:
            LOGGER.info("Verifying %s emails across %s records", pending, len(records))

        last_beat = self._clock()
        for record in records:
            verifier.verify(record)
            now = self._clock()
            if now - last_beat >= self._heartbeat_interval:
                self._heartbeat(job)
                last_beat = now

    def _heartbeat(self, job: Job) -> None:
        if self._store.touch_running(job.id) is None:
            raise JobLostError(f"Job {job.id} is no longer running")

    def _finish(self, job: Job, status: JobStatus, fields: Optional[dict] = None) -> None:
        updated = self._store.conditional_update_status(job.id, JobStatus.RUNNING, status, fields)
        if updated is None:
            LOGGER.warning("Job %s was no longer running; status '%s' not recorded", job.id, status.value)
