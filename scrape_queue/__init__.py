"""Queue processor for scraping, verifying and exporting business leads."""

from . import models  # noqa: F401
from .models import (
    EmailSlot,
    EnrichedRecord,
    Job,
    JobStatus,
    RawRecord,
    VerificationResult,
)
from .orchestrator import JobOutcome, ScrapeJobProcessor  # noqa: F401

__all__ = [
    "EmailSlot",
    "EnrichedRecord",
    "Job",
    "JobOutcome",
    "JobStatus",
    "RawRecord",
    "ScrapeJobProcessor",
    "VerificationResult",
    "ingestion",
    "orchestrator",
]
