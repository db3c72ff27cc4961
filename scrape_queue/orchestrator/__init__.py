"""Workflow orchestration for claiming, processing and finishing queued scrape jobs."""

from .service import JobOutcome, ScrapeJobProcessor

__all__ = ["JobOutcome", "ScrapeJobProcessor"]
