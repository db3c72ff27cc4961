"""Two-phase retrieval of business records from the lead provider."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_incrementing

from .ingestion.loaders import records_from_payload
from .models import Job, RawRecord

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://dahab.app.outscraper.com"
TRANSIENT_STATUS_CODES = frozenset({503})


class FetchError(RuntimeError):
    """Raised when the provider cannot return business data."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        return self.status_code in TRANSIENT_STATUS_CODES


class EstimateError(FetchError):
    """Raised when the estimate call fails or reports no matching records."""


@dataclass(frozen=True)
class FetchParams:
    """Search filters and pagination for one provider query."""

    api_key: str
    country: str
    city: str
    business_type: str
    limit: int
    state: Optional[str] = None
    postal_code: Optional[str] = None
    skip_times: int = 1

    @classmethod
    def from_job(cls, job: Job, api_key: str) -> "FetchParams":
        return cls(
            api_key=api_key,
            country=job.country,
            city=job.city,
            business_type=job.business_type,
            limit=job.record_limit,
            state=job.state,
            postal_code=job.postal_code,
            skip_times=job.skip_times or 1,
        )

    @property
    def skip(self) -> int:
        return (max(self.skip_times, 1) - 1) * self.limit

    def base_query(self) -> Dict[str, str]:
        return {
            "cc": self.country,
            "city": self.city,
            "state": self.state or "",
            "postalCode": self.postal_code or "",
            "type": self.business_type,
        }

    def page_query(self) -> Dict[str, str]:
        query = self.base_query()
        query["limit"] = str(self.limit)
        query["skip"] = str(self.skip)
        return query


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, FetchError) and exc.is_transient


class DataFetcher:
    """Runs the estimate check, then the paginated fetch with bounded retry on 503.

    ``timeout_seconds`` is handed to ``requests`` for each phase, which bounds
    the connection and every socket read separately. It is not a deadline for
    the whole response, so a provider that keeps trickling bytes can hold a
    phase open for longer.
    """

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 5.0,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session or requests.Session()
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_seconds
        self._sleep = sleep

    def fetch(self, params: FetchParams) -> List[RawRecord]:
        total = self.estimate(params)
        LOGGER.info("Provider estimates %s matching records", total)
        return records_from_payload(self.fetch_page(params))

    def estimate(self, params: FetchParams) -> int:
        url = f"{self._base_url}/estimate/places"
        try:
            response = self._session.get(
                url,
                params=params.base_query(),
                headers=self._headers(params),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise EstimateError(f"Estimate request failed: {exc}") from exc

        total = 0
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            try:
                total = int(payload.get("total") or 0)
            except (TypeError, ValueError) as exc:
                raise EstimateError(
                    f"Estimate failed or no data found. Status: {response.status_code}, Total: {payload.get('total')!r}",
                    status_code=response.status_code,
                ) from exc

        if not response.ok or total == 0:
            raise EstimateError(
                f"Estimate failed or no data found. Status: {response.status_code}, Total: {total}",
                status_code=response.status_code,
            )
        return total

    def fetch_page(self, params: FetchParams) -> List[Dict[str, Any]]:
        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_incrementing(start=self._backoff, increment=self._backoff),
            retry=retry_if_exception(_is_transient),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                LOGGER.info("Attempt %s to fetch business data", number)
                return self._fetch_page_once(params)
        return []  # pragma: no cover - Retrying either returns or raises

    def _fetch_page_once(self, params: FetchParams) -> List[Dict[str, Any]]:
        url = f"{self._base_url}/data/places"
        try:
            response = self._session.get(
                url,
                params=params.page_query(),
                headers=self._headers(params),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise FetchError(f"API request failed: {exc}") from exc

        if not response.ok:
            raise FetchError(
                f"API request failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError("API response was not valid JSON") from exc
        data = payload.get("data") if isinstance(payload, dict) else None
        return list(data or [])

    @staticmethod
    def _headers(params: FetchParams) -> Dict[str, str]:
        return {"X-API-KEY": params.api_key}

    @staticmethod
    def _log_retry(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        LOGGER.warning(
            "Attempt %s failed: %s; retrying in %.1fs",
            retry_state.attempt_number,
            exc,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
        )
