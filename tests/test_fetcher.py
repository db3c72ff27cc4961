"""Unit tests for :mod:`scrape_queue.fetcher`."""
from __future__ import annotations

import pytest
import requests

from scrape_queue.fetcher import DataFetcher, EstimateError, FetchError, FetchParams
from scrape_queue.models import Job


def _params(**overrides) -> FetchParams:
    values = dict(
        api_key="secret-key",
        country="GB",
        city="London",
        business_type="dentist",
        limit=50,
        postal_code="SW1A",
        skip_times=3,
    )
    values.update(overrides)
    return FetchParams(**values)


def _fetcher(session, sleeps=None) -> DataFetcher:
    recorded = sleeps if sleeps is not None else []
    return DataFetcher(session=session, base_url="https://provider.test", sleep=recorded.append)


def test_params_from_job_compute_skip_offset() -> None:
    job = Job(id="1", country="US", city="Austin", business_type="cafe", record_limit=25, skip_times=4)

    params = FetchParams.from_job(job, "key")

    assert params.skip == 75
    assert params.page_query() == {
        "cc": "US",
        "city": "Austin",
        "state": "",
        "postalCode": "",
        "type": "cafe",
        "limit": "25",
        "skip": "75",
    }


def test_first_page_has_zero_skip() -> None:
    assert _params(skip_times=1).skip == 0


def test_fetch_returns_records_and_sends_api_key(fake_session, response) -> None:
    fake_session.queue("/estimate/places", response(200, {"total": 10}))
    fake_session.queue("/data/places", response(200, {"data": [{"display_name": "Acme", "email": "a@x.com"}]}))

    records = _fetcher(fake_session).fetch(_params())

    assert [record.display_name for record in records] == ["Acme"]
    assert records[0].slots[0].email == "a@x.com"
    estimate_call, data_call = fake_session.calls
    assert estimate_call["headers"] == {"X-API-KEY": "secret-key"}
    assert estimate_call["timeout"] == 5.0
    assert data_call["timeout"] == 5.0
    assert "limit" not in estimate_call["params"]
    assert data_call["params"]["skip"] == "100"
    assert data_call["params"]["postalCode"] == "SW1A"


@pytest.mark.parametrize(
    "estimate",
    [
        {"status": 200, "payload": {"total": 0}},
        {"status": 401, "payload": {"total": 5}},
        {"status": 500, "payload": None},
        {"status": 200, "payload": {"total": "many"}},
    ],
)
def test_estimate_failures_are_not_retried(fake_session, response, estimate) -> None:
    fake_session.queue("/estimate/places", response(estimate["status"], estimate["payload"]))

    with pytest.raises(EstimateError):
        _fetcher(fake_session).fetch(_params())

    assert len(fake_session.calls) == 1
    assert fake_session.calls_to("/data/places") == []


def test_estimate_transport_error_raises_estimate_error(fake_session) -> None:
    fake_session.queue("/estimate/places", requests.Timeout("timed out"))

    with pytest.raises(EstimateError, match="timed out"):
        _fetcher(fake_session).fetch(_params())


def test_transient_failures_are_retried_with_increasing_delay(fake_session, response) -> None:
    fake_session.queue("/estimate/places", response(200, {"total": 3}))
    fake_session.queue(
        "/data/places",
        response(503, text="busy"),
        response(503, text="busy"),
        response(200, {"data": [{"display_name": "Third"}]}),
    )
    sleeps: list[float] = []

    records = _fetcher(fake_session, sleeps).fetch(_params())

    assert len(fake_session.calls_to("/data/places")) == 3
    assert sleeps == [1.0, 2.0]
    assert [record.display_name for record in records] == ["Third"]


def test_non_transient_failure_is_raised_after_one_call(fake_session, response) -> None:
    fake_session.queue("/estimate/places", response(200, {"total": 3}))
    fake_session.queue("/data/places", response(400, text="bad request"))
    sleeps: list[float] = []

    with pytest.raises(FetchError) as excinfo:
        _fetcher(fake_session, sleeps).fetch(_params())

    assert excinfo.value.status_code == 400
    assert "400" in str(excinfo.value)
    assert len(fake_session.calls_to("/data/places")) == 1
    assert sleeps == []


def test_transient_failures_exhaust_after_three_attempts(fake_session, response) -> None:
    fake_session.queue("/estimate/places", response(200, {"total": 3}))
    fake_session.queue("/data/places", response(503, text="busy"))
    sleeps: list[float] = []

    with pytest.raises(FetchError) as excinfo:
        _fetcher(fake_session, sleeps).fetch(_params())

    assert excinfo.value.status_code == 503
    assert len(fake_session.calls_to("/data/places")) == 3
    assert sleeps == [1.0, 2.0]


def test_timeout_on_data_phase_is_not_transient(fake_session, response) -> None:
    fake_session.queue("/estimate/places", response(200, {"total": 3}))
    fake_session.queue("/data/places", requests.Timeout("read timed out"))

    with pytest.raises(FetchError):
        _fetcher(fake_session).fetch(_params())

    assert len(fake_session.calls_to("/data/places")) == 1


def test_missing_data_key_returns_empty_list(fake_session, response) -> None:
    fake_session.queue("/estimate/places", response(200, {"total": 3}))
    fake_session.queue("/data/places", response(200, {"data": None}))

    assert _fetcher(fake_session).fetch(_params()) == []


def test_non_numeric_estimate_total_is_an_estimate_error(fake_session, response) -> None:
    fake_session.queue("/estimate/places", response(200, {"total": "n/a"}))

    with pytest.raises(EstimateError, match="Estimate failed or no data found"):
        _fetcher(fake_session).estimate(_params())
