"""Shared fakes for provider HTTP calls, storage and clocks."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest
import requests


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """Returns queued responses per URL suffix and records every call."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self._responses: Dict[str, List[Any]] = {}

    def queue(self, suffix: str, *responses: Any) -> None:
        self._responses.setdefault(suffix, []).extend(responses)

    def get(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None, timeout: Any = None):
        self.calls.append({"url": url, "params": dict(params or {}), "headers": dict(headers or {}), "timeout": timeout})
        for suffix, responses in self._responses.items():
            if url.endswith(suffix) and responses:
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, Exception):
                    raise response
                return response
        raise requests.ConnectionError(f"No fake response queued for {url}")

    def calls_to(self, suffix: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["url"].endswith(suffix)]


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class MemorySink:
    def __init__(self, fail_with: Optional[Exception] = None) -> None:
        self.uploads: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self._fail_with = fail_with

    def upload(self, name: str, content: bytes, *, content_type: str = "") -> str:
        if self._fail_with is not None:
            raise self._fail_with
        self.uploads[name] = content
        self.content_types[name] = content_type
        return f"memory/{name}"


class RecordingPacer:
    def __init__(self) -> None:
        self.waits = 0

    def wait(self) -> None:
        self.waits += 1


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def pacer() -> RecordingPacer:
    return RecordingPacer()


@pytest.fixture
def response():
    return FakeResponse


@pytest.fixture
def sink_factory():
    return MemorySink
