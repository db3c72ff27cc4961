"""Email verification against the MillionVerifier API."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, Tuple

import requests

from .models import RawRecord, VerificationResult
from .rate_limit import DelayPolicy, FixedDelay, Pacer

LOGGER = logging.getLogger(__name__)

DEFAULT_VERIFIER_URL = "https://api.millionverifier.com/api/v3/"

DELIVERABLE_RESULTS = frozenset({"ok", "valid"})
DELIVERABLE_QUALITIES = frozenset({"good"})
RISKY_QUALITIES = frozenset({"risky", "bad"})
REJECTED_RESULTS = frozenset({"unknown", "catch_all", "invalid", "disposable", "error"})


class VerificationError(RuntimeError):
    """Raised when the verification provider cannot classify an address."""


def classify_verification(result: str, quality: str) -> bool:
    """Return ``True`` only for deliverable, non-risky classifications."""

    result = (result or "").strip().lower()
    quality = (quality or "").strip().lower()
    if quality in RISKY_QUALITIES or result in REJECTED_RESULTS:
        return False
    return result in DELIVERABLE_RESULTS or quality in DELIVERABLE_QUALITIES


class VerificationClient(Protocol):
    def verify_email(self, email: str) -> VerificationResult:  # pragma: no cover - runtime protocol
        ...


class MillionVerifierClient:
    """Thin wrapper around the single-address verification endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        session: Optional[requests.Session] = None,
        url: str = DEFAULT_VERIFIER_URL,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._session = session or requests.Session()
        self._url = url
        self._timeout = timeout_seconds

    def verify_email(self, email: str) -> VerificationResult:
        try:
            response = self._session.get(
                self._url,
                params={"api": self._api_key, "email": email},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise VerificationError(f"Verification request failed for {email}: {exc}") from exc

        if not response.ok:
            raise VerificationError(f"Verification failed: {response.text}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise VerificationError(f"Verification response for {email} was not valid JSON") from exc
        if not isinstance(payload, dict):
            raise VerificationError(f"Unexpected verification response for {email}")
        if payload.get("error"):
            raise VerificationError(f"Verification failed: {payload['error']}")

        try:
            return result_from_payload(email, payload)
        except (TypeError, ValueError) as exc:
            raise VerificationError(f"Unexpected verification response for {email}: {exc}") from exc


def result_from_payload(email: str, payload: Dict[str, Any]) -> VerificationResult:
    result = str(payload.get("result") or "")
    quality = str(payload.get("quality") or "")
    resultcode = payload.get("resultcode")
    return VerificationResult(
        email=str(payload.get("email") or email),
        result=result,
        quality=quality,
        resultcode=int(resultcode) if resultcode not in (None, "") else None,
        free=bool(payload.get("free")),
        role=bool(payload.get("role")),
        is_valid=classify_verification(result, quality),
    )


class EmailVerifier:
    """Verifies every email slot of a record, pacing provider calls."""

    def __init__(self, client: VerificationClient, *, pacer: Optional[Pacer] = None) -> None:
        self._client = client
        self._pacer = pacer or FixedDelay(DelayPolicy(delay_seconds=0.3))

    def verify(self, record: RawRecord) -> RawRecord:
        first_present = ""
        first_valid = ""

        for slot in record.slots:
            if not slot.looks_like_email:
                continue
            if not first_present:
                first_present = slot.email

            try:
                slot.verification = self._client.verify_email(slot.email)
                slot.is_valid = slot.verification.is_valid
            except VerificationError as exc:
                LOGGER.warning("Verification error for %s: %s", slot.email, exc)
                slot.verification = None
                slot.is_valid = False
            finally:
                self._pacer.wait()

            if slot.is_valid and not first_valid:
                first_valid = slot.email

        record.is_email_valid = bool(first_valid)
        record.canonical_email = first_valid or first_present
        if record.canonical_email:
            LOGGER.debug(
                "Record %s: canonical email %s (%s)",
                record.display_name or "<unnamed>",
                record.canonical_email,
                "valid" if record.is_email_valid else "unverified",
            )
        return record

    def count_candidates(self, record: RawRecord) -> int:
        return sum(1 for slot in record.slots if slot.looks_like_email)


def verify_single_email(
    email: Optional[str],
    api_key: Optional[str],
    *,
    client: Optional[VerificationClient] = None,
) -> Tuple[int, Dict[str, Any]]:
    """Verify one address and return an ``(http_status, body)`` pair."""

    email = (email or "").strip()
    api_key = (api_key or "").strip()
    if not email or not api_key:
        return 400, {"error": "Missing email or API key"}

    client = client or MillionVerifierClient(api_key)
    try:
        result = client.verify_email(email)
    except VerificationError as exc:
        LOGGER.error("Error verifying email %s: %s", email, exc)
        message = str(exc)
        if not message.startswith("Verification failed"):
            message = f"Verification failed: {message}"
        return 500, {"error": message}

    return 200, {
        "status": "valid" if result.is_valid else "invalid",
        "result": result.result,
        "quality": result.quality,
        "resultcode": result.resultcode,
        "free": result.free,
        "role": result.role,
        "email": result.email,
    }
