"""Data models shared by the queue processor, verifier, transformer and exporter."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional


# --- Job queue ---

class JobStatus(str, Enum):
    """Lifecycle states of a queued scrape job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    NO_RESULTS = "no_results"

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.NO_RESULTS}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.NO_RESULTS: frozenset(),
}


class IllegalTransitionError(ValueError):
    """Raised when a status update would move a job backwards or sideways."""


def ensure_transition(current: JobStatus, new: JobStatus) -> None:
    """Reject any status change that is not in :data:`ALLOWED_TRANSITIONS`."""

    if new not in ALLOWED_TRANSITIONS[current]:
        raise IllegalTransitionError(f"Job status cannot change from '{current.value}' to '{new.value}'")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass
class Job:
    """A row of the scrape queue table."""

    id: str
    status: JobStatus = JobStatus.PENDING
    country: str = ""
    city: str = ""
    state: Optional[str] = None
    postal_code: Optional[str] = None
    business_type: str = ""
    record_limit: int = 0
    skip_times: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Job":
        return cls(
            id=str(row["id"]),
            status=JobStatus(row.get("status") or JobStatus.PENDING.value),
            country=row.get("country") or "",
            city=row.get("city") or "",
            state=row.get("state"),
            postal_code=row.get("postal_code"),
            business_type=row.get("business_type") or "",
            record_limit=int(row.get("record_limit") or 0),
            skip_times=int(row.get("skip_times") or 1),
            created_at=_parse_timestamp(row.get("created_at")),
            updated_at=_parse_timestamp(row.get("updated_at")),
            completed_at=_parse_timestamp(row.get("completed_at")),
            error=row.get("error"),
        )


# --- Email verification ---

@dataclass
class VerificationResult:
    """Classification returned by the email verification provider."""

    email: str
    result: str = ""
    quality: str = ""
    resultcode: Optional[int] = None
    free: bool = False
    role: bool = False
    is_valid: bool = False


# --- Provider records ---

SLOT_KEYS = ("email", "email_1", "email_2", "email_3")


@dataclass
class EmailSlot:
    """One of the parallel email fields of a provider record."""

    key: str
    email: str = ""
    title: str = ""
    first_name: str = ""
    last_name: str = ""
    is_valid: Optional[bool] = None
    verification: Optional[VerificationResult] = None

    @property
    def field_names(self) -> List[str]:
        return [self.key, f"{self.key}_title", f"{self.key}_first_name", f"{self.key}_last_name"]

    @property
    def looks_like_email(self) -> bool:
        return bool(self.email) and "@" in self.email


@dataclass
class RawRecord:
    """A lead returned by the data provider.

    Only the fields the pipeline reasons about are typed; every other provider
    attribute is carried untouched in :attr:`attributes`.
    :attr:`canonical_email` is informational: the verifier logs it, while the
    transformer emits one row per slot instead.
    """

    display_name: str = ""
    postal_code: str = ""
    phone: str = ""
    slots: List[EmailSlot] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)
    is_email_valid: bool = False
    canonical_email: str = ""

    def base_row(self) -> Dict[str, Any]:
        """Return the business attributes without any email slot fields."""

        row = dict(self.attributes)
        row["display_name"] = self.display_name
        row["postal_code"] = self.postal_code
        row["phone"] = self.phone
        return row


@dataclass
class EnrichedRecord:
    """Output row: one email (or none) per record, plus enrichment."""

    attributes: Dict[str, Any] = field(default_factory=dict)
    email: str = ""
    email_title: str = ""
    email_first_name: str = ""
    email_last_name: str = ""
    is_email_valid: bool = False
    enrich_area_code: str = ""
    phone: str = ""

    def as_row(self) -> Dict[str, Any]:
        row = dict(self.attributes)
        row.update(
            {
                "phone": self.phone,
                "enrich area codes": self.enrich_area_code,
                "email": self.email,
                "email_title": self.email_title,
                "email_first_name": self.email_first_name,
                "email_last_name": self.email_last_name,
                "is_email_valid": self.is_email_valid,
            }
        )
        return row


__all__ = [
    "ALLOWED_TRANSITIONS",
    "EmailSlot",
    "EnrichedRecord",
    "IllegalTransitionError",
    "Job",
    "JobStatus",
    "RawRecord",
    "SLOT_KEYS",
    "VerificationResult",
    "ensure_transition",
]
