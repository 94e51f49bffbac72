"""Domain entities for bulk invoice jobs."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    ENDED = "ended"


class JobKind(str, Enum):
    INVOICE = "invoice"


class Stage(str, Enum):
    CONTACT = "contact"
    INVOICE = "invoice"
    COMPLETE = "complete"


class TerminalKind(str, Enum):
    COMPLETED = "completed"
    ENDED = "ended"
    CRITICAL_ERROR = "critical_error"


@dataclass(slots=True)
class JobControlState:
    """Shared control state of a running job."""

    status: JobStatus = JobStatus.RUNNING


@dataclass(slots=True)
class InputItem:
    """One recipient plus the identifiers resolved while processing it."""

    row_number: int
    email: str
    contact_id: str | None = None
    contact_person_ids: list[str] = field(default_factory=list)
    invoice_id: str | None = None
    invoice_number: str | None = None

    @property
    def contact_name(self) -> str:
        return self.email.split("@")[0]


@dataclass(slots=True)
class StageResponse:
    success: bool
    full_response: Any = None

    def to_payload(self) -> dict[str, Any]:
        return {"success": self.success, "full_response": self.full_response}


@dataclass(slots=True)
class ProgressEvent:
    """Progress of a single row through the invoice pipeline."""

    row_number: int
    email: str
    stage: Stage
    details: str
    profile_name: str
    success: bool | None = None
    invoice_number: str | None = None
    contact_response: StageResponse | None = None
    invoice_response: StageResponse | None = None
    email_response: StageResponse | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "row_number": self.row_number,
            "email": self.email,
            "stage": self.stage.value,
            "details": self.details,
            "profile_name": self.profile_name,
        }
        if self.success is not None:
            payload["success"] = self.success
        if self.invoice_number is not None:
            payload["invoice_number"] = self.invoice_number
        for key in ("contact_response", "invoice_response", "email_response"):
            response = getattr(self, key)
            if response is not None:
                payload[key] = response.to_payload()
        return payload


@dataclass(slots=True)
class TerminalEvent:
    """Final event of a job; exactly one is emitted per run."""

    kind: TerminalKind
    profile_name: str
    job_type: JobKind = JobKind.INVOICE
    message: str | None = None

    @property
    def event_name(self) -> str:
        if self.kind is TerminalKind.ENDED:
            return "bulk_ended"
        if self.kind is TerminalKind.CRITICAL_ERROR:
            return "bulk_error"
        return "bulk_complete"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "profile_name": self.profile_name,
            "job_type": self.job_type.value,
        }
        if self.message is not None:
            payload["message"] = self.message
        return payload
