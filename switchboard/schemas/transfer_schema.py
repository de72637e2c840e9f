"""Transfer targets, attempts and outcomes."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TransferOutcome(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    NO_ANSWER = "no-answer"
    BUSY = "busy"
    FAILED = "failed"

    @classmethod
    def from_dial_status(cls, status: Optional[str]) -> "TransferOutcome":
        """Map a provider ``DialCallStatus`` value onto a terminal outcome.

        Anything unrecognised (including ``canceled`` and an empty value)
        counts as a failure so the caller is brought back for voicemail.
        """
        normalized = (status or "").strip().lower()
        if normalized in ("completed", "answered", "in-progress"):
            return cls.COMPLETED
        if normalized == "no-answer":
            return cls.NO_ANSWER
        if normalized == "busy":
            return cls.BUSY
        return cls.FAILED

    @property
    def is_unavailable(self) -> bool:
        return self in (TransferOutcome.NO_ANSWER, TransferOutcome.BUSY, TransferOutcome.FAILED)


class RouteTarget(BaseModel):
    """Where a call should be sent: one staff member and how to reach them."""

    model_config = ConfigDict(frozen=True)

    staff_id: str
    display_name: str
    contact_address: Optional[str] = None
    advertise: bool = True


class TransferAttempt(BaseModel):
    """One dial attempt to a staff member; resolved exactly once."""

    call_leg_id: str
    session_id: str
    staff_id: str
    staff_name: str
    contact_address: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    outcome: TransferOutcome = TransferOutcome.PENDING
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    emergency: bool = False

    @property
    def is_resolved(self) -> bool:
        return self.outcome != TransferOutcome.PENDING
