"""
Appointment sub-flow collaborators.

The orchestrator only needs three things from an appointment flow: is one
in progress, handle the next reply, and re-render the review step after
the caller corrects their name or email. ``RequestAppointmentFlow`` takes
a free-text preferred time and a yes/no confirmation; real calendar
booking sits behind the same protocol.
"""

import logging
from typing import Optional, Protocol

from switchboard.conversation.guardrails import ReplyCues
from switchboard.schemas.session_schema import Session
from switchboard.tenants.profile import TenantProfile

logger = logging.getLogger(__name__)


class AppointmentFlow(Protocol):
    def is_active(self, session: Session) -> bool:
        ...

    async def handle(self, session: Session, text: str) -> Optional[str]:
        ...

    def render_review(self, session: Session) -> Optional[str]:
        ...


class DisabledAppointmentFlow:
    """For tenants without appointments: never active, never handles."""

    def is_active(self, session: Session) -> bool:
        return False

    async def handle(self, session: Session, text: str) -> Optional[str]:
        return None

    def render_review(self, session: Session) -> Optional[str]:
        return None


class RequestAppointmentFlow:
    """Collects a preferred time, reads it back and records the request."""

    ASK_TIME = "ask_time"
    REVIEW = "review"
    DONE = "done"

    def __init__(self, profile: TenantProfile) -> None:
        self.profile = profile
        self.cues = ReplyCues()

    def is_active(self, session: Session) -> bool:
        return session.appointment.get("stage") in (self.ASK_TIME, self.REVIEW)

    async def handle(self, session: Session, text: str) -> Optional[str]:
        appointment = session.appointment
        stage = appointment.get("stage")

        if stage is None or stage == self.DONE:
            appointment.clear()
            appointment["stage"] = self.ASK_TIME
            return self.profile.message("appointment_ask_time")

        if stage == self.ASK_TIME:
            appointment["preferred_time"] = text.strip()
            appointment["stage"] = self.REVIEW
            return self.render_review(session)

        if self.cues.is_affirmative(text) and not self.cues.is_negative(text):
            appointment["stage"] = self.DONE
            appointment["confirmed"] = True
            logger.info("Appointment requested for session %s", session.id)
            return self.profile.message("appointment_confirmed")

        appointment["stage"] = self.ASK_TIME
        return self.profile.message("appointment_retry")

    def render_review(self, session: Session) -> Optional[str]:
        if session.appointment.get("stage") != self.REVIEW:
            return None
        return self.profile.message(
            "appointment_review",
            name=session.identity.name or "you",
            email=session.identity.email or "no email on file",
            time=session.appointment.get("preferred_time", "a time to be confirmed"),
        )


def create_appointment_flow(profile: TenantProfile) -> AppointmentFlow:
    if profile.features.appointments:
        return RequestAppointmentFlow(profile)
    return DisabledAppointmentFlow()
