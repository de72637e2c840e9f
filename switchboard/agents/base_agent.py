"""Common shape of a tenant's default dialogue agent."""

from datetime import datetime
from typing import Optional

from switchboard.conversation.dialogue import DialogueEngine, DialogueStep
from switchboard.schemas.session_schema import Session
from switchboard.schemas.transfer_schema import TransferOutcome
from switchboard.tenants.profile import TenantProfile


class DialogueAgent:
    """
    Base for the agent that answers when no higher-priority flow claims a turn.

    Greeting, transfer outcomes and the post-transfer resume always go
    through the tenant's DialogueEngine, whatever the agent kind, so every
    tenant gets the same transfer and voicemail guarantees.
    """

    kind = "base"

    def __init__(self, profile: TenantProfile, engine: Optional[DialogueEngine] = None) -> None:
        self.profile = profile
        self.engine = engine or DialogueEngine(profile)

    def greet(self, session: Session, now: Optional[datetime] = None) -> DialogueStep:
        return self.engine.greet(session, now)

    async def respond(self, session: Session, text: str) -> DialogueStep:
        raise NotImplementedError

    def apply_transfer_outcome(self, session: Session, outcome: TransferOutcome) -> DialogueStep:
        return self.engine.apply_transfer_outcome(session, outcome)

    def resume_after_transfer(self, session: Session) -> DialogueStep:
        return self.engine.resume_after_transfer(session)
