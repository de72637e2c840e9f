"""
Receptionist agent: FAQ answers, routing to staff and voicemail fallback.

Every turn is a step of the tenant's dialogue engine; this agent adds
nothing on top beyond logging which state the turn ran in.
"""

from switchboard.agents.base_agent import DialogueAgent
from switchboard.conversation.dialogue import DialogueStep
from switchboard.logging_context import get_call_logger
from switchboard.schemas.session_schema import Session

logger = get_call_logger(__name__)


class ReceptionistAgent(DialogueAgent):
    """Keyword-classified receptionist driven by the conversation state machine."""

    kind = "receptionist"

    async def respond(self, session: Session, text: str) -> DialogueStep:
        logger.debug("Receptionist turn in state %s", session.state.value)
        return self.engine.step(session, text)
