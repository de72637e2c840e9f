"""
Knowledge agent: open-ended question answering from a knowledge base.

Used by tenants whose callers mostly ask questions rather than ask for a
person. Each answer is followed by an offer of more help, and a question
the knowledge base cannot answer is followed by an offer to connect the
caller with someone. The orchestrator's follow-up handling interprets
the caller's reply to either offer.
"""

from typing import Optional

from switchboard.agents.base_agent import DialogueAgent
from switchboard.conversation.dialogue import DialogueEngine, DialogueStep
from switchboard.conversation.guardrails import ReplyCues
from switchboard.conversation.state_machine import ConversationState, TransitionTrigger
from switchboard.logging_context import get_call_logger
from switchboard.schemas.session_schema import Session
from switchboard.tenants.profile import TenantProfile
from switchboard.tools.knowledge import KeywordKnowledgeBase, KnowledgeBase

logger = get_call_logger(__name__)

_ENGINE_STATES = (
    ConversationState.ROUTING,
    ConversationState.COLLECTING_VOICEMAIL,
    ConversationState.COMPLETED,
)


class KnowledgeAgent(DialogueAgent):
    """Knowledge-base Q&A with a "not found" fallback and transfer offer."""

    kind = "knowledge"

    def __init__(
        self,
        profile: TenantProfile,
        engine: Optional[DialogueEngine] = None,
        knowledge_base: Optional[KnowledgeBase] = None,
    ) -> None:
        super().__init__(profile, engine)
        self.knowledge_base = knowledge_base or KeywordKnowledgeBase()
        self.cues = ReplyCues()

    async def respond(self, session: Session, text: str) -> DialogueStep:
        if session.state in _ENGINE_STATES:
            return self.engine.step(session, text)

        if session.state == ConversationState.GREETING:
            session.advance(TransitionTrigger.GREETING_DELIVERED)
        elif session.state == ConversationState.ANSWERING:
            session.advance(TransitionTrigger.FOLLOW_UP)

        if self.cues.wants_human(text):
            return self.engine.route_to(session, session.last_intent)

        session.last_intent = self.engine.classifier.classify(text).intent
        answer = await self.knowledge_base.lookup(self.profile, text)
        session.advance(TransitionTrigger.FAQ_ANSWERED)
        session.flags.awaiting_follow_up = True

        if answer is None:
            logger.info("Knowledge base had no answer")
            session.follow_up_offer = "transfer"
            return DialogueStep(text=self.profile.message("not_found"))

        session.follow_up_offer = "more_questions"
        return DialogueStep(text=f"{answer} {self.profile.message('anything_else')}")
