"""
Per-tenant dialogue driver on top of the conversation state machine.

The state machine says which moves are legal; this module decides which
move to make for a given caller utterance, using the tenant's intent
rules, routing table, FAQ bank and voicemail field order. The same
engine serves every tenant; only the profile differs.

Flow:
    GREETING -> CLASSIFYING -> ANSWERING <-> CLASSIFYING
                            -> ROUTING -> (transfer outcome)
                                       -> COMPLETED
                                       -> COLLECTING_VOICEMAIL -> COMPLETED
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from switchboard.conversation.guardrails import ReplyCues
from switchboard.conversation.intents import Classification, IntentClassifier, UNKNOWN_INTENT
from switchboard.conversation.slot_manager import VoicemailCollector
from switchboard.conversation.state_machine import ConversationState, TransitionTrigger
from switchboard.errors import TransferUnavailable
from switchboard.logging_context import get_call_logger
from switchboard.schemas.notification_schema import VoicemailRecord
from switchboard.schemas.session_schema import Session
from switchboard.schemas.transfer_schema import RouteTarget, TransferOutcome
from switchboard.tenants.profile import TenantProfile
from switchboard.tenants.routing import FaqBank, RoutingTable
from switchboard.tools.notifications import build_voicemail_record

logger = get_call_logger(__name__)


@dataclass
class DialogueStep:
    """What the engine wants said and done after one event."""

    text: str
    transfer: Optional[RouteTarget] = None
    hangup: bool = False
    voicemail: Optional[VoicemailRecord] = None
    emergency: bool = False


class DialogueEngine:
    """Drives one tenant's calls through the state machine."""

    def __init__(self, profile: TenantProfile, max_retries: Optional[int] = None) -> None:
        self.profile = profile
        self.classifier = IntentClassifier(profile.intents)
        self.routing = RoutingTable(profile)
        self.faq = FaqBank(profile.faq)
        self.collector = VoicemailCollector(profile, max_retries)
        self.cues = ReplyCues()

    def closing(self) -> str:
        return self.profile.message("closing")

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    def greet(self, session: Session, now: Optional[datetime] = None) -> DialogueStep:
        """Speak the hours-appropriate greeting and start classifying."""
        text = self.profile.greeting(now or datetime.now(timezone.utc))
        if session.state == ConversationState.GREETING:
            session.advance(TransitionTrigger.GREETING_DELIVERED)
        return DialogueStep(text=text)

    def step(self, session: Session, text: str) -> DialogueStep:
        state = session.state
        if state == ConversationState.GREETING:
            session.advance(TransitionTrigger.GREETING_DELIVERED)
            state = session.state

        if state == ConversationState.CLASSIFYING:
            return self._classify(session, text)
        if state == ConversationState.ANSWERING:
            return self._answering(session, text)
        if state == ConversationState.ROUTING:
            return DialogueStep(text=self.profile.message(
                "hold", staff=self.collector.staff_name(session),
            ))
        if state == ConversationState.COLLECTING_VOICEMAIL:
            return self._collect(session, text)
        return DialogueStep(text=self.closing(), hangup=True)

    def route_to(self, session: Session, intent: Optional[str]) -> DialogueStep:
        """Resolve a destination for ``intent`` and request a transfer to it."""
        target = self.routing.route(intent)
        if intent in (None, UNKNOWN_INTENT):
            logger.info("Classification miss, routing to default (%s)", target.staff_id)
        session.route_target = target
        session.advance(TransitionTrigger.ROUTE_REQUESTED)
        return DialogueStep(
            text=self.profile.message("connecting", staff=target.display_name),
            transfer=target,
        )

    def emergency(self, session: Session) -> DialogueStep:
        """Preempt whatever is happening and request the emergency transfer.

        Raises:
            TransferUnavailable: If the tenant has no emergency contact.
        """
        target = self.profile.emergency_target()
        if target is None or not target.contact_address:
            raise TransferUnavailable(f"No emergency contact for tenant {self.profile.tenant_id}")
        session.route_target = target
        session.advance(TransitionTrigger.EMERGENCY)
        return DialogueStep(
            text=self.profile.message("emergency_connecting", staff=target.display_name),
            transfer=target,
            emergency=True,
        )

    def transfer_unavailable(self, session: Session, emergency: bool = False) -> DialogueStep:
        """Apology and hangup when a transfer could not even be started."""
        if session.state == ConversationState.ROUTING:
            session.advance(TransitionTrigger.TRANSFER_UNAVAILABLE)
        elif not session.machine.is_terminal():
            session.advance(TransitionTrigger.GOODBYE)
        key = "emergency_unavailable" if emergency else "transfer_unavailable"
        return DialogueStep(text=self.profile.message(key), hangup=True)

    def apply_transfer_outcome(self, session: Session, outcome: TransferOutcome) -> DialogueStep:
        """Leave ROUTING according to the coordinator's verdict."""
        if outcome == TransferOutcome.COMPLETED:
            session.advance(TransitionTrigger.TRANSFER_CONNECTED)
            return DialogueStep(text=self.closing(), hangup=True)

        if session.flags.voicemail_sent:
            # One voicemail pass per call; a second failed transfer just ends it.
            session.advance(TransitionTrigger.TRANSFER_UNAVAILABLE)
            return DialogueStep(
                text=self.profile.message(
                    "already_have_message", staff=self.collector.staff_name(session),
                ),
                hangup=True,
            )

        session.advance(TransitionTrigger.TRANSFER_FAILED)
        return DialogueStep(text=self.collector.start(session))

    def resume_after_transfer(self, session: Session) -> DialogueStep:
        """Pick the call back up when the caller is reconnected after a failed dial."""
        session.flags.post_transfer_return = True
        state = session.state
        if state == ConversationState.GREETING:
            session.advance(TransitionTrigger.RETURNED_FROM_TRANSFER)
            return DialogueStep(text=self.collector.start(session))
        if state == ConversationState.ROUTING:
            return self.apply_transfer_outcome(session, TransferOutcome.NO_ANSWER)
        if state == ConversationState.COLLECTING_VOICEMAIL:
            return DialogueStep(text=self.collector.start(session))
        if state == ConversationState.COMPLETED:
            return DialogueStep(text=self.closing(), hangup=True)
        return DialogueStep(text=self.profile.message("what_else"))

    # ------------------------------------------------------------------ #
    # State handlers
    # ------------------------------------------------------------------ #

    def _classify(
        self, session: Session, text: str, result: Optional[Classification] = None,
    ) -> DialogueStep:
        result = result or self.classifier.classify(text)
        session.last_intent = result.intent

        if result.is_question:
            answer = self.faq.answer(text)
            if answer.matched:
                session.advance(TransitionTrigger.FAQ_ANSWERED)
                return DialogueStep(text=f"{answer.text} {self.profile.message('anything_else')}")

        return self.route_to(session, result.intent)

    def _answering(self, session: Session, text: str) -> DialogueStep:
        if self.cues.wants_human(text):
            return self.route_to(session, session.last_intent)

        result = self.classifier.classify(text)
        bare_reply = result.intent == UNKNOWN_INTENT and not result.is_question

        if bare_reply and self.cues.is_negative(text):
            session.advance(TransitionTrigger.CALLER_DONE)
            return DialogueStep(text=self.closing(), hangup=True)

        session.advance(TransitionTrigger.FOLLOW_UP)
        if bare_reply and self.cues.is_affirmative(text):
            return DialogueStep(text=self.profile.message("what_else"))
        return self._classify(session, text, result)

    def _collect(self, session: Session, text: str) -> DialogueStep:
        step = self.collector.accept(session, text)
        if not step.complete:
            return DialogueStep(text=step.prompt or self.profile.message("fallback"))

        session.advance(TransitionTrigger.VOICEMAIL_TAKEN)
        record = build_voicemail_record(session, self.profile)
        return DialogueStep(
            text=self.profile.message("voicemail_done", staff=record.intended_staff),
            hangup=True,
            voicemail=record,
        )
