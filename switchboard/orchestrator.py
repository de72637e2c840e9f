"""
Conversation orchestrator: the per-turn priority dispatcher.

Each caller event is offered to the following handlers in order; the
first that claims it produces the response:

1. Emergency (spoken cue, or the reserved keypad digit)
2. Explicit goodbye
3. Identity collection, on tenants that require it
4. Appointment sub-flow, active or newly requested
5. Name/email change request
6. Pending follow-up to an offer the agent just made
7. The tenant's dialogue agent (receptionist or knowledge)

Tiers 3 to 6 are skipped while a call is ROUTING or COLLECTING_VOICEMAIL;
those turns belong to the dialogue engine.

Any exception raised below this boundary is logged and turned into a
spoken fallback; every path returns something the caller can hear.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from switchboard.agents.base_agent import DialogueAgent
from switchboard.agents.registry import create_agent
from switchboard.config import TelephonyConfig, settings
from switchboard.conversation.dialogue import DialogueStep
from switchboard.conversation.guardrails import GuardrailPipeline
from switchboard.conversation.intents import UNKNOWN_INTENT
from switchboard.conversation.state_machine import ConversationState, TransitionTrigger
from switchboard.errors import SessionNotFound, TenantNotFound, TransferUnavailable
from switchboard.logging_context import get_call_logger, set_call_id
from switchboard.prompts.responses import render
from switchboard.schemas.call_schema import CallTags
from switchboard.schemas.session_schema import Role, Session, TurnResult
from switchboard.schemas.transfer_schema import TransferAttempt, TransferOutcome
from switchboard.session_store import SessionStore
from switchboard.telephony.transfer import CallTransferCoordinator
from switchboard.tenants.profile import TenantProfile
from switchboard.tenants.registry import TenantRegistry
from switchboard.tools.appointments import AppointmentFlow, create_appointment_flow
from switchboard.tools.identity import HeuristicIdentityCollector, IdentityCollector
from switchboard.tools.knowledge import KeywordKnowledgeBase, KnowledgeBase
from switchboard.tools.notifications import NotificationFanout, build_voicemail_record

logger = get_call_logger(__name__)

# States whose turns go straight to the dialogue engine after tiers 1 and 2.
ENGINE_ONLY_STATES = (ConversationState.ROUTING, ConversationState.COLLECTING_VOICEMAIL)


@dataclass
class TenantTools:
    """The collaborators one tenant profile runs with."""

    agent: DialogueAgent
    identity: IdentityCollector
    appointments: AppointmentFlow


class ConversationOrchestrator:
    """Composes the session store, dialogue agents, transfers and notifications."""

    def __init__(
        self,
        registry: TenantRegistry,
        store: SessionStore,
        coordinator: CallTransferCoordinator,
        fanout: NotificationFanout,
        knowledge_base: Optional[KnowledgeBase] = None,
        identity_factory: Optional[Callable[[TenantProfile], IdentityCollector]] = None,
        appointment_factory: Optional[Callable[[TenantProfile], AppointmentFlow]] = None,
        telephony: Optional[TelephonyConfig] = None,
        max_utterance_length: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.coordinator = coordinator
        self.fanout = fanout
        self.knowledge_base = knowledge_base or KeywordKnowledgeBase()
        self.identity_factory = identity_factory or HeuristicIdentityCollector
        self.appointment_factory = appointment_factory or create_appointment_flow
        self.telephony = telephony or settings.telephony
        self.max_utterance_length = max_utterance_length or settings.dialogue.max_utterance_length
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.guardrails = GuardrailPipeline()
        self._tools: dict[tuple[str, int], TenantTools] = {}
        coordinator.set_listener(self._on_transfer_resolved)

    # ------------------------------------------------------------------ #
    # Wiring
    # ------------------------------------------------------------------ #

    def tools_for(self, profile: TenantProfile) -> TenantTools:
        """Collaborators for a profile, built once per profile object."""
        key = (profile.tenant_id, id(profile))
        tools = self._tools.get(key)
        if tools is None:
            kwargs = {"profile": profile}
            if profile.agent == "knowledge":
                kwargs["knowledge_base"] = self.knowledge_base
            tools = TenantTools(
                agent=create_agent(profile.agent, **kwargs),
                identity=self.identity_factory(profile),
                appointments=self.appointment_factory(profile),
            )
            self._prune_tools()
            self._tools[key] = tools
        return tools

    def _prune_tools(self) -> None:
        """Drop collaborators built for profiles the registry no longer holds."""
        current = {(p.tenant_id, id(p)) for p in self.registry.all()}
        for key in [k for k in self._tools if k not in current]:
            del self._tools[key]

    def _session_for(self, session_id: str, tenant_id: Optional[str]) -> Session:
        """Existing session, or a fresh one when the tenant is known."""
        try:
            return self.store.get(session_id)
        except SessionNotFound:
            if tenant_id is None:
                raise
            logger.info("Session %s not found; creating it", session_id)
            profile = self.registry.get(tenant_id)
            return self.store.get_or_create(session_id, tenant_id, profile)

    @staticmethod
    def _result(session: Session, text: str, tier: str, hangup: bool = False,
                transfer: bool = False) -> TurnResult:
        return TurnResult(text=text, hangup=hangup, transfer=transfer,
                          state=session.state, tier=tier)

    # ------------------------------------------------------------------ #
    # Call lifecycle
    # ------------------------------------------------------------------ #

    async def start_call(self, tags: CallTags) -> TurnResult:
        """Open a call leg: greet a new caller, or resume after a failed transfer."""
        set_call_id(tags.call_leg_id)
        try:
            profile = self.registry.get(tags.tenant_id)
        except TenantNotFound:
            logger.error("Unknown tenant %r on call start", tags.tenant_id)
            return TurnResult(text=render("apology"), hangup=True,
                              state=ConversationState.COMPLETED, tier="start")

        if tags.post_transfer_return and self.coordinator.has_pending(tags.call_leg_id):
            await self.coordinator.resolve(tags.call_leg_id, TransferOutcome.NO_ANSWER, "reconnect")

        session = self.store.get_or_create(tags.call_leg_id, profile.tenant_id, profile)
        if session.profile is None:
            session.profile = profile
        session.caller_number = session.caller_number or tags.caller_number
        session.dialed_number = session.dialed_number or tags.dialed_number
        tools = self.tools_for(session.profile)

        async with session.lock:
            session.flags.channel_open = True
            if tags.post_transfer_return:
                if session.route_target is None and tags.intended_staff:
                    session.route_target = session.profile.staff_by_id(tags.intended_staff)
                step = tools.agent.resume_after_transfer(session)
                tier = "resume"
            elif session.state == ConversationState.GREETING:
                step = tools.agent.greet(session, self.clock())
                if session.profile.features.identity_collection and not session.identity.collected:
                    step.text = f"{step.text} {tools.identity.opening_prompt()}"
                tier = "greeting"
            else:
                step = DialogueStep(text=session.profile.message("what_else"))
                tier = "greeting"
            session.add_message(Role.AGENT, step.text)
            return self._result(session, step.text, tier, hangup=step.hangup)

    async def handle_utterance(
        self, session_id: str, text: str, tenant_id: Optional[str] = None,
    ) -> TurnResult:
        """Run one caller turn through the priority tiers."""
        set_call_id(session_id)
        try:
            session = self._session_for(session_id, tenant_id)
        except (SessionNotFound, TenantNotFound):
            logger.warning("Utterance for unknown session %s", session_id)
            return TurnResult(text=render("fallback"), state=ConversationState.GREETING,
                              tier="fallback")

        async with session.lock:
            session.add_message(Role.CALLER, text)
            try:
                result = await self._dispatch(session, text)
            except Exception:
                logger.exception("Turn failed in state %s", session.state.value)
                result = self._result(session, session.profile.message("fallback"), "fallback")
            session.add_message(Role.AGENT, result.text)
            return result

    async def handle_signal(
        self, session_id: str, digit: str, tenant_id: Optional[str] = None,
    ) -> TurnResult:
        """Handle an in-band keypad digit. Only the reserved emergency digit does anything."""
        set_call_id(session_id)
        try:
            session = self._session_for(session_id, tenant_id)
        except (SessionNotFound, TenantNotFound):
            logger.warning("Signal for unknown session %s", session_id)
            return TurnResult(text="", state=ConversationState.GREETING, tier="signal")

        async with session.lock:
            if digit != self.telephony.emergency_digit:
                logger.debug("Ignoring keypad digit %r", digit)
                return self._result(session, "", "signal")
            if not session.profile.features.emergency_transfer:
                logger.info("Emergency digit pressed but tenant has emergency transfer disabled")
                return self._result(session, "", "signal")

            session.add_message(Role.SYSTEM, f"keypad {digit}")
            try:
                result = await self._emergency(session, self.tools_for(session.profile))
            except Exception:
                logger.exception("Emergency signal handling failed")
                result = self._result(session, session.profile.message("fallback"), "fallback")
            session.add_message(Role.AGENT, result.text)
            return result

    async def record_transfer_outcome(
        self, call_leg_id: str, outcome: TransferOutcome, source: str = "callback",
    ) -> Optional[TransferAttempt]:
        """Report a provider-side transfer outcome to the coordinator."""
        set_call_id(call_leg_id)
        return await self.coordinator.resolve(call_leg_id, outcome, source)

    async def end_call(self, session_id: str) -> None:
        """The agent's media leg closed. Keep the session if a transfer is still in flight."""
        set_call_id(session_id)
        try:
            session = self.store.get(session_id)
        except SessionNotFound:
            return

        async with session.lock:
            session.flags.channel_open = False
            if self.coordinator.has_pending(session_id):
                logger.info("Media leg closed during transfer; keeping session")
                return
            collecting = session.state == ConversationState.COLLECTING_VOICEMAIL
            if collecting and not session.flags.voicemail_sent:
                logger.info("Caller left during voicemail collection")
            self._finish(session)
        self.store.delete(session_id)

    def sweep(self, now: Optional[float] = None) -> list[str]:
        """Evict expired sessions and forget their pending transfers."""
        expired = self.store.sweep(now=now)
        for session_id in expired:
            self.coordinator.cancel(session_id)
        return expired

    async def run_sweeper(self, interval: Optional[float] = None) -> None:
        interval = interval or settings.sessions.sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    async def _dispatch(self, session: Session, text: str) -> TurnResult:
        profile = session.profile
        tools = self.tools_for(profile)
        cues = self.guardrails.cues

        # 1. Emergency
        violations = self.guardrails.check_user_input(
            text, emergency_enabled=profile.features.emergency_transfer,
        )
        if any(v.severity == "escalate" for v in violations):
            return await self._emergency(session, tools)

        if len(text) > self.max_utterance_length:
            logger.info("Utterance of %d characters is over the limit", len(text))
            return self._result(session, profile.message("too_long"), "too_long")

        if session.state == ConversationState.COMPLETED:
            return self._result(session, profile.message("closing"), "completed", hangup=True)

        # 2. Goodbye
        if any(v.severity == "end" for v in violations):
            session.advance(TransitionTrigger.GOODBYE)
            self._finish(session)
            return self._result(session, profile.message("closing"), "goodbye", hangup=True)

        side_flows = session.state not in ENGINE_ONLY_STATES

        # 3. Identity
        if side_flows and profile.features.identity_collection and not session.identity.collected:
            step = await tools.identity.collect(session, text)
            return self._result(session, step.text, "identity")

        # 4. Appointment
        if side_flows and profile.features.appointments and (
            tools.appointments.is_active(session) or cues.wants_appointment(text)
        ):
            reply = await tools.appointments.handle(session, text)
            if reply is not None:
                return self._result(session, reply, "appointment")

        # 5. Name/email change
        if side_flows and profile.features.identity_collection and (
            cues.wants_name_change(text) or cues.wants_email_change(text)
        ):
            reply = await tools.identity.apply_change(session, text)
            review = tools.appointments.render_review(session)
            return self._result(session, " ".join(p for p in (reply, review) if p), "change")

        # 6. Follow-up
        if side_flows and session.flags.awaiting_follow_up:
            result = await self._follow_up(session, tools, text)
            if result is not None:
                return result

        # 7. Default agent
        step = await tools.agent.respond(session, text)
        return await self._apply_step(session, tools, step, "agent")

    async def _follow_up(
        self, session: Session, tools: TenantTools, text: str,
    ) -> Optional[TurnResult]:
        """Interpret a short reply against the offer the agent just made."""
        cues = self.guardrails.cues
        offer = session.follow_up_offer
        session.flags.awaiting_follow_up = False
        session.follow_up_offer = None

        classification = tools.agent.engine.classifier.classify(text)
        bare_reply = classification.intent == UNKNOWN_INTENT and not classification.is_question

        if cues.wants_human(text) or (offer == "transfer" and bare_reply and cues.is_affirmative(text)
                                      and not cues.is_negative(text)):
            step = tools.agent.engine.route_to(session, session.last_intent)
            return await self._apply_step(session, tools, step, "follow_up")

        if bare_reply and cues.is_negative(text):
            if session.state == ConversationState.ANSWERING:
                session.advance(TransitionTrigger.CALLER_DONE)
            else:
                session.advance(TransitionTrigger.GOODBYE)
            self._finish(session)
            return self._result(session, session.profile.message("closing"), "follow_up",
                                hangup=True)

        if session.profile.features.appointments and cues.wants_appointment(text):
            reply = await tools.appointments.handle(session, text)
            if reply is not None:
                return self._result(session, reply, "follow_up")

        if bare_reply and (cues.is_affirmative(text) or cues.wants_more(text)):
            return self._result(session, session.profile.message("follow_up_question"), "follow_up")

        return None

    async def _emergency(self, session: Session, tools: TenantTools) -> TurnResult:
        logger.warning("Emergency requested in state %s", session.state.value)
        try:
            step = tools.agent.engine.emergency(session)
        except TransferUnavailable as exc:
            logger.error("Emergency transfer unavailable: %s", exc)
            step = tools.agent.engine.transfer_unavailable(session, emergency=True)
        return await self._apply_step(session, tools, step, "emergency")

    async def _apply_step(
        self, session: Session, tools: TenantTools, step: DialogueStep, tier: str,
    ) -> TurnResult:
        """Carry out the side effects a dialogue step asks for."""
        transferring = False
        if step.transfer is not None:
            try:
                await self.coordinator.initiate(session, step.transfer, emergency=step.emergency)
                transferring = True
            except TransferUnavailable as exc:
                logger.error("Transfer unavailable: %s", exc)
                step = tools.agent.engine.transfer_unavailable(session, emergency=step.emergency)

        if step.voicemail is not None:
            self.fanout.send_voicemail(session, step.voicemail)

        return self._result(session, step.text, tier, hangup=step.hangup, transfer=transferring)

    def _finish(self, session: Session) -> None:
        """Fire whatever notifications are still owed for this call."""
        profile = session.profile
        flags = session.flags
        if flags.voicemail_started and not flags.voicemail_sent and any(
            (session.fields.name, session.fields.phone, session.fields.reason)
        ):
            self.fanout.send_voicemail(session, build_voicemail_record(session, profile))
        if profile.features.call_summary and any(m.role == Role.CALLER for m in session.history):
            self.fanout.send_summary(session, profile)

    # ------------------------------------------------------------------ #
    # Transfer outcomes
    # ------------------------------------------------------------------ #

    async def _on_transfer_resolved(self, attempt: TransferAttempt) -> None:
        try:
            session = self.store.get(attempt.session_id)
        except SessionNotFound:
            logger.info("Transfer resolved for a session that no longer exists")
            return

        async with session.lock:
            if session.state != ConversationState.ROUTING:
                logger.debug("Outcome %s arrived in state %s; nothing to do",
                             attempt.outcome.value, session.state.value)
                return
            if attempt.resolved_by == "deadline" and not session.flags.channel_open:
                # The caller left the agent leg and no outcome reached this
                # process; a later reconnect starts over from SIP headers.
                logger.info("Deadline passed with the caller off the agent leg; closing session")
                session.advance(TransitionTrigger.CALLER_HANDED_OFF)
                session.add_message(Role.SYSTEM, "transfer handed off")
                finished = True
            else:
                tools = self.tools_for(session.profile)
                step = tools.agent.apply_transfer_outcome(session, attempt.outcome)
                session.add_message(Role.SYSTEM, f"transfer {attempt.outcome.value}")
                logger.debug("Outcome applied; next prompt: %s", step.text)
                finished = (
                    attempt.outcome == TransferOutcome.COMPLETED and not session.flags.channel_open
                )
            if finished:
                self._finish(session)

        if finished:
            self.store.delete(session.id)
