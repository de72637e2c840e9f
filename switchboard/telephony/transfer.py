"""
Call transfer coordinator.

Owns the staff-transfer protocol for every live call:

1. INITIATE  redirect the caller's leg to a transfer document that dials
             the staff member with a ring timeout and an outcome callback.
2. AWAIT     exactly one terminal outcome per attempt, from the provider
             callback, from the caller being reconnected to the agent, or
             from the local watchdog once the ring timeout plus a grace
             period has passed with no word.
3. NOTIFY    hand the resolved attempt to the outcome listener (the
             orchestrator), which moves the session out of ROUTING.

Outcomes that arrive after an attempt is resolved are logged and dropped.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from urllib.parse import urlencode

from switchboard.config import TelephonyConfig, settings
from switchboard.errors import TransferUnavailable
from switchboard.logging_context import get_call_logger
from switchboard.schemas.session_schema import Session
from switchboard.schemas.transfer_schema import RouteTarget, TransferAttempt, TransferOutcome
from switchboard.telephony.gateway import CallControlGateway

logger = get_call_logger(__name__)

OutcomeListener = Callable[[TransferAttempt], Awaitable[None]]

TRANSFER_PATH = "/twilio/voice/transfer"


class CallTransferCoordinator:
    """Transfer/timeout/fallback protocol. One pending attempt per call leg."""

    def __init__(
        self,
        gateway: CallControlGateway,
        telephony: Optional[TelephonyConfig] = None,
        listener: Optional[OutcomeListener] = None,
    ) -> None:
        self.gateway = gateway
        self.telephony = telephony or settings.telephony
        self._listener = listener
        self._pending: dict[str, TransferAttempt] = {}
        self._watchdogs: dict[str, asyncio.Task] = {}

    def set_listener(self, listener: OutcomeListener) -> None:
        self._listener = listener

    def has_pending(self, call_leg_id: str) -> bool:
        return call_leg_id in self._pending

    def pending(self, call_leg_id: str) -> Optional[TransferAttempt]:
        return self._pending.get(call_leg_id)

    @property
    def deadline_seconds(self) -> float:
        return self.telephony.ring_timeout_sec + self.telephony.watchdog_grace_sec

    # ------------------------------------------------------------------ #
    # Initiate
    # ------------------------------------------------------------------ #

    def caller_id_for(self, session: Session) -> Optional[str]:
        """Tenant's published number, falling back to the number the caller dialed."""
        profile = session.profile
        if profile is not None and profile.published_number:
            return profile.published_number
        return session.dialed_number

    def build_transfer_url(self, session: Session, target: RouteTarget) -> str:
        base = self.telephony.public_base_url.rstrip("/")
        if not base:
            raise TransferUnavailable("PUBLIC_BASE_URL is not configured")
        params = {
            "tenantId": session.tenant_id,
            "callLegId": session.id,
            "staffId": target.staff_id,
            "staffNumber": target.contact_address,
            "staffName": target.display_name,
            "timeout": str(self.telephony.ring_timeout_sec),
        }
        caller_id = self.caller_id_for(session)
        if caller_id:
            params["callerId"] = caller_id
        return f"{base}{TRANSFER_PATH}?{urlencode(params)}"

    async def initiate(
        self, session: Session, target: RouteTarget, emergency: bool = False,
    ) -> TransferAttempt:
        """Start dialing ``target`` for the caller on ``session``.

        Raises:
            TransferUnavailable: If the target has no contact address, no
                public base URL is configured, or the redirect fails.
        """
        if not target.contact_address:
            raise TransferUnavailable(f"No contact address for staff '{target.staff_id}'")
        url = self.build_transfer_url(session, target)

        self._discard(session.id, reason="superseded")
        attempt = TransferAttempt(
            call_leg_id=session.id,
            session_id=session.id,
            staff_id=target.staff_id,
            staff_name=target.display_name,
            contact_address=target.contact_address,
            emergency=emergency,
        )
        self._pending[session.id] = attempt
        session.transfer = attempt

        try:
            await self.gateway.redirect(session.id, url)
        except TransferUnavailable:
            self._pending.pop(session.id, None)
            attempt.outcome = TransferOutcome.FAILED
            attempt.resolved_at = datetime.now(timezone.utc)
            attempt.resolved_by = "redirect"
            raise

        self._watchdogs[session.id] = asyncio.create_task(self._watchdog(session.id, attempt))
        logger.info(
            "Transfer started to %s (emergency=%s, deadline=%.0fs)",
            target.staff_id, emergency, self.deadline_seconds,
        )
        return attempt

    # ------------------------------------------------------------------ #
    # Resolve
    # ------------------------------------------------------------------ #

    async def resolve(
        self, call_leg_id: str, outcome: TransferOutcome, source: str,
    ) -> Optional[TransferAttempt]:
        """Record the single terminal outcome of a pending attempt.

        Returns the resolved attempt, or None if nothing was pending (a late
        or duplicate report).
        """
        if outcome == TransferOutcome.PENDING:
            raise ValueError("A transfer cannot be resolved as pending")

        attempt = self._pending.pop(call_leg_id, None)
        if attempt is None:
            logger.info(
                "Ignoring %s outcome for %s from %s: no pending transfer",
                outcome.value, call_leg_id, source,
            )
            return None

        attempt.outcome = outcome
        attempt.resolved_at = datetime.now(timezone.utc)
        attempt.resolved_by = source
        self._cancel_watchdog(call_leg_id)
        logger.info("Transfer to %s resolved: %s (via %s)", attempt.staff_id, outcome.value, source)

        if self._listener is not None:
            try:
                await self._listener(attempt)
            except Exception:
                logger.exception("Transfer outcome listener failed for %s", call_leg_id)
        return attempt

    def cancel(self, call_leg_id: str) -> None:
        """Forget a pending attempt without notifying anyone (session gone)."""
        self._discard(call_leg_id, reason="cancelled")

    async def shutdown(self) -> None:
        for call_leg_id in list(self._pending):
            self.cancel(call_leg_id)

    async def _watchdog(self, call_leg_id: str, attempt: TransferAttempt) -> None:
        await asyncio.sleep(self.deadline_seconds)
        if self._pending.get(call_leg_id) is attempt:
            logger.warning("No transfer outcome for %s after %.0fs", call_leg_id, self.deadline_seconds)
            await self.resolve(call_leg_id, TransferOutcome.NO_ANSWER, "deadline")

    def _cancel_watchdog(self, call_leg_id: str) -> None:
        task = self._watchdogs.pop(call_leg_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _discard(self, call_leg_id: str, reason: str) -> None:
        attempt = self._pending.pop(call_leg_id, None)
        self._cancel_watchdog(call_leg_id)
        if attempt is not None:
            attempt.outcome = TransferOutcome.FAILED
            attempt.resolved_at = datetime.now(timezone.utc)
            attempt.resolved_by = reason
            logger.info("Pending transfer to %s %s", attempt.staff_id, reason)
