"""
Fire-and-forget notification delivery.

Voicemail messages and end-of-call summaries are handed to a sender in a
background task. The caller's turn never waits for delivery, a failed
recipient is logged and not retried, and each session fires each kind of
notification at most once.
"""

import asyncio
import logging
from typing import Optional, Protocol, Union

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from switchboard.config import NotificationConfig, TelephonyConfig, settings
from switchboard.errors import NotificationFailure
from switchboard.logging_context import get_call_logger, set_call_id
from switchboard.schemas.notification_schema import ConversationSummary, VoicemailRecord
from switchboard.schemas.session_schema import Session
from switchboard.tenants.profile import TenantProfile
from switchboard.utils import to_e164

logger = get_call_logger(__name__)

Notification = Union[VoicemailRecord, ConversationSummary]


class NotificationSender(Protocol):
    async def send(self, to: str, body: str) -> None:
        """Deliver one message or raise NotificationFailure."""


class LoggingSender:
    """Writes notifications to the log. Default when no SMS sender is configured."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, to: str, body: str) -> None:
        self.sent.append((to, body))
        logging.getLogger(__name__).info("Notification to %s:\n%s", to, body)


class TwilioSmsSender:
    """Sends notifications as SMS through the Twilio REST API."""

    def __init__(self, client: Client, from_number: str) -> None:
        self._client = client
        self._from = from_number

    async def send(self, to: str, body: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.messages.create, to=to_e164(to), from_=self._from, body=body,
            )
        except TwilioRestException as exc:
            raise NotificationFailure(f"SMS to {to} failed: {exc.msg}") from exc


def create_sender(
    notifications: Optional[NotificationConfig] = None,
    telephony: Optional[TelephonyConfig] = None,
) -> NotificationSender:
    """Build the sender named by ``NOTIFICATION_SENDER``."""
    notifications = notifications or settings.notifications
    telephony = telephony or settings.telephony
    if notifications.sender == "sms":
        if not telephony.has_credentials or not notifications.sms_from_number:
            logger.warning("SMS sender requested but Twilio is not configured; logging instead")
            return LoggingSender()
        client = Client(telephony.account_sid, telephony.auth_token)
        return TwilioSmsSender(client, notifications.sms_from_number)
    return LoggingSender()


def _recipients(*addresses: Optional[str]) -> list[str]:
    seen: list[str] = []
    for address in addresses:
        if address and address not in seen:
            seen.append(address)
    return seen


def build_voicemail_record(session: Session, profile: TenantProfile) -> VoicemailRecord:
    """Snapshot a session's voicemail fields.

    Recipients are the tenant admin plus the intended staff member when
    that is a different address.
    """
    target = session.route_target
    admin = profile.admin_contact.resolve_phone() if profile.admin_contact else None
    staff_address = target.contact_address if target else None
    fields = session.fields
    return VoicemailRecord(
        session_id=session.id,
        tenant_id=profile.tenant_id,
        tenant_name=profile.name,
        caller_name=fields.name,
        caller_phone=fields.phone,
        intended_staff=target.display_name if target else profile.routing["default"].display_name,
        reason=fields.reason,
        urgency=fields.urgency,
        recipients=_recipients(admin, staff_address),
    )


def build_summary(session: Session, profile: TenantProfile) -> ConversationSummary:
    admin = profile.admin_contact
    return ConversationSummary(
        session_id=session.id,
        tenant_id=profile.tenant_id,
        tenant_name=profile.name,
        caller_name=session.identity.name or session.fields.name,
        caller_email=session.identity.email,
        caller_phone=session.fields.phone or session.caller_number,
        transcript=session.transcript_lines(),
        recipients=_recipients(admin.resolve_phone() if admin else None),
    )


class NotificationFanout:
    """Spawns delivery tasks and keeps references until they finish."""

    def __init__(self, sender: Optional[NotificationSender] = None) -> None:
        self.sender = sender or create_sender()
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def send_voicemail(self, session: Session, record: VoicemailRecord) -> bool:
        """Fire the voicemail once per session. Returns False if already fired."""
        if session.flags.voicemail_sent:
            logger.debug("Voicemail already sent for %s", session.id)
            return False
        session.flags.voicemail_sent = True
        self._spawn(session.id, record)
        return True

    def send_summary(self, session: Session, profile: TenantProfile) -> bool:
        """Fire the conversation summary once per session. Returns False if already fired."""
        if session.flags.email_sent:
            return False
        session.flags.email_sent = True
        self._spawn(session.id, build_summary(session, profile))
        return True

    async def drain(self) -> None:
        """Wait for every in-flight delivery. Used at shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, session_id: str, notification: Notification) -> None:
        if not notification.recipients:
            logger.warning(
                "No recipients for %s on %s", type(notification).__name__, session_id,
            )
            return
        task = asyncio.create_task(self._deliver(session_id, notification))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, session_id: str, notification: Notification) -> None:
        set_call_id(session_id)
        body = notification.render()
        for recipient in notification.recipients:
            try:
                await self.sender.send(recipient, body)
                notification.delivery_results[recipient] = True
            except Exception as exc:
                notification.delivery_results[recipient] = False
                logger.warning("Notification to %s failed: %s", recipient, exc)
        logger.info(
            "%s delivered to %d/%d recipient(s)",
            type(notification).__name__,
            sum(notification.delivery_results.values()),
            len(notification.recipients),
        )
