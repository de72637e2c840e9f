"""Call-leg control: redirect a live call to a new signaling document."""

import asyncio
import logging
from typing import Optional, Protocol

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from switchboard.config import TelephonyConfig, settings
from switchboard.errors import TransferUnavailable

logger = logging.getLogger(__name__)


class CallControlGateway(Protocol):
    async def redirect(self, call_leg_id: str, url: str) -> None:
        """Point a live call leg at ``url``; raise TransferUnavailable on failure."""


class TwilioCallGateway:
    """Redirects calls through the Twilio REST API (``calls(sid).update``)."""

    def __init__(self, client: Optional[Client]) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, telephony: Optional[TelephonyConfig] = None) -> "TwilioCallGateway":
        telephony = telephony or settings.telephony
        if not telephony.has_credentials:
            logger.warning("Twilio credentials missing; transfers will be unavailable")
            return cls(None)
        return cls(Client(telephony.account_sid, telephony.auth_token))

    async def redirect(self, call_leg_id: str, url: str) -> None:
        if self._client is None:
            raise TransferUnavailable("Call-control credentials are not configured")
        try:
            await asyncio.to_thread(
                self._client.calls(call_leg_id).update, url=url, method="POST",
            )
        except TwilioRestException as exc:
            raise TransferUnavailable(f"Redirect of {call_leg_id} failed: {exc.msg}") from exc
        logger.info("Call %s redirected", call_leg_id)
