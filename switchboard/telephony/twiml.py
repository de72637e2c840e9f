"""
Call-control documents (TwiML).

Pure builders: every document is derived from its arguments alone, with
no session lookup, so the webhook routes stay stateless and any process
can serve any leg of any call.
"""

from typing import Optional
from urllib.parse import urlencode

from twilio.twiml.voice_response import Dial, Number, VoiceResponse

from switchboard.prompts.responses import render
from switchboard.schemas.call_schema import (
    CALL_LEG_HEADER,
    INTENDED_STAFF_HEADER,
    POST_TRANSFER_HEADER,
    TENANT_HEADER,
)
from switchboard.schemas.transfer_schema import TransferOutcome


def agent_sip_uri(
    base_uri: str,
    tenant_id: str,
    call_leg_id: str,
    post_transfer: bool = False,
    intended_staff: Optional[str] = None,
) -> str:
    """SIP URI for the agent with routing tags carried as custom headers."""
    headers = {
        TENANT_HEADER: tenant_id,
        CALL_LEG_HEADER: call_leg_id,
        POST_TRANSFER_HEADER: "true" if post_transfer else "false",
    }
    if intended_staff:
        headers[INTENDED_STAFF_HEADER] = intended_staff
    separator = "&" if "?" in base_uri else "?"
    return f"{base_uri}{separator}{urlencode(headers)}"


def connect_to_agent(
    agent_uri: str,
    tenant_id: str,
    call_leg_id: str,
    post_transfer: bool = False,
    intended_staff: Optional[str] = None,
) -> str:
    """Bridge the caller to the voice agent."""
    vr = VoiceResponse()
    dial = Dial()
    dial.sip(agent_sip_uri(agent_uri, tenant_id, call_leg_id, post_transfer, intended_staff))
    vr.append(dial)
    return str(vr)


def transfer_to_staff(
    staff_number: str,
    staff_name: str,
    timeout_seconds: int,
    callback_url: str,
    return_url: str,
    caller_id: Optional[str] = None,
    status_url: Optional[str] = None,
) -> str:
    """Say "connecting", dial staff with a ring timeout and an outcome callback.

    The trailing say/redirect only runs if the provider ignores the
    ``action`` callback, so the caller still lands back with the agent.
    """
    vr = VoiceResponse()
    vr.say(render("transfer_connecting", staff=staff_name))

    dial_kwargs = {"timeout": timeout_seconds, "action": callback_url, "method": "POST"}
    if caller_id:
        dial_kwargs["caller_id"] = caller_id
    dial = Dial(**dial_kwargs)
    if status_url:
        dial.append(Number(
            staff_number,
            status_callback=status_url,
            status_callback_event="answered",
            status_callback_method="POST",
        ))
    else:
        dial.number(staff_number)
    vr.append(dial)

    vr.say(render("transfer_failed"))
    vr.redirect(return_url, method="POST")
    return str(vr)


def transfer_callback(dial_status: Optional[str], staff_name: str, return_url: str) -> str:
    """Close the call after a bridged transfer, or send the caller back for voicemail."""
    vr = VoiceResponse()
    if TransferOutcome.from_dial_status(dial_status) == TransferOutcome.COMPLETED:
        vr.say(render("transfer_goodbye"))
        vr.hangup()
        return str(vr)

    vr.say(render("transfer_not_available", staff=staff_name))
    vr.redirect(return_url, method="POST")
    return str(vr)


def apology(message: Optional[str] = None) -> str:
    """Spoken apology followed by hangup."""
    vr = VoiceResponse()
    vr.say(message or render("apology"))
    vr.hangup()
    return str(vr)


def empty() -> str:
    return str(VoiceResponse())
