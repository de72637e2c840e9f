"""
Call-control webhooks.

FastAPI routes that the telephony provider calls while a call is in
progress. Each route answers with a TwiML document built purely from the
request, so no route needs the session store. When a transfer
coordinator runs in the same process it is told about outcomes as they
arrive. Otherwise a failed dial is reported by the caller's reconnect to
the agent, and a bridged call is closed out by the worker once the ring
deadline passes with the caller off the agent leg.

Any failure while building a document is answered with an apology and a
hangup rather than an HTTP error, so the caller is never left in silence.
"""

from typing import Optional
from urllib.parse import urlencode

from fastapi import FastAPI, HTTPException, Request, Response
from twilio.request_validator import RequestValidator

from switchboard.config import TelephonyConfig, settings
from switchboard.logging_context import get_call_logger, set_call_id
from switchboard.schemas.transfer_schema import TransferOutcome
from switchboard.telephony import twiml
from switchboard.telephony.transfer import TRANSFER_PATH, CallTransferCoordinator
from switchboard.tenants.registry import TenantRegistry

logger = get_call_logger(__name__)

VOICE_PATH = "/twilio/voice"
TRANSFER_STATUS_PATH = "/twilio/voice/transfer-status"
TRANSFER_CALLBACK_PATH = "/twilio/voice/transfer-callback"
RETURN_TO_AGENT_PATH = "/twilio/voice/return-to-agent"

ANSWERED_STATUSES = ("in-progress", "answered")


def _xml(body: str) -> Response:
    return Response(content=body, media_type="application/xml")


def create_app(
    registry: TenantRegistry,
    coordinator: Optional[CallTransferCoordinator] = None,
    telephony: Optional[TelephonyConfig] = None,
) -> FastAPI:
    """Build the webhook application."""
    telephony = telephony or settings.telephony
    validator = (
        RequestValidator(telephony.auth_token)
        if telephony.auth_token and telephony.validate_signatures
        else None
    )
    app = FastAPI(title="switchboard-webhooks")

    def url_for(request: Request, path: str, **params: Optional[str]) -> str:
        base = telephony.public_base_url.rstrip("/") or str(request.base_url).rstrip("/")
        query = urlencode({k: v for k, v in params.items() if v})
        return f"{base}{path}?{query}" if query else f"{base}{path}"

    async def read_form(request: Request) -> dict[str, str]:
        form = await request.form()
        data = {key: str(value) for key, value in form.items()}
        if validator is not None:
            signature = request.headers.get("X-Twilio-Signature", "")
            if not validator.validate(str(request.url), data, signature):
                logger.warning("Rejected webhook with bad signature: %s", request.url.path)
                raise HTTPException(status_code=403, detail="Invalid signature")
        return data

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok", "tenants": len(registry)}

    @app.post(VOICE_PATH)
    async def inbound_call(request: Request) -> Response:
        form = await read_form(request)
        call_sid = form.get("CallSid", "")
        set_call_id(call_sid or "NO_CALL_ID")
        try:
            profile = registry.for_number(form.get("To"))
            if profile is None:
                logger.warning("No tenant for dialed number %s", form.get("To"))
                return _xml(twiml.apology())
            if not telephony.agent_sip_uri or not call_sid:
                logger.error("Cannot connect call: agent SIP URI or CallSid missing")
                return _xml(twiml.apology(profile.message("apology")))
            logger.info("Inbound call for tenant %s", profile.tenant_id)
            return _xml(twiml.connect_to_agent(telephony.agent_sip_uri, profile.tenant_id, call_sid))
        except Exception:
            logger.exception("Inbound call handling failed")
            return _xml(twiml.apology())

    @app.post(TRANSFER_PATH)
    async def transfer(request: Request) -> Response:
        await read_form(request)
        params = request.query_params
        call_leg_id = params.get("callLegId")
        set_call_id(call_leg_id or "NO_CALL_ID")
        try:
            staff_number = params.get("staffNumber")
            tenant_id = params.get("tenantId")
            if not staff_number or not tenant_id:
                logger.error("Transfer document requested without staff number or tenant")
                return _xml(twiml.apology())
            staff_name = params.get("staffName") or "our team"
            timeout = int(params.get("timeout") or telephony.ring_timeout_sec)
            return _xml(twiml.transfer_to_staff(
                staff_number=staff_number,
                staff_name=staff_name,
                timeout_seconds=timeout,
                callback_url=url_for(
                    request, TRANSFER_CALLBACK_PATH, tenantId=tenant_id, callLegId=call_leg_id,
                    staffName=staff_name, staffId=params.get("staffId"),
                ),
                return_url=url_for(
                    request, RETURN_TO_AGENT_PATH, tenantId=tenant_id, callLegId=call_leg_id,
                    staffId=params.get("staffId"),
                ),
                caller_id=params.get("callerId"),
                status_url=url_for(request, TRANSFER_STATUS_PATH, callLegId=call_leg_id),
            ))
        except Exception:
            logger.exception("Transfer document failed")
            return _xml(twiml.apology())

    @app.post(TRANSFER_STATUS_PATH)
    async def transfer_status(request: Request) -> Response:
        form = await read_form(request)
        call_leg_id = request.query_params.get("callLegId") or form.get("ParentCallSid")
        status = (form.get("CallStatus") or "").lower()
        if call_leg_id:
            set_call_id(call_leg_id)
        if coordinator is not None and call_leg_id and status in ANSWERED_STATUSES:
            try:
                await coordinator.resolve(call_leg_id, TransferOutcome.COMPLETED, "answered")
            except Exception:
                logger.exception("Recording answered transfer failed")
        return _xml(twiml.empty())

    @app.post(TRANSFER_CALLBACK_PATH)
    async def transfer_callback(request: Request) -> Response:
        form = await read_form(request)
        params = request.query_params
        call_leg_id = params.get("callLegId") or form.get("CallSid")
        set_call_id(call_leg_id or "NO_CALL_ID")
        dial_status = form.get("DialCallStatus")
        logger.info("Transfer callback DialCallStatus=%r", dial_status)
        try:
            if coordinator is not None and call_leg_id:
                try:
                    await coordinator.resolve(
                        call_leg_id, TransferOutcome.from_dial_status(dial_status), "callback",
                    )
                except Exception:
                    logger.exception("Recording transfer outcome failed")
            return _xml(twiml.transfer_callback(
                dial_status,
                params.get("staffName") or "our team",
                url_for(
                    request, RETURN_TO_AGENT_PATH, tenantId=params.get("tenantId"),
                    callLegId=call_leg_id, staffId=params.get("staffId"),
                ),
            ))
        except Exception:
            logger.exception("Transfer callback failed")
            return _xml(twiml.apology())

    @app.post(RETURN_TO_AGENT_PATH)
    async def return_to_agent(request: Request) -> Response:
        form = await read_form(request)
        params = request.query_params
        call_leg_id = params.get("callLegId") or form.get("CallSid")
        tenant_id = params.get("tenantId")
        set_call_id(call_leg_id or "NO_CALL_ID")
        try:
            if not call_leg_id or not tenant_id or not telephony.agent_sip_uri:
                logger.error("Cannot return caller to agent: missing call, tenant or SIP URI")
                return _xml(twiml.apology())
            logger.info("Returning caller to agent after transfer")
            return _xml(twiml.connect_to_agent(
                telephony.agent_sip_uri,
                tenant_id,
                call_leg_id,
                post_transfer=True,
                intended_staff=params.get("staffId"),
            ))
        except Exception:
            logger.exception("Return to agent failed")
            return _xml(twiml.apology())

    return app
