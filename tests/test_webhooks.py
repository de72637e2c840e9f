"""Tests for the call-control webhook routes."""

import xml.etree.ElementTree as ET
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from twilio.request_validator import RequestValidator

from switchboard.schemas.transfer_schema import RouteTarget, TransferOutcome
from switchboard.telephony.server import (
    RETURN_TO_AGENT_PATH,
    TRANSFER_CALLBACK_PATH,
    TRANSFER_STATUS_PATH,
    VOICE_PATH,
    create_app,
)
from switchboard.telephony.transfer import TRANSFER_PATH

from tests.conftest import DELIVERY_PHONE, make_session, make_telephony

DANA = RouteTarget(staff_id="delivery-coordinator", display_name="Dana",
                   contact_address=DELIVERY_PHONE)


def client_for(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def sip_headers(body: str) -> dict:
    uri = ET.fromstring(body).find("Dial/Sip").text
    return {k: v[0] for k, v in parse_qs(urlparse(uri).query).items()}


class TestInboundCall:
    @pytest.mark.asyncio
    async def test_connects_known_number_to_agent(self, registry, telephony):
        async with client_for(create_app(registry, telephony=telephony)) as client:
            response = await client.post(
                VOICE_PATH, data={"CallSid": "CA-1", "To": "+15035550100", "From": "+15035550177"},
            )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        headers = sip_headers(response.text)
        assert headers["X-Tenant-Id"] == "acme-pantry"
        assert headers["X-Call-Leg-Id"] == "CA-1"

    @pytest.mark.asyncio
    async def test_unknown_number_gets_apology(self, registry, telephony):
        async with client_for(create_app(registry, telephony=telephony)) as client:
            response = await client.post(VOICE_PATH, data={"CallSid": "CA-1", "To": "+19995550000"})
        root = ET.fromstring(response.text)
        assert root.find("Hangup") is not None

    @pytest.mark.asyncio
    async def test_missing_agent_uri_gets_apology(self, registry):
        app = create_app(registry, telephony=make_telephony(agent_sip_uri=""))
        async with client_for(app) as client:
            response = await client.post(VOICE_PATH, data={"CallSid": "CA-1", "To": "+15035550100"})
        assert ET.fromstring(response.text).find("Hangup") is not None

    @pytest.mark.asyncio
    async def test_health(self, registry, telephony):
        async with client_for(create_app(registry, telephony=telephony)) as client:
            response = await client.get("/healthz")
        assert response.json() == {"status": "ok", "tenants": 2}


class TestSignatureValidation:
    def setup_method(self):
        self.telephony = make_telephony(auth_token="secret", validate_signatures=True)
        self.form = {"CallSid": "CA-1", "To": "+15035550100"}

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(self, registry):
        async with client_for(create_app(registry, telephony=self.telephony)) as client:
            response = await client.post(
                VOICE_PATH, data=self.form, headers={"X-Twilio-Signature": "forged"},
            )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_good_signature_accepted(self, registry):
        url = f"http://testserver{VOICE_PATH}"
        signature = RequestValidator("secret").compute_signature(url, self.form)
        async with client_for(create_app(registry, telephony=self.telephony)) as client:
            response = await client.post(
                VOICE_PATH, data=self.form, headers={"X-Twilio-Signature": signature},
            )
        assert response.status_code == 200
        assert "Sip" in response.text


class TestTransferDocuments:
    @pytest.mark.asyncio
    async def test_transfer_document_dials_staff(self, registry, telephony):
        params = {
            "tenantId": "acme-pantry", "callLegId": "CA-1", "staffId": "delivery-coordinator",
            "staffNumber": DELIVERY_PHONE, "staffName": "Dana", "timeout": "25",
            "callerId": "+15035550100",
        }
        async with client_for(create_app(registry, telephony=telephony)) as client:
            response = await client.post(TRANSFER_PATH, params=params)

        dial = ET.fromstring(response.text).find("Dial")
        assert dial.get("timeout") == "25"
        assert dial.get("callerId") == "+15035550100"
        assert dial.get("action").startswith("https://switchboard.test" + TRANSFER_CALLBACK_PATH)
        assert dial.find("Number").text == DELIVERY_PHONE
        assert "callLegId=CA-1" in dial.find("Number").get("statusCallback")

    @pytest.mark.asyncio
    async def test_transfer_without_staff_number_apologises(self, registry, telephony):
        async with client_for(create_app(registry, telephony=telephony)) as client:
            response = await client.post(TRANSFER_PATH, params={"tenantId": "acme-pantry"})
        assert ET.fromstring(response.text).find("Hangup") is not None

    @pytest.mark.asyncio
    async def test_return_to_agent_marks_post_transfer(self, registry, telephony):
        params = {"tenantId": "acme-pantry", "callLegId": "CA-1", "staffId": "delivery-coordinator"}
        async with client_for(create_app(registry, telephony=telephony)) as client:
            response = await client.post(RETURN_TO_AGENT_PATH, params=params)

        headers = sip_headers(response.text)
        assert headers["X-Post-Transfer"] == "true"
        assert headers["X-Intended-Staff"] == "delivery-coordinator"
        assert headers["X-Call-Leg-Id"] == "CA-1"


class TestTransferOutcomes:
    @pytest.mark.asyncio
    async def test_answered_status_resolves_completed(self, registry, telephony, coordinator):
        session = make_session(session_id="CA-1")
        await coordinator.initiate(session, DANA)

        app = create_app(registry, coordinator=coordinator, telephony=telephony)
        async with client_for(app) as client:
            response = await client.post(
                TRANSFER_STATUS_PATH, params={"callLegId": "CA-1"}, data={"CallStatus": "in-progress"},
            )

        assert response.status_code == 200
        assert not coordinator.has_pending("CA-1")
        assert session.transfer.outcome == TransferOutcome.COMPLETED
        assert session.transfer.resolved_by == "answered"

    @pytest.mark.asyncio
    async def test_ringing_status_is_ignored(self, registry, telephony, coordinator):
        session = make_session(session_id="CA-1")
        await coordinator.initiate(session, DANA)

        app = create_app(registry, coordinator=coordinator, telephony=telephony)
        async with client_for(app) as client:
            await client.post(
                TRANSFER_STATUS_PATH, params={"callLegId": "CA-1"}, data={"CallStatus": "ringing"},
            )

        assert coordinator.has_pending("CA-1")
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_callback_records_no_answer_and_returns_caller(
        self, registry, telephony, coordinator,
    ):
        session = make_session(session_id="CA-1")
        await coordinator.initiate(session, DANA)

        params = {"tenantId": "acme-pantry", "callLegId": "CA-1", "staffName": "Dana",
                  "staffId": "delivery-coordinator"}
        app = create_app(registry, coordinator=coordinator, telephony=telephony)
        async with client_for(app) as client:
            response = await client.post(
                TRANSFER_CALLBACK_PATH, params=params, data={"DialCallStatus": "no-answer"},
            )

        assert session.transfer.outcome == TransferOutcome.NO_ANSWER
        assert session.transfer.resolved_by == "callback"
        redirect = ET.fromstring(response.text).find("Redirect").text
        assert redirect.startswith("https://switchboard.test" + RETURN_TO_AGENT_PATH)
        assert "staffId=delivery-coordinator" in redirect

    @pytest.mark.asyncio
    async def test_callback_completed_hangs_up(self, registry, telephony):
        async with client_for(create_app(registry, telephony=telephony)) as client:
            response = await client.post(
                TRANSFER_CALLBACK_PATH, params={"callLegId": "CA-1"},
                data={"DialCallStatus": "completed"},
            )
        assert ET.fromstring(response.text).find("Hangup") is not None
