"""Tests for the call transfer coordinator."""

import asyncio
from urllib.parse import parse_qs, urlparse

import pytest

from switchboard.errors import TransferUnavailable
from switchboard.schemas.transfer_schema import RouteTarget, TransferOutcome
from switchboard.telephony.transfer import TRANSFER_PATH, CallTransferCoordinator

from tests.conftest import DELIVERY_PHONE, FakeGateway, make_session, make_telephony

DANA = RouteTarget(staff_id="delivery-coordinator", display_name="Dana",
                   contact_address=DELIVERY_PHONE)


class Recorder:
    def __init__(self):
        self.attempts = []

    async def __call__(self, attempt):
        self.attempts.append(attempt)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def transfers(gateway, telephony, recorder):
    return CallTransferCoordinator(gateway, telephony, listener=recorder)


class TestTransferOutcomeMapping:
    @pytest.mark.parametrize("status,expected", [
        ("completed", TransferOutcome.COMPLETED),
        ("answered", TransferOutcome.COMPLETED),
        ("no-answer", TransferOutcome.NO_ANSWER),
        ("busy", TransferOutcome.BUSY),
        ("failed", TransferOutcome.FAILED),
        ("canceled", TransferOutcome.FAILED),
        (None, TransferOutcome.FAILED),
    ])
    def test_from_dial_status(self, status, expected):
        assert TransferOutcome.from_dial_status(status) == expected


class TestInitiate:
    @pytest.mark.asyncio
    async def test_redirects_to_transfer_document(self, transfers, gateway):
        session = make_session()
        attempt = await transfers.initiate(session, DANA)

        assert attempt.outcome == TransferOutcome.PENDING
        assert session.transfer is attempt
        assert transfers.has_pending(session.id)

        leg, url = gateway.redirects[0]
        assert leg == session.id
        parsed = urlparse(url)
        assert parsed.path == TRANSFER_PATH
        query = parse_qs(parsed.query)
        assert query["staffNumber"] == [DELIVERY_PHONE]
        assert query["staffName"] == ["Dana"]
        assert query["callLegId"] == [session.id]
        assert query["timeout"] == ["30"]
        assert query["callerId"] == ["+15035550100"]
        await transfers.shutdown()

    @pytest.mark.asyncio
    async def test_no_contact_address(self, transfers, gateway):
        target = RouteTarget(staff_id="x", display_name="X", contact_address=None)
        with pytest.raises(TransferUnavailable):
            await transfers.initiate(make_session(), target)
        assert gateway.redirects == []

    @pytest.mark.asyncio
    async def test_no_public_base_url(self, gateway):
        coordinator = CallTransferCoordinator(gateway, make_telephony(public_base_url=""))
        with pytest.raises(TransferUnavailable, match="PUBLIC_BASE_URL"):
            await coordinator.initiate(make_session(), DANA)

    @pytest.mark.asyncio
    async def test_redirect_failure_marks_attempt_failed(self, telephony):
        coordinator = CallTransferCoordinator(FakeGateway(fail=True), telephony)
        session = make_session()
        with pytest.raises(TransferUnavailable):
            await coordinator.initiate(session, DANA)
        assert not coordinator.has_pending(session.id)
        assert session.transfer.outcome == TransferOutcome.FAILED

    @pytest.mark.asyncio
    async def test_new_attempt_supersedes_old(self, transfers, recorder):
        session = make_session()
        first = await transfers.initiate(session, DANA)
        second = await transfers.initiate(session, DANA, emergency=True)

        assert first.outcome == TransferOutcome.FAILED
        assert first.resolved_by == "superseded"
        assert transfers.pending(session.id) is second
        assert recorder.attempts == []
        await transfers.shutdown()


class TestResolve:
    @pytest.mark.asyncio
    async def test_single_outcome_reaches_listener(self, transfers, recorder):
        session = make_session()
        await transfers.initiate(session, DANA)

        attempt = await transfers.resolve(session.id, TransferOutcome.BUSY, "callback")

        assert attempt.outcome == TransferOutcome.BUSY
        assert attempt.resolved_by == "callback"
        assert attempt.is_resolved
        assert recorder.attempts == [attempt]
        assert not transfers.has_pending(session.id)

    @pytest.mark.asyncio
    async def test_late_outcome_is_ignored(self, transfers, recorder):
        session = make_session()
        await transfers.initiate(session, DANA)
        await transfers.resolve(session.id, TransferOutcome.COMPLETED, "answered")

        late = await transfers.resolve(session.id, TransferOutcome.NO_ANSWER, "callback")

        assert late is None
        assert len(recorder.attempts) == 1
        assert session.transfer.outcome == TransferOutcome.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_leg_is_ignored(self, transfers):
        assert await transfers.resolve("CA-nope", TransferOutcome.COMPLETED, "callback") is None

    @pytest.mark.asyncio
    async def test_pending_is_not_an_outcome(self, transfers):
        with pytest.raises(ValueError):
            await transfers.resolve("CA-any", TransferOutcome.PENDING, "callback")

    @pytest.mark.asyncio
    async def test_listener_failure_is_contained(self, gateway, telephony):
        async def broken(attempt):
            raise RuntimeError("listener blew up")

        coordinator = CallTransferCoordinator(gateway, telephony, listener=broken)
        session = make_session()
        await coordinator.initiate(session, DANA)
        attempt = await coordinator.resolve(session.id, TransferOutcome.FAILED, "callback")
        assert attempt.outcome == TransferOutcome.FAILED

    @pytest.mark.asyncio
    async def test_cancel_forgets_silently(self, transfers, recorder):
        session = make_session()
        await transfers.initiate(session, DANA)
        transfers.cancel(session.id)
        assert not transfers.has_pending(session.id)
        assert recorder.attempts == []


class TestWatchdog:
    @pytest.mark.asyncio
    async def test_deadline_resolves_no_answer(self, gateway, recorder):
        telephony = make_telephony(ring_timeout_sec=0, watchdog_grace_sec=0.01)
        coordinator = CallTransferCoordinator(gateway, telephony, listener=recorder)
        session = make_session()
        await coordinator.initiate(session, DANA)

        await asyncio.sleep(0.1)

        assert len(recorder.attempts) == 1
        assert recorder.attempts[0].outcome == TransferOutcome.NO_ANSWER
        assert recorder.attempts[0].resolved_by == "deadline"

    @pytest.mark.asyncio
    async def test_outcome_before_deadline_cancels_watchdog(self, gateway, recorder):
        telephony = make_telephony(ring_timeout_sec=0, watchdog_grace_sec=0.05)
        coordinator = CallTransferCoordinator(gateway, telephony, listener=recorder)
        session = make_session()
        await coordinator.initiate(session, DANA)
        await coordinator.resolve(session.id, TransferOutcome.COMPLETED, "answered")

        await asyncio.sleep(0.1)

        assert [a.outcome for a in recorder.attempts] == [TransferOutcome.COMPLETED]

    def test_deadline_is_ring_timeout_plus_grace(self, gateway):
        coordinator = CallTransferCoordinator(gateway, make_telephony())
        assert coordinator.deadline_seconds == 45.0
