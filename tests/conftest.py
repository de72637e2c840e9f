"""Shared test fixtures and helpers."""

from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from switchboard.config import TelephonyConfig
from switchboard.conversation.guardrails import GuardrailPipeline
from switchboard.conversation.state_machine import ConversationStateMachine
from switchboard.errors import NotificationFailure, TransferUnavailable
from switchboard.orchestrator import ConversationOrchestrator
from switchboard.schemas.call_schema import CallTags
from switchboard.schemas.session_schema import Session
from switchboard.session_store import SessionStore
from switchboard.telephony.transfer import CallTransferCoordinator
from switchboard.tenants.profile import TenantProfile
from switchboard.tenants.registry import TenantRegistry
from switchboard.tools.notifications import NotificationFanout

FIXED_NOW = datetime(2025, 3, 18, 17, 0, tzinfo=timezone.utc)  # Tue 10:00 in Los Angeles

FRONT_DESK_PHONE = "+15035550110"
DELIVERY_PHONE = "+15035550111"
EMERGENCY_PHONE = "+15035550199"
ADMIN_PHONE = "+15035550120"


def profile_data(**overrides: Any) -> dict:
    """Raw profile dict with sensible defaults, as it would come out of YAML."""
    data = {
        "tenant_id": "acme-pantry",
        "name": "Acme Pantry",
        "phone_numbers": ["+15035550100"],
        "published_number": "+15035550100",
        "intents": [
            {
                "intent": "deliveries",
                "any": ["delivery", "deliveries"],
                "question_keywords": ["when", "status"],
            },
            {"intent": "volunteering", "any": ["volunteer"]},
        ],
        "routing": {
            "default": {
                "staff_id": "front-desk",
                "display_name": "the front desk",
                "phone": FRONT_DESK_PHONE,
            },
            "deliveries": {
                "staff_id": "delivery-coordinator",
                "display_name": "Dana",
                "phone": DELIVERY_PHONE,
            },
        },
        "faq": [
            {"any": ["hours"], "answer": "We're open 9 to 5."},
            {"all": ["when", "open"], "answer": "We're open 9 to 5."},
            {"any": ["deliveries", "delivery"], "answer": "Deliveries go out on Tuesdays."},
            {"any": ["income", "qualify"], "answer": "There's no income requirement."},
        ],
        "emergency_contact": {"name": "the on-call coordinator", "phone": EMERGENCY_PHONE},
        "admin_contact": {"name": "Pantry Office", "phone": ADMIN_PHONE},
    }
    data.update(overrides)
    return data


def make_profile(**overrides: Any) -> TenantProfile:
    return TenantProfile.model_validate(profile_data(**overrides))


def make_knowledge_profile(**overrides: Any) -> TenantProfile:
    data = {
        "tenant_id": "northside-clinic",
        "name": "Northside Clinic",
        "agent": "knowledge",
        "phone_numbers": ["+15415550140"],
        "knowledge": [
            {"any": ["insurance", "medicaid"], "answer": "We accept Medicaid."},
            {"any": ["parking"], "answer": "Parking is behind the building."},
        ],
        "faq": [],
        "intents": [],
    }
    data.update(overrides)
    return make_profile(**data)


def make_session(profile: Optional[TenantProfile] = None, session_id: str = "CA-test") -> Session:
    profile = profile or make_profile()
    return Session(id=session_id, tenant_id=profile.tenant_id, profile=profile,
                   caller_number="+15035550177")


def make_telephony(**overrides: Any) -> TelephonyConfig:
    values = {
        "account_sid": "",
        "auth_token": "",
        "public_base_url": "https://switchboard.test",
        "agent_sip_uri": "sip:agent@switchboard.sip.test",
        "ring_timeout_sec": 30,
        "watchdog_grace_sec": 15.0,
        "emergency_digit": "#",
        "validate_signatures": False,
    }
    values.update(overrides)
    return TelephonyConfig(**values)


class FakeGateway:
    """Records redirects; raises TransferUnavailable when ``fail`` is set."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.redirects: list[tuple[str, str]] = []

    async def redirect(self, call_leg_id: str, url: str) -> None:
        if self.fail:
            raise TransferUnavailable("gateway down")
        self.redirects.append((call_leg_id, url))


class RecordingSender:
    """Records sent notifications; fails for any address in ``fail_for``."""

    def __init__(self, fail_for: tuple[str, ...] = ()) -> None:
        self.fail_for = set(fail_for)
        self.sent: list[tuple[str, str]] = []

    async def send(self, to: str, body: str) -> None:
        if to in self.fail_for:
            raise NotificationFailure(f"cannot reach {to}")
        self.sent.append((to, body))

    def bodies(self) -> list[str]:
        return [body for _, body in self.sent]


@pytest.fixture
def state_machine():
    return ConversationStateMachine()


@pytest.fixture
def guardrail_pipeline():
    return GuardrailPipeline()


@pytest.fixture
def profile():
    return make_profile()


@pytest.fixture
def knowledge_profile():
    return make_knowledge_profile()


@pytest.fixture
def registry(profile, knowledge_profile):
    return TenantRegistry([profile, knowledge_profile])


@pytest.fixture
def telephony():
    return make_telephony()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def store():
    return SessionStore(ttl_seconds=1800)


@pytest.fixture
def coordinator(gateway, telephony):
    return CallTransferCoordinator(gateway, telephony)


@pytest.fixture
def fanout(sender):
    return NotificationFanout(sender)


@pytest.fixture
def orchestrator(registry, store, coordinator, fanout, telephony):
    return ConversationOrchestrator(
        registry=registry,
        store=store,
        coordinator=coordinator,
        fanout=fanout,
        telephony=telephony,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def tags():
    return CallTags(
        tenant_id="acme-pantry",
        call_leg_id="CA-leg-1",
        caller_number="+15035550177",
        dialed_number="+15035550100",
    )
