"""Tests for tenant profiles, routing tables and the tenant registry."""

from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from switchboard.errors import TenantConfigError, TenantNotFound
from switchboard.tenants.profile import BusinessHours, Contact, TenantProfile
from switchboard.tenants.registry import TenantRegistry, load_directory, load_profile
from switchboard.tenants.routing import FaqBank, RoutingTable
from switchboard.tools.knowledge import KeywordKnowledgeBase

from tests.conftest import (
    EMERGENCY_PHONE,
    FRONT_DESK_PHONE,
    make_knowledge_profile,
    make_profile,
    profile_data,
)

TENANTS_DIR = Path(__file__).resolve().parent.parent / "tenants"

WEEKDAY_HOURS = {
    "timezone": "America/Los_Angeles",
    "windows": [{"days": ["mon", "tue", "wed", "thu", "fri"], "start": "09:00", "end": "17:00"}],
}

# 2025-03-18 is a Tuesday; Los Angeles is UTC-7 in March after DST starts.
TUESDAY_10AM = datetime(2025, 3, 18, 17, 0, tzinfo=timezone.utc)
TUESDAY_8PM = datetime(2025, 3, 19, 3, 0, tzinfo=timezone.utc)
SATURDAY_NOON = datetime(2025, 3, 22, 19, 0, tzinfo=timezone.utc)


def _write(directory: Path, name: str, data: dict) -> Path:
    path = directory / name
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestProfileValidation:
    def test_routing_requires_default(self):
        data = profile_data()
        data["routing"] = {"deliveries": data["routing"]["deliveries"]}
        with pytest.raises(ValidationError, match="default"):
            TenantProfile.model_validate(data)

    def test_field_order_must_keep_core_order(self):
        with pytest.raises(ValidationError, match="field_order"):
            make_profile(field_order=["phone", "name", "reason"])

    def test_urgency_is_optional_in_field_order(self):
        profile = make_profile(field_order=["name", "phone", "reason", "urgency"])
        assert profile.field_order[-1] == "urgency"

    def test_keyword_rule_needs_keywords(self):
        with pytest.raises(ValidationError):
            make_profile(faq=[{"answer": "Nothing to match on."}])

    def test_keywords_are_lowercased(self):
        profile = make_profile(faq=[{"any": ["Hours"], "answer": "9 to 5"}])
        assert profile.faq[0].any_of == ("hours",)

    def test_unknown_day_rejected(self):
        with pytest.raises(ValidationError, match="day"):
            BusinessHours.model_validate(
                {"windows": [{"days": ["funday"], "start": "09:00", "end": "17:00"}]}
            )

    def test_profile_is_immutable(self, profile):
        with pytest.raises(ValidationError):
            profile.name = "Other"


class TestBusinessHours:
    def setup_method(self):
        self.hours = BusinessHours.model_validate(WEEKDAY_HOURS)

    def test_open_on_weekday_morning(self):
        assert self.hours.is_open(TUESDAY_10AM)

    def test_closed_in_evening(self):
        assert not self.hours.is_open(TUESDAY_8PM)

    def test_closed_on_weekend(self):
        assert not self.hours.is_open(SATURDAY_NOON)

    def test_no_windows_means_always_open(self):
        assert BusinessHours().is_open(TUESDAY_8PM)

    def test_greeting_follows_hours(self):
        profile = make_profile(hours=WEEKDAY_HOURS)
        assert "How can I help you today" in profile.greeting(TUESDAY_10AM)
        assert "closed" in profile.greeting(TUESDAY_8PM)


class TestProfileLookups:
    def test_message_override(self):
        profile = make_profile(messages={"closing": "Bye from {tenant}."})
        assert profile.message("closing") == "Bye from Acme Pantry."

    def test_default_message(self, profile):
        assert profile.message("closing") == "Thank you for calling Acme Pantry. Have a great day!"

    def test_staff_by_id(self, profile):
        target = profile.staff_by_id("delivery-coordinator")
        assert target.display_name == "Dana"
        assert profile.staff_by_id("nobody") is None

    def test_emergency_target(self, profile):
        target = profile.emergency_target()
        assert target.staff_id == "emergency"
        assert target.contact_address == EMERGENCY_PHONE

    def test_no_emergency_contact(self):
        assert make_profile(emergency_contact=None).emergency_target() is None

    def test_contact_phone_from_env(self, monkeypatch):
        monkeypatch.setenv("ACME_ON_CALL", "+15035550155")
        contact = Contact(name="on call", phone_env="ACME_ON_CALL")
        assert contact.resolve_phone() == "+15035550155"

    def test_contact_missing_env(self, monkeypatch):
        monkeypatch.delenv("ACME_ON_CALL", raising=False)
        assert Contact(name="on call", phone_env="ACME_ON_CALL").resolve_phone() is None


class TestRoutingTable:
    def test_known_intent(self, profile):
        assert RoutingTable(profile).route("deliveries").staff_id == "delivery-coordinator"

    @pytest.mark.parametrize("intent", [None, "", "unknown", "volunteering", "no-such-intent"])
    def test_always_returns_a_destination(self, profile, intent):
        target = RoutingTable(profile).route(intent)
        assert target is not None
        assert target.staff_id == "front-desk"
        assert target.contact_address == FRONT_DESK_PHONE


class TestFaqBank:
    def test_any_keyword(self, profile):
        answer = FaqBank(profile.faq).answer("What are your hours?")
        assert answer.matched
        assert answer.text == "We're open 9 to 5."

    def test_all_keywords_required(self, profile):
        bank = FaqBank(profile.faq)
        assert bank.answer("when are you open").matched
        assert not bank.answer("are you open").matched

    def test_first_match_wins(self):
        profile = make_profile(faq=[
            {"any": ["delivery"], "answer": "first"},
            {"any": ["delivery"], "answer": "second"},
        ])
        assert FaqBank(profile.faq).answer("delivery?").text == "first"

    def test_no_match(self, profile):
        answer = FaqBank(profile.faq).answer("Do you sell furniture?")
        assert not answer.matched
        assert answer.text is None


class TestRegistry:
    def test_get_and_contains(self, registry):
        assert "acme-pantry" in registry
        assert registry.get("acme-pantry").name == "Acme Pantry"
        assert len(registry) == 2

    def test_unknown_tenant(self, registry):
        with pytest.raises(TenantNotFound):
            registry.get("nope")

    @pytest.mark.parametrize("dialed", ["+15035550100", "5035550100", "(503) 555-0100", "15035550100"])
    def test_for_number_normalizes(self, registry, dialed):
        assert registry.for_number(dialed).tenant_id == "acme-pantry"

    def test_for_unknown_number(self, registry):
        assert registry.for_number("+19995550000") is None
        assert registry.for_number(None) is None

    def test_duplicate_tenant_id(self, profile):
        with pytest.raises(TenantConfigError, match="Duplicate"):
            TenantRegistry([profile, profile])

    def test_duplicate_number(self, profile):
        other = make_profile(tenant_id="other", phone_numbers=["503-555-0100"])
        with pytest.raises(TenantConfigError, match="claimed"):
            TenantRegistry([profile, other])


class TestLoading:
    def test_load_profile(self, tmp_path):
        path = _write(tmp_path, "acme.yaml", profile_data())
        assert load_profile(path).tenant_id == "acme-pantry"

    def test_invalid_profile_raises_config_error(self, tmp_path):
        path = _write(tmp_path, "bad.yaml", {"tenant_id": "bad", "name": "Bad"})
        with pytest.raises(TenantConfigError, match="Invalid tenant file"):
            load_profile(path)

    def test_unparseable_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("tenant_id: [unclosed", encoding="utf-8")
        with pytest.raises(TenantConfigError, match="Cannot read"):
            load_profile(path)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(TenantConfigError, match="not found"):
            load_directory(tmp_path / "missing")

    def test_reload_swaps_profiles(self, tmp_path):
        _write(tmp_path, "acme.yaml", profile_data())
        registry = TenantRegistry.from_directory(tmp_path)
        old = registry.get("acme-pantry")

        _write(tmp_path, "acme.yaml", profile_data(name="Acme Food Bank"))
        registry.reload(tmp_path)

        assert registry.get("acme-pantry").name == "Acme Food Bank"
        assert old.name == "Acme Pantry"

    def test_failed_reload_keeps_previous_profiles(self, tmp_path):
        _write(tmp_path, "acme.yaml", profile_data())
        registry = TenantRegistry.from_directory(tmp_path)

        _write(tmp_path, "other.yaml", profile_data(tenant_id="other", routing={}))
        with pytest.raises(TenantConfigError):
            registry.reload(tmp_path)

        assert registry.all() == [registry.get("acme-pantry")]
        assert registry.for_number("+15035550100").tenant_id == "acme-pantry"

    def test_reload_with_conflicting_numbers_keeps_previous(self, tmp_path):
        _write(tmp_path, "acme.yaml", profile_data())
        registry = TenantRegistry.from_directory(tmp_path)

        _write(tmp_path, "other.yaml", profile_data(tenant_id="other"))
        with pytest.raises(TenantConfigError, match="claimed"):
            registry.reload(tmp_path)
        assert "other" not in registry

    def test_shipped_tenants_load(self):
        registry = TenantRegistry.from_directory(TENANTS_DIR)
        assert "riverside-pantry" in registry
        assert registry.get("northside-clinic").agent == "knowledge"
        assert registry.for_number("+15035550100").tenant_id == "riverside-pantry"


class TestKeywordKnowledgeBase:
    @pytest.mark.asyncio
    async def test_answers_from_knowledge_then_faq(self):
        profile = make_knowledge_profile(faq=[{"any": ["hours"], "answer": "We're open 8 to 4."}])
        base = KeywordKnowledgeBase()
        assert await base.lookup(profile, "Do you take medicaid?") == "We accept Medicaid."
        assert await base.lookup(profile, "What are your hours?") == "We're open 8 to 4."
        assert await base.lookup(profile, "Do you have a pharmacy?") is None

    @pytest.mark.asyncio
    async def test_reloaded_profile_replaces_cached_bank(self):
        base = KeywordKnowledgeBase()
        await base.lookup(make_knowledge_profile(), "parking?")

        reloaded = make_knowledge_profile(
            knowledge=[{"any": ["parking"], "answer": "Park on Elm Street."}],
        )
        for _ in range(3):
            answer = await base.lookup(reloaded, "Where is parking?")

        assert answer == "Park on Elm Street."
        assert len(base._banks) == 1
