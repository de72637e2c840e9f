"""
Tenant profile schema.

A profile is everything one business needs to run its calls: who to
route each intent to, which questions can be answered without a human,
when the office is open, and what the agent should say. Profiles are
loaded from YAML and are immutable once built; a reload replaces the
whole profile rather than editing one in place.
"""

import os
from datetime import datetime, time
from typing import Literal, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from switchboard.prompts.responses import render
from switchboard.schemas.transfer_schema import RouteTarget

DEFAULT_ROUTE = "default"

_DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

VoicemailField = Literal["name", "phone", "reason", "urgency"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class KeywordRule(_Frozen):
    """Substring rule: any one of ``any`` and every one of ``all`` must appear."""

    any_of: tuple[str, ...] = Field(default=(), alias="any")
    all_of: tuple[str, ...] = Field(default=(), alias="all")

    @field_validator("any_of", "all_of")
    @classmethod
    def _lowercase(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(v.lower() for v in value)

    @model_validator(mode="after")
    def _not_empty(self) -> "KeywordRule":
        if not self.any_of and not self.all_of:
            raise ValueError("keyword rule needs at least one 'any' or 'all' keyword")
        return self

    def matches(self, lowered: str) -> bool:
        if self.any_of and not any(k in lowered for k in self.any_of):
            return False
        return all(k in lowered for k in self.all_of)


class IntentRule(KeywordRule):
    intent: str
    question_keywords: tuple[str, ...] = ()


class FaqEntry(KeywordRule):
    answer: str


class Contact(_Frozen):
    name: str
    phone: Optional[str] = None
    phone_env: Optional[str] = None
    email: Optional[str] = None

    def resolve_phone(self) -> Optional[str]:
        """Literal phone first, then the named environment variable."""
        if self.phone:
            return self.phone
        if self.phone_env:
            return os.getenv(self.phone_env) or None
        return None


class RouteEntry(_Frozen):
    staff_id: str
    display_name: str
    phone: Optional[str] = None
    phone_env: Optional[str] = None
    advertise: bool = True

    def to_target(self) -> RouteTarget:
        contact = Contact(name=self.display_name, phone=self.phone, phone_env=self.phone_env)
        return RouteTarget(
            staff_id=self.staff_id,
            display_name=self.display_name,
            contact_address=contact.resolve_phone(),
            advertise=self.advertise,
        )


class OpenWindow(_Frozen):
    days: tuple[str, ...]
    start: time
    end: time

    @field_validator("days")
    @classmethod
    def _known_days(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        days = tuple(d.lower()[:3] for d in value)
        unknown = [d for d in days if d not in _DAY_NAMES]
        if unknown:
            raise ValueError(f"unknown day(s): {unknown}")
        return days


class BusinessHours(_Frozen):
    """Open windows in the tenant's local time. No windows means always open."""

    timezone: str = "America/Los_Angeles"
    windows: tuple[OpenWindow, ...] = ()

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, value: str) -> str:
        ZoneInfo(value)
        return value

    def is_open(self, at: datetime) -> bool:
        if not self.windows:
            return True
        if at.tzinfo is None:
            at = at.replace(tzinfo=ZoneInfo("UTC"))
        local = at.astimezone(ZoneInfo(self.timezone))
        day = _DAY_NAMES[local.weekday()]
        now = local.time()
        return any(day in w.days and w.start <= now < w.end for w in self.windows)


class Features(_Frozen):
    identity_collection: bool = False
    appointments: bool = False
    emergency_transfer: bool = True
    call_summary: bool = True


class TenantProfile(_Frozen):
    tenant_id: str
    name: str
    agent: str = "receptionist"
    phone_numbers: tuple[str, ...] = ()
    published_number: Optional[str] = None
    intents: tuple[IntentRule, ...] = ()
    routing: dict[str, RouteEntry]
    faq: tuple[FaqEntry, ...] = ()
    knowledge: tuple[FaqEntry, ...] = ()
    hours: BusinessHours = Field(default_factory=BusinessHours)
    messages: dict[str, str] = Field(default_factory=dict)
    features: Features = Field(default_factory=Features)
    emergency_contact: Optional[Contact] = None
    admin_contact: Optional[Contact] = None
    field_order: tuple[VoicemailField, ...] = ("name", "phone", "reason")

    @field_validator("routing")
    @classmethod
    def _has_default_route(cls, value: dict[str, RouteEntry]) -> dict[str, RouteEntry]:
        if DEFAULT_ROUTE not in value:
            raise ValueError(f"routing must define a '{DEFAULT_ROUTE}' entry")
        return value

    @field_validator("field_order")
    @classmethod
    def _ordered_fields(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        core = [f for f in value if f != "urgency"]
        if core != ["name", "phone", "reason"]:
            raise ValueError("field_order must contain name, phone, reason in that order")
        if len(set(value)) != len(value):
            raise ValueError("field_order must not repeat a field")
        return value

    def message(self, key: str, **values: str) -> str:
        return render(key, self.messages, tenant=self.name, **values)

    def greeting(self, at: datetime) -> str:
        key = "greeting_in_hours" if self.hours.is_open(at) else "greeting_after_hours"
        return self.message(key)

    def staff_by_id(self, staff_id: str) -> Optional[RouteTarget]:
        for entry in self.routing.values():
            if entry.staff_id == staff_id:
                return entry.to_target()
        return None

    def emergency_target(self) -> Optional[RouteTarget]:
        if self.emergency_contact is None:
            return None
        return RouteTarget(
            staff_id="emergency",
            display_name=self.emergency_contact.name,
            contact_address=self.emergency_contact.resolve_phone(),
        )
