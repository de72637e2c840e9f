"""Per-call session state and per-turn results."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from switchboard.conversation.state_machine import (
    ConversationState,
    ConversationStateMachine,
    TransitionTrigger,
)
from switchboard.schemas.transfer_schema import RouteTarget, TransferAttempt
from switchboard.tenants.profile import TenantProfile


class Role(str, Enum):
    CALLER = "caller"
    AGENT = "agent"
    SYSTEM = "system"


@dataclass
class Message:
    role: Role
    text: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CollectedFields:
    """Voicemail fields, each empty until the caller supplies it."""
    name: Optional[str] = None
    phone: Optional[str] = None
    reason: Optional[str] = None
    urgency: Optional[str] = None

    def snapshot(self) -> dict[str, Optional[str]]:
        return {
            "name": self.name,
            "phone": self.phone,
            "reason": self.reason,
            "urgency": self.urgency,
        }


@dataclass
class CallerIdentity:
    name: Optional[str] = None
    email: Optional[str] = None
    collected: bool = False


@dataclass
class SessionFlags:
    email_sent: bool = False
    awaiting_follow_up: bool = False
    voicemail_started: bool = False
    voicemail_sent: bool = False
    post_transfer_return: bool = False
    channel_open: bool = False


@dataclass
class Session:
    """
    Everything the switchboard knows about one call leg.

    Owned by the SessionStore. Turns on the same session are serialized
    through ``lock``; nothing here is shared between sessions.
    """
    id: str
    tenant_id: str
    profile: Optional[TenantProfile] = None
    created_at: float = field(default_factory=time.time)
    history: list[Message] = field(default_factory=list)
    machine: ConversationStateMachine = field(default_factory=ConversationStateMachine)
    fields: CollectedFields = field(default_factory=CollectedFields)
    field_attempts: dict[str, int] = field(default_factory=dict)
    identity: CallerIdentity = field(default_factory=CallerIdentity)
    flags: SessionFlags = field(default_factory=SessionFlags)
    last_intent: Optional[str] = None
    route_target: Optional[RouteTarget] = None
    transfer: Optional[TransferAttempt] = None
    caller_number: Optional[str] = None
    dialed_number: Optional[str] = None
    appointment: dict[str, Any] = field(default_factory=dict)
    follow_up_offer: Optional[str] = None  # "more_questions" | "transfer"
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def state(self) -> ConversationState:
        return self.machine.current_state

    def advance(self, trigger: TransitionTrigger) -> ConversationState:
        return self.machine.transition(trigger)

    def add_message(self, role: Role, text: str) -> None:
        self.history.append(Message(role=role, text=text))

    def transcript_lines(self) -> list[str]:
        return [f"{m.role.value}: {m.text}" for m in self.history if m.text]


class TurnResult(BaseModel):
    """What the media channel should do after one caller event."""

    text: str
    hangup: bool = False
    transfer: bool = False
    state: ConversationState
    tier: str
