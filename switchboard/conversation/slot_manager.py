"""
Voicemail field collection: Extract -> Store -> Advance.

After a failed transfer the caller is asked, in a fixed order, for their
name, a callback number and the reason for the call (plus urgency when
the tenant asks for it). A failed extraction re-prompts for the same
field. After ``max_retries`` failures the field is given up on so the
caller is never stuck in a loop; a missing phone falls back to the
caller-id number when one is known.

Usage:
    collector = VoicemailCollector(profile)
    prompt = collector.start(session)
    step = collector.accept(session, "my name is John Smith")
    # step.prompt == "Thank you, John Smith. What's the best phone number..."
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from switchboard.config import settings
from switchboard.conversation.guardrails import ReplyCues
from switchboard.schemas.session_schema import Session
from switchboard.tenants.profile import TenantProfile
from switchboard.utils import contains_any, format_us_phone

logger = logging.getLogger(__name__)

# Longest carrier phrases first so "i'm called" is not cut down to "i'm".
NAME_PREFIXES = [
    "my name is actually", "my name is", "i'm called", "call me", "this is", "it's",
    "i am", "i'm",
]
MAX_NAME_WORDS = 3
# A reply that starts with one of these after the carrier phrase is not a name.
NOT_A_NAME_START = {"at", "on", "back", "to", "from", "by", "in", "for", "about"}
MIN_REASON_LENGTH = 2

URGENT_CUES = ["urgent", "asap", "as soon as possible", "right away", "emergency", "immediately"]
NOT_URGENT_CUES = ["not urgent", "can wait", "no rush", "whenever", "later is fine"]

_cues = ReplyCues()


def extract_name(text: str) -> Optional[str]:
    """Pull a 1-3 word name out of a reply, title-cased.

    Examples:
        >>> extract_name("my name is john smith")
        'John Smith'
        >>> extract_name("it's Maria.")
        'Maria'
        >>> extract_name("I would like to leave a message") is None
        True
    """
    lower = text.lower().strip()
    for prefix in NAME_PREFIXES:
        match = re.search(rf"\b{re.escape(prefix)}\b", lower)
        if match:
            lower = lower[match.end():]
            break

    cleaned = re.sub(r"[^a-z\s'-]", " ", lower)
    words = [w.strip("'-") for w in cleaned.split()]
    words = [w for w in words if w]
    if not 1 <= len(words) <= MAX_NAME_WORDS:
        return None
    if words[0] in NOT_A_NAME_START:
        return None
    return " ".join(w.capitalize() for w in words)


def extract_phone(text: str) -> Optional[str]:
    return format_us_phone(text)


def extract_reason(text: str) -> Optional[str]:
    reason = text.strip()
    if len(reason) < MIN_REASON_LENGTH:
        return None
    return reason[0].upper() + reason[1:]


def extract_urgency(text: str) -> Optional[str]:
    lower = text.lower()
    if contains_any(lower, NOT_URGENT_CUES) or _cues.is_negative(lower):
        return "normal"
    if contains_any(lower, URGENT_CUES) or _cues.is_affirmative(lower):
        return "urgent"
    return None


@dataclass(frozen=True)
class FieldDefinition:
    """Schema for a single voicemail field."""

    name: str
    display_name: str
    extractor: Callable[[str], Optional[str]]
    ask_key: str
    retry_key: str


@dataclass
class CollectionStep:
    """Result of feeding one caller reply to the collector."""

    prompt: Optional[str]
    complete: bool = False
    captured: Optional[str] = None


class VoicemailCollector:
    """Ordered voicemail field acquisition for one tenant."""

    FIELD_DEFINITIONS: dict[str, FieldDefinition] = {
        "name": FieldDefinition("name", "name", extract_name, "ask_name", "retry_name"),
        "phone": FieldDefinition("phone", "phone number", extract_phone, "ask_phone", "retry_phone"),
        "reason": FieldDefinition("reason", "reason", extract_reason, "ask_reason", "retry_reason"),
        "urgency": FieldDefinition(
            "urgency", "urgency", extract_urgency, "ask_urgency", "retry_urgency",
        ),
    }

    def __init__(self, profile: TenantProfile, max_retries: Optional[int] = None) -> None:
        self.profile = profile
        self.order = [self.FIELD_DEFINITIONS[f] for f in profile.field_order]
        self.max_retries = max_retries or settings.dialogue.max_field_retries

    def staff_name(self, session: Session) -> str:
        if session.route_target is not None:
            return session.route_target.display_name
        return self.profile.routing["default"].display_name

    def next_field(self, session: Session) -> Optional[FieldDefinition]:
        """The first field still empty and not yet given up on."""
        for defn in self.order:
            if getattr(session.fields, defn.name) is not None:
                continue
            if session.field_attempts.get(defn.name, 0) >= self.max_retries:
                continue
            return defn
        return None

    def start(self, session: Session) -> str:
        """Open (or resume) collection and return the prompt to speak."""
        session.flags.voicemail_started = True
        defn = self.next_field(session)
        if defn is None or defn.name == "name":
            return self.profile.message("voicemail_intro", staff=self.staff_name(session))
        return self._ask(session, defn)

    def accept(self, session: Session, text: str) -> CollectionStep:
        defn = self.next_field(session)
        if defn is None:
            return CollectionStep(prompt=None, complete=True)

        value = defn.extractor(text)
        if value is None:
            attempts = session.field_attempts.get(defn.name, 0) + 1
            session.field_attempts[defn.name] = attempts
            logger.debug("Field '%s' extraction failed (attempt %d)", defn.name, attempts)
            if attempts < self.max_retries:
                return CollectionStep(prompt=self.profile.message(defn.retry_key))
            self._give_up(session, defn)
        else:
            setattr(session.fields, defn.name, value)
            logger.debug("Field '%s' captured", defn.name)

        following = self.next_field(session)
        if following is None:
            return CollectionStep(prompt=None, complete=True, captured=value)
        return CollectionStep(prompt=self._ask(session, following), captured=value)

    def _give_up(self, session: Session, defn: FieldDefinition) -> None:
        logger.info("Giving up on field '%s' after %d attempts", defn.name, self.max_retries)
        if defn.name == "phone" and session.caller_number:
            session.fields.phone = format_us_phone(session.caller_number) or session.caller_number

    def _ask(self, session: Session, defn: FieldDefinition) -> str:
        if defn.name == "phone" and session.fields.name:
            return self.profile.message("ask_phone_named", name=session.fields.name)
        return self.profile.message(defn.ask_key)
