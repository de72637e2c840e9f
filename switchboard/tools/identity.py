"""
Caller identity collection for tenants that need a name and email up front.

Runs before anything else on those tenants: name first, then email.
Spoken email addresses ("jane dot doe at example dot com") are
normalised before validation. After ``max_retries`` misses on the email
the collector moves on without one.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from switchboard.config import settings
from switchboard.conversation.slot_manager import extract_name
from switchboard.schemas.session_schema import Session
from switchboard.tenants.profile import TenantProfile

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}")

_SPOKEN_EMAIL = [
    (r"\s+at\s+", "@"),
    (r"\s+dot\s+", "."),
    (r"\s+underscore\s+", "_"),
    (r"\s+dash\s+", "-"),
]


def extract_email(text: str) -> Optional[str]:
    """Find an email address in typed or spoken form.

    Examples:
        >>> extract_email("it's jane dot doe at example dot com")
        'jane.doe@example.com'
        >>> extract_email("no email") is None
        True
    """
    lower = f" {text.lower().strip()} "
    for pattern, replacement in _SPOKEN_EMAIL:
        lower = re.sub(pattern, replacement, lower)
    match = EMAIL_PATTERN.search(lower)
    if match:
        return match.group(0).strip(".")
    collapsed = re.sub(r"\s+", "", lower)
    match = EMAIL_PATTERN.search(collapsed)
    return match.group(0).strip(".") if match else None


@dataclass
class IdentityStep:
    text: str
    collected: bool = False


class IdentityCollector(Protocol):
    async def collect(self, session: Session, text: str) -> IdentityStep:
        ...

    async def apply_change(self, session: Session, text: str) -> Optional[str]:
        ...


class HeuristicIdentityCollector:
    """Keyword/regex identity collection. No external calls."""

    def __init__(self, profile: TenantProfile, max_retries: Optional[int] = None) -> None:
        self.profile = profile
        self.max_retries = max_retries or settings.dialogue.max_field_retries

    def opening_prompt(self) -> str:
        return self.profile.message("identity_ask_name")

    async def collect(self, session: Session, text: str) -> IdentityStep:
        identity = session.identity
        if identity.name is None:
            name = extract_name(text)
            if name is None:
                return IdentityStep(text=self.profile.message("identity_retry_name"))
            identity.name = name
            logger.debug("Identity name captured")
            return IdentityStep(text=self.profile.message("identity_ask_email", name=name))

        email = extract_email(text)
        if email is None:
            attempts = session.field_attempts.get("identity_email", 0) + 1
            session.field_attempts["identity_email"] = attempts
            if attempts < self.max_retries:
                return IdentityStep(text=self.profile.message("identity_retry_email"))
            logger.info("Continuing without an email after %d attempts", attempts)
        identity.email = email
        identity.collected = True
        return IdentityStep(
            text=self.profile.message("identity_done", name=identity.name), collected=True,
        )

    async def apply_change(self, session: Session, text: str) -> Optional[str]:
        """Apply a spoken name or email correction in place."""
        email = extract_email(text)
        if email is not None:
            session.identity.email = email
            return self.profile.message("email_updated", email=email)

        lower = text.lower()
        for marker in ("actually", "change my name to", "name to", "it's", "is"):
            idx = lower.rfind(marker)
            if idx != -1:
                name = extract_name(text[idx + len(marker):])
                if name is not None:
                    session.identity.name = name
                    return self.profile.message("name_updated", name=name)
        return self.profile.message("change_not_understood")
