"""
In-memory session store keyed by call-leg id.

Each call leg owns exactly one Session. Sessions are created lazily on
first touch, mutated through the named helpers below, and removed either
when the call ends or when the periodic sweep finds them older than the
configured TTL.
"""

import logging
import time
from typing import Iterator, Optional

from switchboard.config import settings
from switchboard.conversation.state_machine import ConversationState, TransitionTrigger
from switchboard.errors import SessionNotFound
from switchboard.schemas.session_schema import Role, Session
from switchboard.tenants.profile import TenantProfile

logger = logging.getLogger(__name__)

_FIELD_NAMES = ("name", "phone", "reason", "urgency")


class SessionStore:
    """Keyed, TTL-evicted per-call state."""

    def __init__(self, ttl_seconds: Optional[int] = None) -> None:
        self._sessions: dict[str, Session] = {}
        self.ttl_seconds = ttl_seconds or settings.sessions.ttl_seconds

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def ids(self) -> Iterator[str]:
        return iter(list(self._sessions))

    def get_or_create(
        self,
        session_id: str,
        tenant_id: Optional[str] = None,
        profile: Optional[TenantProfile] = None,
    ) -> Session:
        """Return the session for ``session_id``, creating a fresh one if needed."""
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        tenant = tenant_id or (profile.tenant_id if profile else "")
        session = Session(id=session_id, tenant_id=tenant, profile=profile)
        self._sessions[session_id] = session
        logger.debug("Session created: %s (tenant=%s)", session_id, tenant)
        return session

    def get(self, session_id: str) -> Session:
        """Return an existing session.

        Raises:
            SessionNotFound: If the store holds no such session.
        """
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    def append_message(self, session_id: str, role: Role, text: str) -> None:
        self.get(session_id).add_message(role, text)

    def set_field(self, session_id: str, name: str, value: Optional[str]) -> None:
        if name not in _FIELD_NAMES:
            raise ValueError(f"Unknown field: {name}")
        setattr(self.get(session_id).fields, name, value)

    def set_state(self, session_id: str, trigger: TransitionTrigger) -> ConversationState:
        """Move a session through the transition table."""
        return self.get(session_id).advance(trigger)

    def delete(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.debug("Session deleted: %s", session_id)
        return removed is not None

    def sweep(self, max_age: Optional[float] = None, now: Optional[float] = None) -> list[str]:
        """Evict sessions older than ``max_age`` seconds and return their ids."""
        max_age = self.ttl_seconds if max_age is None else max_age
        now = time.time() if now is None else now
        expired = [
            sid for sid, session in self._sessions.items()
            if now - session.created_at > max_age
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("Swept %d expired session(s)", len(expired))
        return expired
