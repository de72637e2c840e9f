"""Knowledge-base lookup collaborators for knowledge-agent tenants."""

import logging
from typing import Optional, Protocol

from switchboard.tenants.profile import TenantProfile
from switchboard.tenants.routing import FaqBank

logger = logging.getLogger(__name__)


class KnowledgeBase(Protocol):
    async def lookup(self, profile: TenantProfile, question: str) -> Optional[str]:
        """Return an answer, or None when nothing relevant is known."""


class KeywordKnowledgeBase:
    """Answers from the tenant's ``knowledge`` entries, then its FAQ entries."""

    def __init__(self) -> None:
        self._banks: dict[str, tuple[TenantProfile, FaqBank]] = {}

    def _bank(self, profile: TenantProfile) -> FaqBank:
        # One bank per tenant, rebuilt when a reload hands over a new profile object.
        cached = self._banks.get(profile.tenant_id)
        if cached is not None and cached[0] is profile:
            return cached[1]
        bank = FaqBank((*profile.knowledge, *profile.faq))
        self._banks[profile.tenant_id] = (profile, bank)
        return bank

    async def lookup(self, profile: TenantProfile, question: str) -> Optional[str]:
        answer = self._bank(profile).answer(question)
        if not answer.matched:
            logger.debug("No knowledge entry for question")
        return answer.text
