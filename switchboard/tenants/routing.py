"""Per-tenant routing table and FAQ bank."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from switchboard.schemas.transfer_schema import RouteTarget
from switchboard.tenants.profile import DEFAULT_ROUTE, FaqEntry, TenantProfile

logger = logging.getLogger(__name__)


class RoutingTable:
    """Maps an intent to a staff destination. Never returns no destination."""

    def __init__(self, profile: TenantProfile) -> None:
        self._routes = {intent: entry.to_target() for intent, entry in profile.routing.items()}
        self._default = self._routes[DEFAULT_ROUTE]

    @property
    def default(self) -> RouteTarget:
        return self._default

    def route(self, intent: Optional[str]) -> RouteTarget:
        target = self._routes.get(intent or "")
        if target is None:
            logger.debug("No route for intent %r, using default", intent)
            return self._default
        return target


@dataclass(frozen=True)
class FaqAnswer:
    matched: bool
    text: Optional[str] = None


class FaqBank:
    """Ordered keyword lookup of canned answers. First matching entry wins."""

    def __init__(self, entries: Iterable[FaqEntry]) -> None:
        self._entries = tuple(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def answer(self, utterance: str) -> FaqAnswer:
        lowered = utterance.lower()
        for entry in self._entries:
            if entry.matches(lowered):
                return FaqAnswer(matched=True, text=entry.answer)
        return FaqAnswer(matched=False)
