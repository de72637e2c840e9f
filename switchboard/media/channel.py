"""
Transport-agnostic live media channel.

A CallChannel is what a speech pipeline talks to: it is tagged once at
start, fed final transcripts and keypad digits, and hands back text to
speak plus a hangup decision. Barge-in and audio playback belong to the
transport; nothing said here is rolled back when the caller interrupts.
"""

from typing import Optional

from switchboard.logging_context import get_call_logger
from switchboard.orchestrator import ConversationOrchestrator
from switchboard.schemas.call_schema import CallTags
from switchboard.schemas.session_schema import TurnResult

logger = get_call_logger(__name__)


class CallChannel:
    """One live media leg bound to one session."""

    def __init__(self, orchestrator: ConversationOrchestrator, tags: CallTags) -> None:
        self.orchestrator = orchestrator
        self.tags = tags
        self.hangup_requested = False
        self.closed = False

    @property
    def session_id(self) -> str:
        return self.tags.call_leg_id

    def _track(self, result: TurnResult) -> TurnResult:
        if result.hangup:
            self.hangup_requested = True
        return result

    async def start(self) -> TurnResult:
        logger.info(
            "Channel opened for tenant %s (post_transfer=%s)",
            self.tags.tenant_id, self.tags.post_transfer_return,
        )
        return self._track(await self.orchestrator.start_call(self.tags))

    async def on_utterance(self, text: str) -> Optional[TurnResult]:
        """Feed one final transcript. Blank transcripts are ignored."""
        if self.closed or not text or not text.strip():
            return None
        result = await self.orchestrator.handle_utterance(
            self.session_id, text.strip(), tenant_id=self.tags.tenant_id,
        )
        return self._track(result)

    async def on_digit(self, digit: str) -> Optional[TurnResult]:
        if self.closed:
            return None
        result = await self.orchestrator.handle_signal(
            self.session_id, digit, tenant_id=self.tags.tenant_id,
        )
        return self._track(result)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.orchestrator.end_call(self.session_id)
        logger.info("Channel closed")
