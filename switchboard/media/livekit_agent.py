"""
LiveKit voice adapter.

Bridges a LiveKit room to a CallChannel. Deepgram transcribes, Cartesia
speaks and Silero detects voice activity; no LLM is attached because every
reply comes from the switchboard's scripted dialogue. The caller's SIP
participant carries the routing tags as custom headers.
"""

import asyncio
import logging

from livekit import api, rtc
from livekit.agents import AgentSession, JobContext, StopResponse
from livekit.agents.voice import Agent
from livekit.api.twirp_client import TwirpError, TwirpErrorCode
from livekit.plugins import cartesia, deepgram, silero

from switchboard.config import settings
from switchboard.media.channel import CallChannel
from switchboard.orchestrator import ConversationOrchestrator
from switchboard.schemas.call_schema import CallTags
from switchboard.schemas.session_schema import TurnResult

logger = logging.getLogger(__name__)


def build_session() -> AgentSession:
    """AgentSession with the configured STT/TTS pipeline and no LLM."""
    return AgentSession(
        stt=deepgram.STT(
            model=settings.model.stt_model,
            language=settings.model.stt_language,
        ),
        tts=cartesia.TTS(
            model=settings.model.tts_model,
            voice=settings.model.tts_voice_id,
        ),
        vad=silero.VAD.load(),
    )


async def hangup(ctx: JobContext) -> None:
    """End the call for everyone in the room, then stop the job."""
    room_name = getattr(ctx.room, "name", None)
    try:
        if room_name:
            await ctx.api.room.delete_room(api.DeleteRoomRequest(room=room_name))
            logger.info("Room %s deleted", room_name)
    except TwirpError as e:
        if e.code == TwirpErrorCode.NOT_FOUND:
            logger.info("Room already gone; treating hangup as done")
        else:
            logger.warning("delete_room failed: %s", e)
    ctx.shutdown(reason="hangup")


class SwitchboardAgent(Agent):
    """Speaks whatever the CallChannel decides, one caller turn at a time."""

    def __init__(self, channel: CallChannel, job_ctx: JobContext) -> None:
        super().__init__(instructions="Replies are scripted by the switchboard.")
        self.channel = channel
        self.job_ctx = job_ctx
        self._tasks: set[asyncio.Task] = set()

    async def on_enter(self) -> None:
        await self._speak(await self.channel.start())

    async def on_user_turn_completed(self, turn_ctx, new_message) -> None:
        text = new_message.text_content or ""
        result = await self.channel.on_utterance(text)
        if result is not None:
            await self._speak(result)
        raise StopResponse()

    async def on_digit(self, digit: str) -> None:
        result = await self.channel.on_digit(digit)
        if result is not None:
            await self._speak(result)

    async def _speak(self, result: TurnResult) -> None:
        handle = None
        if result.text:
            handle = self.session.say(result.text, allow_interruptions=not result.hangup)
        if result.hangup:
            self.spawn(self._hangup_after(handle))

    async def _hangup_after(self, handle) -> None:
        if handle is not None:
            await handle.wait_for_playout()
        await hangup(self.job_ctx)

    def spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


async def run_call(ctx: JobContext, orchestrator: ConversationOrchestrator) -> None:
    """Serve one inbound SIP call in ``ctx.room``."""
    await ctx.connect()
    participant = await ctx.wait_for_participant()
    try:
        tags = CallTags.from_attributes(participant.attributes)
    except ValueError as exc:
        logger.error("Rejecting untagged call in room %s: %s", ctx.room.name, exc)
        await hangup(ctx)
        return

    channel = CallChannel(orchestrator, tags)
    ctx.add_shutdown_callback(channel.close)
    agent = SwitchboardAgent(channel, ctx)

    def on_dtmf(dtmf: rtc.SipDTMF) -> None:
        agent.spawn(agent.on_digit(dtmf.digit))

    ctx.room.on("sip_dtmf_received", on_dtmf)

    session = build_session()
    await session.start(room=ctx.room, agent=agent)
    logger.info("Voice session started in room %s for tenant %s", ctx.room.name, tags.tenant_id)


def sweeper_task(orchestrator: ConversationOrchestrator) -> asyncio.Task:
    """Start the periodic session sweep on the running loop."""
    return asyncio.get_running_loop().create_task(orchestrator.run_sweeper())
