"""
Switchboard entry point.

Three processes share the same tenant directory:

- the LiveKit voice worker, which answers SIP calls bridged in by the
  call-control webhooks
- the webhook server, which serves the TwiML documents that connect,
  transfer and return callers
- an offline console that plays the dialogue without any network

Usage:
    Voice worker:    python main.py dev
    Webhook server:  python main.py serve
    Console mode:    python main.py console [--scenario NAME]
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from switchboard.config import settings

logger = logging.getLogger(__name__)

_orchestrator = None
_sweeper = None


def _build_orchestrator():
    """Wire the per-process orchestrator from settings."""
    from switchboard.orchestrator import ConversationOrchestrator
    from switchboard.session_store import SessionStore
    from switchboard.telephony.gateway import TwilioCallGateway
    from switchboard.telephony.transfer import CallTransferCoordinator
    from switchboard.tenants.registry import TenantRegistry
    from switchboard.tools.notifications import NotificationFanout, create_sender

    registry = TenantRegistry.from_directory(Path(settings.tenants_dir))
    logger.info("Loaded %d tenant(s) from %s", len(registry), settings.tenants_dir)
    return ConversationOrchestrator(
        registry=registry,
        store=SessionStore(),
        coordinator=CallTransferCoordinator(TwilioCallGateway.from_settings()),
        fanout=NotificationFanout(create_sender()),
    )


def _get_orchestrator():
    global _orchestrator, _sweeper
    if _orchestrator is None:
        from switchboard.media.livekit_agent import sweeper_task

        _orchestrator = _build_orchestrator()
        _sweeper = sweeper_task(_orchestrator)
    return _orchestrator


async def entrypoint(ctx) -> None:
    """LiveKit agent entrypoint. Module-level so the worker can pickle it on Windows."""
    from switchboard.media.livekit_agent import run_call

    await run_call(ctx, _get_orchestrator())


def _run_voice_mode() -> None:
    """Start the LiveKit voice worker (requires API keys)."""
    from livekit.agents import WorkerOptions, cli

    worker = WorkerOptions(
        entrypoint_fnc=entrypoint,
        agent_name=settings.agent_name,
    )
    cli.run_app(worker)


def _run_webhook_mode() -> None:
    """Serve the call-control webhooks."""
    import uvicorn

    from switchboard.telephony.server import create_app
    from switchboard.tenants.registry import TenantRegistry

    registry = TenantRegistry.from_directory(Path(settings.tenants_dir))
    app = create_app(registry)
    uvicorn.run(app, host=settings.http_host, port=settings.http_port)


def _run_console_mode(scenario: Optional[str] = None) -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import run_console

    run_console(scenario)


if __name__ == "__main__":
    mode = sys.argv[1] if len(sys.argv) > 1 else ""
    if mode == "console":
        scenario = None
        if "--scenario" in sys.argv:
            index = sys.argv.index("--scenario")
            scenario = sys.argv[index + 1] if index + 1 < len(sys.argv) else None
        _run_console_mode(scenario)
    elif mode == "serve":
        _run_webhook_mode()
    else:
        _run_voice_mode()
