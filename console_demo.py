"""
Offline console demo: runs a full switchboard call without any API keys.

This drives the real orchestrator, dialogue engine, transfer coordinator
and notification fan-out over a typed conversation. Call-control is faked:
redirects are printed instead of sent, and transfer outcomes are injected
with slash commands. No LiveKit, no Twilio, no network calls.

Usage:
    python console_demo.py
    python console_demo.py --tenant northside-clinic
    python console_demo.py --scenario voicemail

Slash commands (interactive and in scenarios):
    /outcome <status>   report a transfer outcome (completed, no-answer, busy, failed)
    /reconnect          caller is sent back to the agent after a failed dial
    /digit <key>        press a keypad key
    /hangup             caller hangs up
"""

import argparse
import asyncio
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Optional

from switchboard.config import settings
from switchboard.media.channel import CallChannel
from switchboard.orchestrator import ConversationOrchestrator
from switchboard.schemas.call_schema import CallTags
from switchboard.schemas.session_schema import TurnResult
from switchboard.schemas.transfer_schema import TransferOutcome
from switchboard.session_store import SessionStore
from switchboard.telephony.transfer import CallTransferCoordinator
from switchboard.tenants.registry import TenantRegistry
from switchboard.tools.notifications import LoggingSender, NotificationFanout

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

CONSOLE_CALLER = "+15035550177"
CONSOLE_BASE_URL = "https://switchboard.console"


class ConsoleGateway:
    """Prints redirects instead of sending them."""

    def __init__(self) -> None:
        self.redirects: list[tuple[str, str]] = []

    async def redirect(self, call_leg_id: str, url: str) -> None:
        self.redirects.append((call_leg_id, url))
        print(f"{YELLOW}  >> redirect {call_leg_id} -> {url}{RESET}")


class ConsoleSession:
    """Plays one call in the terminal against a tenant from the tenants directory."""

    # Pre-scripted scenarios for --scenario flag: (tenant_id, steps)
    SCENARIOS: dict[str, tuple[str, list[str]]] = {
        "faq": ("riverside-pantry", [
            "What are your hours?",
            "Do I need to bring anything?",
            "no thanks",
        ]),
        "transfer": ("riverside-pantry", [
            "I'd like to volunteer on weekends",
            "/outcome completed",
            "/hangup",
        ]),
        "voicemail": ("riverside-pantry", [
            "I need to talk to someone about my delivery, it never showed up",
            "/outcome no-answer",
            "/reconnect",
            "My name is Maria Lopez",
            "503 555 0142",
            "My delivery didn't arrive this morning",
        ]),
        "emergency": ("riverside-pantry", [
            "Do you offer fresh produce?",
            "/digit #",
            "/outcome completed",
            "/hangup",
        ]),
        "knowledge": ("northside-clinic", [
            "This is Sam Rivera",
            "sam dot rivera at example dot com",
            "Do you take Medicaid?",
            "I'd like to schedule an appointment",
            "next Tuesday morning",
            "yes",
            "no, that's all",
        ]),
    }

    def __init__(self, tenant_id: Optional[str] = None) -> None:
        self.registry = TenantRegistry.from_directory(Path(settings.tenants_dir))
        telephony = replace(
            settings.telephony,
            public_base_url=settings.telephony.public_base_url or CONSOLE_BASE_URL,
        )
        self.gateway = ConsoleGateway()
        self.sender = LoggingSender()
        self.fanout = NotificationFanout(self.sender)
        self.coordinator = CallTransferCoordinator(self.gateway, telephony)
        self.orchestrator = ConversationOrchestrator(
            registry=self.registry,
            store=SessionStore(),
            coordinator=self.coordinator,
            fanout=self.fanout,
            telephony=telephony,
        )
        self.profile = (
            self.registry.get(tenant_id) if tenant_id else self.registry.all()[0]
        )
        self.tags = CallTags(
            tenant_id=self.profile.tenant_id,
            call_leg_id=f"CA{uuid.uuid4().hex}",
            caller_number=CONSOLE_CALLER,
            dialed_number=self.profile.published_number,
        )
        self.channel = CallChannel(self.orchestrator, self.tags)
        self.trace: list[str] = []

    def agent_say(self, result: Optional[TurnResult]) -> None:
        if result is None:
            return
        if result.text:
            print(f"{GREEN}{BOLD}[{self.profile.name}]{RESET} {GREEN}{result.text}{RESET}")
        self.system_log(f"State: {result.state.value} (tier={result.tier})")
        if not self.trace or self.trace[-1] != result.state.value:
            self.trace.append(result.state.value)

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  SWITCHBOARD - {title}{RESET}")
        print(f"{BOLD}  Tenant: {self.profile.name} ({self.profile.tenant_id}){RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        self.banner(f"Scenario: {scenario}")
        self.agent_say(await self.channel.start())

        for step in self.SCENARIOS[scenario][1]:
            if self.channel.closed:
                break
            print(f"\n{BLUE}[Caller] {RESET}{step}")
            await self.process(step)

        await self.finish()

    async def run(self) -> None:
        self.banner("Console Demo")
        print(f"{DIM}  Type 'quit' to exit, or a /command (see --help){RESET}")
        self.agent_say(await self.channel.start())

        while not self.channel.closed:
            user_input = (await asyncio.to_thread(input, f"\n{BLUE}[Caller] {RESET}")).strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                await self.channel.close()
                break
            await self.process(user_input)

        await self.finish()

    async def process(self, text: str) -> None:
        if not text.startswith("/"):
            result = await self.channel.on_utterance(text)
            self.agent_say(result)
            if result is not None and result.hangup:
                await self.channel.close()
            return

        command, _, argument = text[1:].partition(" ")
        if command == "outcome":
            await self._outcome(argument.strip())
        elif command == "reconnect":
            await self._reconnect()
        elif command == "digit":
            self.agent_say(await self.channel.on_digit(argument.strip()))
        elif command == "hangup":
            await self.channel.close()
            self.system_log("Caller hung up")
        else:
            print(f"{RED}Unknown command: /{command}{RESET}")

    async def _outcome(self, status: str) -> None:
        outcome = TransferOutcome.from_dial_status(status)
        attempt = await self.orchestrator.record_transfer_outcome(
            self.tags.call_leg_id, outcome, source="console",
        )
        if attempt is None:
            self.system_log("No transfer pending; outcome ignored")
            return
        self.system_log(f"Transfer to {attempt.staff_name}: {attempt.outcome.value}")
        if outcome == TransferOutcome.COMPLETED:
            self.system_log("Caller is now talking to staff; the agent leg is closing")
            await self.channel.close()

    async def _reconnect(self) -> None:
        """Simulate the provider sending the caller back with the post-transfer tag."""
        session = self.orchestrator.store.get(self.tags.call_leg_id)
        intended = session.route_target.staff_id if session.route_target else None
        self.tags = replace(self.tags, post_transfer_return=True, intended_staff=intended)
        self.channel = CallChannel(self.orchestrator, self.tags)
        self.system_log("Caller reconnected to the agent")
        self.agent_say(await self.channel.start())

    async def finish(self) -> None:
        if not self.channel.closed:
            await self.channel.close()
        await self.coordinator.shutdown()
        await self.fanout.drain()

        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  Call complete.{RESET}")
        print(f"{DIM}  State trace: {' -> '.join(self.trace)}{RESET}")
        print(f"{DIM}  Redirects: {len(self.gateway.redirects)}{RESET}")
        for to, body in self.sender.sent:
            print(f"{DIM}  Notification to {to}:{RESET}")
            for line in body.splitlines():
                print(f"{DIM}    {line}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")


def run_console(scenario: Optional[str] = None, tenant_id: Optional[str] = None) -> None:
    if scenario is not None:
        if scenario not in ConsoleSession.SCENARIOS:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return
        tenant_id = ConsoleSession.SCENARIOS[scenario][0]
        asyncio.run(ConsoleSession(tenant_id).run_scenario(scenario))
    else:
        asyncio.run(ConsoleSession(tenant_id).run())


def main() -> None:
    parser = argparse.ArgumentParser(description="Switchboard Console Demo")
    parser.add_argument(
        "--scenario",
        choices=list(ConsoleSession.SCENARIOS),
        help="Run a pre-scripted scenario instead of interactive mode",
    )
    parser.add_argument("--tenant", help="Tenant id to call (interactive mode)")
    args = parser.parse_args()
    run_console(args.scenario, args.tenant)


if __name__ == "__main__":
    main()
