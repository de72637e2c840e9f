"""
Caller-input guardrails and reply cues.

Two layers run before any dialogue logic:
1. EmergencyGuardrail  spoken emergencies that must preempt everything
2. CallEndGuardrail    explicit goodbyes that end the call

ReplyCues holds the short-reply detectors the dialogue and follow-up
handling share: yes/no, "let me talk to a person", change requests,
appointment requests and "I have another question".
"""

import logging
from dataclasses import dataclass
from typing import Optional

from switchboard.utils import contains_any, contains_word

logger = logging.getLogger(__name__)


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None
    severity: str = "warning"  # "warning" | "end" | "escalate"


class EmergencyGuardrail:
    """Detects spoken emergencies that need the tenant's emergency contact."""

    EMERGENCY_KEYWORDS = [
        "emergency", "someone is hurt", "somebody is hurt", "ambulance",
        "not breathing", "overdose", "bleeding", "fire", "in danger",
        "being attacked", "suicide", "kill myself",
    ]

    def check(self, text: str) -> GuardrailResult:
        lower = text.lower()
        for keyword in self.EMERGENCY_KEYWORDS:
            if keyword in lower:
                logger.info("Emergency keyword detected: '%s'", keyword)
                return GuardrailResult(
                    passed=False,
                    violation_type="emergency",
                    message=f"Emergency detected: '{keyword}'.",
                    severity="escalate",
                )
        return GuardrailResult(passed=True)


class CallEndGuardrail:
    """Detects an explicit goodbye."""

    GOODBYE_PHRASES = [
        "goodbye", "good bye", "bye", "bye bye", "hang up",
        "talk to you later", "have a good day", "have a nice day",
    ]

    def check(self, text: str) -> GuardrailResult:
        if contains_word(text, self.GOODBYE_PHRASES):
            return GuardrailResult(
                passed=False,
                violation_type="goodbye",
                message="Caller said goodbye.",
                severity="end",
            )
        return GuardrailResult(passed=True)


class ReplyCues:
    """Short-reply detectors. Word-boundary matching so "no" never fires on "know"."""

    AFFIRMATIVE = ["yes", "yeah", "yep", "sure", "okay", "ok", "correct", "right", "please"]
    NEGATIVE = [
        "no", "nope", "nah", "not", "nothing else", "that's all", "that is all",
        "i'm good", "im good", "all set",
    ]
    HANDOFF = [
        "speak to someone", "talk to someone", "speak with someone", "talk with someone",
        "speak to a person", "talk to a person", "real person", "a human", "representative",
        "operator", "speak to staff", "talk to staff", "transfer me", "connect me",
    ]
    NAME_CHANGE = [
        "change my name", "update my name", "my name is actually", "wrong name",
        "spelled my name wrong", "correct my name",
    ]
    EMAIL_CHANGE = [
        "change my email", "update my email", "my email is actually", "wrong email",
        "different email", "correct my email",
    ]
    APPOINTMENT = ["appointment", "schedule a", "book a", "set up a time"]
    MORE_QUESTIONS = [
        "another question", "more question", "one more", "something else", "also",
        "i have a question", "a question",
    ]

    def is_affirmative(self, text: str) -> bool:
        return contains_word(text, self.AFFIRMATIVE)

    def is_negative(self, text: str) -> bool:
        return contains_word(text, self.NEGATIVE)

    def wants_human(self, text: str) -> bool:
        return contains_any(text, self.HANDOFF)

    def wants_name_change(self, text: str) -> bool:
        return contains_any(text, self.NAME_CHANGE)

    def wants_email_change(self, text: str) -> bool:
        return contains_any(text, self.EMAIL_CHANGE)

    def wants_appointment(self, text: str) -> bool:
        return contains_any(text, self.APPOINTMENT)

    def wants_more(self, text: str) -> bool:
        return contains_any(text, self.MORE_QUESTIONS)


class GuardrailPipeline:
    """Composes the guardrails that run before any dialogue logic."""

    def __init__(self) -> None:
        self.emergency = EmergencyGuardrail()
        self.call_end = CallEndGuardrail()
        self.cues = ReplyCues()

    def check_user_input(self, text: str, emergency_enabled: bool = True) -> list[GuardrailResult]:
        """Return failed checks, most urgent first."""
        results = []
        if emergency_enabled:
            results.append(self.emergency.check(text))
        results.append(self.call_end.check(text))
        return [r for r in results if not r.passed]
