"""
Keyword intent classifier.

Rules are evaluated in declaration order and the first match wins; a
later rule never overrides an earlier one because it matched "more".
When nothing matches, the utterance is checked for interrogative
markers so the dialogue layer can still try the FAQ bank before routing.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from switchboard.tenants.profile import IntentRule
from switchboard.utils import contains_any

logger = logging.getLogger(__name__)

UNKNOWN_INTENT = "unknown"

MATCH_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.5

QUESTION_MARKERS = [
    "what", "when", "where", "how", "why", "who", "which",
    "do you", "can i", "are you", "is there", "hours", "time",
    "need", "require",
]


@dataclass(frozen=True)
class Classification:
    intent: str
    is_question: bool
    confidence: float


class IntentClassifier:
    """Ordered keyword-set classifier for one tenant's intents.

    ``confidence`` is informational only; nothing downstream branches on it.
    """

    def __init__(
        self,
        rules: Iterable[IntentRule] = (),
        question_markers: Iterable[str] = QUESTION_MARKERS,
    ) -> None:
        self.rules = tuple(rules)
        self.question_markers = tuple(question_markers)

    def is_question(self, text: str) -> bool:
        return "?" in text or contains_any(text, self.question_markers)

    def classify(self, utterance: str) -> Classification:
        text = (utterance or "").strip()
        if not text:
            return Classification(UNKNOWN_INTENT, False, 0.0)

        lowered = text.lower()
        for rule in self.rules:
            if rule.matches(lowered):
                question = (
                    contains_any(lowered, rule.question_keywords)
                    if rule.question_keywords
                    else self.is_question(lowered)
                )
                logger.debug("Intent matched: %s (question=%s)", rule.intent, question)
                return Classification(rule.intent, question, MATCH_CONFIDENCE)

        question = self.is_question(lowered)
        logger.debug("No intent rule matched (question=%s)", question)
        return Classification(UNKNOWN_INTENT, question, FALLBACK_CONFIDENCE)
