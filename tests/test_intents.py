"""Tests for keyword intent classification."""

from switchboard.conversation.intents import (
    FALLBACK_CONFIDENCE,
    MATCH_CONFIDENCE,
    UNKNOWN_INTENT,
    IntentClassifier,
)

from tests.conftest import make_profile


class TestIntentClassifier:
    def setup_method(self):
        self.classifier = IntentClassifier(make_profile().intents)

    def test_rule_match(self):
        result = self.classifier.classify("I'm calling about my delivery")
        assert result.intent == "deliveries"
        assert result.confidence == MATCH_CONFIDENCE

    def test_question_keywords_mark_a_question(self):
        result = self.classifier.classify("when does my delivery come")
        assert result.intent == "deliveries"
        assert result.is_question is True

    def test_rule_with_question_keywords_ignores_general_markers(self):
        # "what" is a general question marker but not one of this rule's keywords
        result = self.classifier.classify("what happened to my delivery")
        assert result.intent == "deliveries"
        assert result.is_question is False

    def test_rule_without_question_keywords_uses_general_heuristic(self):
        result = self.classifier.classify("How do I volunteer?")
        assert result.intent == "volunteering"
        assert result.is_question is True

    def test_unknown_question(self):
        result = self.classifier.classify("What are your hours?")
        assert result.intent == UNKNOWN_INTENT
        assert result.is_question is True
        assert result.confidence == FALLBACK_CONFIDENCE

    def test_unknown_statement(self):
        result = self.classifier.classify("okay thanks")
        assert result.intent == UNKNOWN_INTENT
        assert result.is_question is False

    def test_empty_input(self):
        result = self.classifier.classify("   ")
        assert result.intent == UNKNOWN_INTENT
        assert result.confidence == 0.0

    def test_first_rule_wins(self):
        result = self.classifier.classify("can I volunteer for deliveries")
        assert result.intent == "deliveries"

    def test_case_insensitive(self):
        assert self.classifier.classify("DELIVERY STATUS").intent == "deliveries"
