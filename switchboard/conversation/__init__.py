from switchboard.conversation.guardrails import GuardrailPipeline, ReplyCues
from switchboard.conversation.intents import Classification, IntentClassifier
from switchboard.conversation.state_machine import (
    ConversationState,
    ConversationStateMachine,
    TransitionTrigger,
)

__all__ = [
    "ConversationStateMachine",
    "ConversationState",
    "TransitionTrigger",
    "IntentClassifier",
    "Classification",
    "GuardrailPipeline",
    "ReplyCues",
]
