"""
Finite state machine for deterministic call flow control.

Defines the six call states and the explicit transitions between them.
Every call follows a declared path through the state graph, so a
transfer outcome or a voicemail capture can never move a call somewhere
the table does not allow.

Usage:
    sm = ConversationStateMachine()
    sm.transition(TransitionTrigger.GREETING_DELIVERED)
    assert sm.current_state == ConversationState.CLASSIFYING
"""

import logging
from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Callable

logger = logging.getLogger(__name__)


class ConversationState(str, Enum):
    """All possible states in a call lifecycle."""
    GREETING = "greeting"
    CLASSIFYING = "classifying"
    ANSWERING = "answering"
    ROUTING = "routing"
    COLLECTING_VOICEMAIL = "collecting_voicemail"
    COMPLETED = "completed"


class TransitionTrigger(str, Enum):
    """Events that cause state transitions."""
    GREETING_DELIVERED = "greeting_delivered"
    RETURNED_FROM_TRANSFER = "returned_from_transfer"
    FAQ_ANSWERED = "faq_answered"
    FOLLOW_UP = "follow_up"
    ROUTE_REQUESTED = "route_requested"
    CALLER_DONE = "caller_done"
    TRANSFER_CONNECTED = "transfer_connected"
    TRANSFER_FAILED = "transfer_failed"
    TRANSFER_UNAVAILABLE = "transfer_unavailable"
    CALLER_HANDED_OFF = "caller_handed_off"
    VOICEMAIL_TAKEN = "voicemail_taken"
    EMERGENCY = "emergency"
    GOODBYE = "goodbye"


@dataclass
class Transition:
    """A single valid state transition."""
    from_state: ConversationState
    to_state: ConversationState
    trigger: TransitionTrigger
    guard: Optional[Callable[[], bool]] = None


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: ConversationState
    entered_at: datetime
    trigger: Optional[TransitionTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


_LIVE_STATES = [s for s in ConversationState if s != ConversationState.COMPLETED]


class ConversationStateMachine:
    """
    Deterministic state machine controlling call flow.

    ROUTING is only ever left through a transfer outcome trigger, which
    the dialogue layer fires when the transfer coordinator reports back.
    COMPLETED is terminal except for the emergency override, which may
    pull a caller back into ROUTING from any state.
    """

    TRANSITIONS: list[Transition] = [
        # --- Greeting ---
        Transition(ConversationState.GREETING, ConversationState.CLASSIFYING,
                   TransitionTrigger.GREETING_DELIVERED),
        Transition(ConversationState.GREETING, ConversationState.COLLECTING_VOICEMAIL,
                   TransitionTrigger.RETURNED_FROM_TRANSFER),

        # --- Classification ---
        Transition(ConversationState.CLASSIFYING, ConversationState.ANSWERING,
                   TransitionTrigger.FAQ_ANSWERED),
        Transition(ConversationState.CLASSIFYING, ConversationState.ROUTING,
                   TransitionTrigger.ROUTE_REQUESTED),

        # --- Answering ---
        Transition(ConversationState.ANSWERING, ConversationState.CLASSIFYING,
                   TransitionTrigger.FOLLOW_UP),
        Transition(ConversationState.ANSWERING, ConversationState.ROUTING,
                   TransitionTrigger.ROUTE_REQUESTED),
        Transition(ConversationState.ANSWERING, ConversationState.COMPLETED,
                   TransitionTrigger.CALLER_DONE),

        # --- Transfer outcome ---
        Transition(ConversationState.ROUTING, ConversationState.COMPLETED,
                   TransitionTrigger.TRANSFER_CONNECTED),
        Transition(ConversationState.ROUTING, ConversationState.COLLECTING_VOICEMAIL,
                   TransitionTrigger.TRANSFER_FAILED),
        Transition(ConversationState.ROUTING, ConversationState.COMPLETED,
                   TransitionTrigger.TRANSFER_UNAVAILABLE),
        Transition(ConversationState.ROUTING, ConversationState.COMPLETED,
                   TransitionTrigger.CALLER_HANDED_OFF),

        # --- Voicemail ---
        Transition(ConversationState.COLLECTING_VOICEMAIL, ConversationState.COMPLETED,
                   TransitionTrigger.VOICEMAIL_TAKEN),

        # --- Overrides ---
        *[Transition(s, ConversationState.COMPLETED, TransitionTrigger.GOODBYE)
          for s in _LIVE_STATES],
        *[Transition(s, ConversationState.ROUTING, TransitionTrigger.EMERGENCY)
          for s in ConversationState],
    ]

    def __init__(self) -> None:
        self._current_state = ConversationState.GREETING
        self._history: list[StateEntry] = [
            StateEntry(state=ConversationState.GREETING, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_state(self) -> ConversationState:
        return self._current_state

    def transition(self, trigger: TransitionTrigger) -> ConversationState:
        """
        Execute a state transition.

        Args:
            trigger: The event triggering the transition.

        Returns:
            The new conversation state.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                if t.guard is not None and not t.guard():
                    continue

                old_state = self._current_state
                self._current_state = t.to_state

                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))

                logger.debug(
                    "State transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def can_transition(self, trigger: TransitionTrigger) -> bool:
        """Check whether a trigger is accepted from the current state."""
        return trigger in self.get_valid_triggers()

    def get_valid_triggers(self) -> list[TransitionTrigger]:
        """Return all triggers valid from the current state."""
        return [t.trigger for t in self.TRANSITIONS if t.from_state == self._current_state]

    def get_history(self) -> list[StateEntry]:
        """Return the full state transition history."""
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        """Check if the call has reached its terminal state."""
        return self._current_state == ConversationState.COMPLETED
