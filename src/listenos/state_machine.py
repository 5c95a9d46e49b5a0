from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class State(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    HANDSFREE = "handsfree"
    PROCESSING = "processing"
    CONFIRM = "confirm"
    SUCCESS = "success"
    ERROR = "error"


class Event(str, Enum):
    HOTKEY_PRESSED = "HOTKEY_PRESSED"
    CLICKED = "CLICKED"
    STOPPED = "STOPPED"
    NO_ACTION = "NO_ACTION"
    NEED_CONFIRMATION = "NEED_CONFIRMATION"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    TIMEOUT = "TIMEOUT"
    DISMISSED = "DISMISSED"
    CANCELLED = "CANCELLED"


RECORDING_STATES = frozenset({State.LISTENING, State.HANDSFREE})
DISPLAY_STATES = frozenset({State.SUCCESS, State.ERROR})


@dataclass(frozen=True)
class Transition:
    from_state: State
    to_state: State
    event: Event


TRANSITIONS: Tuple[Transition, ...] = (
    Transition(State.IDLE, State.LISTENING, Event.HOTKEY_PRESSED),
    Transition(State.IDLE, State.HANDSFREE, Event.CLICKED),
    Transition(State.SUCCESS, State.LISTENING, Event.HOTKEY_PRESSED),
    Transition(State.SUCCESS, State.HANDSFREE, Event.CLICKED),
    Transition(State.ERROR, State.LISTENING, Event.HOTKEY_PRESSED),
    Transition(State.ERROR, State.HANDSFREE, Event.CLICKED),
    Transition(State.LISTENING, State.PROCESSING, Event.STOPPED),
    Transition(State.HANDSFREE, State.PROCESSING, Event.STOPPED),
    Transition(State.LISTENING, State.ERROR, Event.FAILED),
    Transition(State.HANDSFREE, State.ERROR, Event.FAILED),
    Transition(State.PROCESSING, State.IDLE, Event.NO_ACTION),
    Transition(State.PROCESSING, State.CONFIRM, Event.NEED_CONFIRMATION),
    Transition(State.PROCESSING, State.SUCCESS, Event.SUCCEEDED),
    Transition(State.PROCESSING, State.ERROR, Event.FAILED),
    Transition(State.PROCESSING, State.ERROR, Event.TIMEOUT),
    Transition(State.CONFIRM, State.PROCESSING, Event.CONFIRMED),
    Transition(State.CONFIRM, State.ERROR, Event.FAILED),
    Transition(State.CONFIRM, State.IDLE, Event.REJECTED),
    Transition(State.CONFIRM, State.IDLE, Event.TIMEOUT),
    Transition(State.SUCCESS, State.IDLE, Event.DISMISSED),
    Transition(State.ERROR, State.IDLE, Event.DISMISSED),
)

_TABLE: Dict[Tuple[State, Event], State] = {
    (transition.from_state, transition.event): transition.to_state for transition in TRANSITIONS
}

# Processing cannot be aborted mid-flight; only its timeout ends it early.
_NOT_CANCELLABLE = frozenset({State.PROCESSING})


class StateMachine:
    def __init__(self) -> None:
        self.state = State.IDLE

    def can_transition(self, event: Event) -> bool:
        if event == Event.CANCELLED:
            return self.state not in _NOT_CANCELLABLE and self.state != State.IDLE
        return (self.state, event) in _TABLE

    def transition(self, event: Event) -> State:
        if event == Event.CANCELLED:
            if self.can_transition(event):
                self.state = State.IDLE
            return self.state

        self.state = _TABLE.get((self.state, event), self.state)
        return self.state
