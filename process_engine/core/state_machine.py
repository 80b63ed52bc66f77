"""
State machine definitions for task and process states.

Implements explicit (state, event) -> state transition tables. Tasks and
processes each own one machine; transition side effects live on the
entities themselves.
"""

from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field

from process_engine.core.exceptions import EngineError


class State(str, Enum):
    """
    Possible states for a task or a process.

    Task transitions:
    - INITIAL -> ENQUEUED -> PROCESSING -> COMPLETED
    - INITIAL -> ENQUEUED -> PROCESSING -> FAILED

    Tasks never enter PAUSED or CANCELLED themselves; they report those
    states by asking their process.

    Process transitions additionally include:
    - INITIAL/ENQUEUED/PROCESSING -> PAUSED -> PROCESSING (resume)
    - Any non-terminal state -> CANCELLED
    """

    INITIAL = "initial"
    ENQUEUED = "enqueued"
    PROCESSING = "processing"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"


class Event(str, Enum):
    """Events that drive a state machine."""

    ENQUEUE = "enqueue"
    START = "start"
    COMPLETE = "complete"
    FAIL = "fail"
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"


class StateTransition(BaseModel):
    """Represents a state transition event."""

    from_state: str
    to_state: str
    event: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    reason: Optional[str] = None


class InvalidTransition(EngineError):
    """Raised when an event is fired from a state that does not permit it."""

    def __init__(self, from_state: str, event: str, message: str = ""):
        self.from_state = from_state
        self.event = event
        super().__init__(
            f"Invalid transition: cannot {event} from {from_state}"
            + (f": {message}" if message else "")
        )


InvalidStateTransitionError = InvalidTransition

# Called with the transition record after the state has changed
TransitionListener = Callable[[StateTransition], None]


class StateMachine:
    """
    Table driven finite state machine.

    Subclasses provide ``TRANSITIONS``; the machine only consults the table,
    it never performs side effects itself.
    """

    TRANSITIONS: dict[tuple[State, Event], State] = {}

    TERMINAL_STATES: frozenset[State] = frozenset({State.COMPLETED, State.FAILED})

    def __init__(
        self,
        initial_state: State = State.INITIAL,
        on_transition: Optional[TransitionListener] = None,
    ):
        self._state = State(initial_state)
        self._history: list[StateTransition] = []
        self._on_transition = on_transition

    @property
    def state(self) -> State:
        """Get current state."""
        return self._state

    @property
    def history(self) -> list[StateTransition]:
        """Get state transition history."""
        return self._history.copy()

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal."""
        return self._state in self.TERMINAL_STATES

    def can_fire(self, event: Event) -> bool:
        """Check if the event is valid in the current state."""
        return (self._state, event) in self.TRANSITIONS

    def get_valid_events(self) -> set[Event]:
        """Get all events that may be fired from the current state."""
        return {event for (state, event) in self.TRANSITIONS if state == self._state}

    def ensure(self, event: Event) -> State:
        """
        Validate an event without firing it.

        Returns:
            The state the event would lead to

        Raises:
            InvalidTransition: If the event is not valid in the current state
        """
        try:
            return self.TRANSITIONS[(self._state, event)]
        except KeyError:
            raise InvalidTransition(
                self._state.value,
                event.value,
                f"Valid events: {sorted(e.value for e in self.get_valid_events())}",
            ) from None

    def fire(self, event: Event, reason: Optional[str] = None) -> StateTransition:
        """
        Fire an event, moving to the state the table prescribes.

        Args:
            event: Event to fire
            reason: Reason for transition

        Returns:
            StateTransition record

        Raises:
            InvalidTransition: If the event is not valid in the current state
        """
        to_state = self.ensure(event)

        transition = StateTransition(
            from_state=self._state.value,
            to_state=to_state.value,
            event=event.value,
            reason=reason,
        )

        self._history.append(transition)
        self._state = to_state

        if self._on_transition is not None:
            self._on_transition(transition)

        return transition

    def restore(self, state: State) -> None:
        """Overwrite the current state with a persisted one, without history."""
        self._state = State(state)


class TaskStateMachine(StateMachine):
    """State machine for tasks."""

    TRANSITIONS: dict[tuple[State, Event], State] = {
        (State.INITIAL, Event.ENQUEUE): State.ENQUEUED,
        # Workers may start a task that was handed to them directly
        (State.INITIAL, Event.START): State.PROCESSING,
        (State.ENQUEUED, Event.START): State.PROCESSING,
        (State.PROCESSING, Event.COMPLETE): State.COMPLETED,
        (State.PROCESSING, Event.FAIL): State.FAILED,
    }


class ProcessStateMachine(StateMachine):
    """State machine for processes."""

    TRANSITIONS: dict[tuple[State, Event], State] = {
        (State.INITIAL, Event.ENQUEUE): State.ENQUEUED,
        (State.INITIAL, Event.START): State.PROCESSING,
        (State.ENQUEUED, Event.START): State.PROCESSING,
        (State.PROCESSING, Event.COMPLETE): State.COMPLETED,
        (State.PROCESSING, Event.FAIL): State.FAILED,
        (State.PAUSED, Event.FAIL): State.FAILED,
        (State.INITIAL, Event.PAUSE): State.PAUSED,
        (State.ENQUEUED, Event.PAUSE): State.PAUSED,
        (State.PROCESSING, Event.PAUSE): State.PAUSED,
        (State.PAUSED, Event.RESUME): State.PROCESSING,
        (State.INITIAL, Event.CANCEL): State.CANCELLED,
        (State.ENQUEUED, Event.CANCEL): State.CANCELLED,
        (State.PROCESSING, Event.CANCEL): State.CANCELLED,
        (State.PAUSED, Event.CANCEL): State.CANCELLED,
    }

    TERMINAL_STATES: frozenset[State] = frozenset(
        {State.COMPLETED, State.FAILED, State.CANCELLED}
    )
