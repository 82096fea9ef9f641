"""TCP connection states, events and the state machine that links them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class State(Enum):
    """A TCP connection state."""

    CLOSED = 0
    LISTEN = 1
    SYN_SENT = 2
    SYN_RECEIVED = 3
    ESTABLISHED = 4
    FIN_WAIT_1 = 5
    FIN_WAIT_2 = 6
    CLOSE_WAIT = 7
    CLOSING = 8
    LAST_ACK = 9
    TIME_WAIT = 10

    def __str__(self) -> str:
        return self.name

    def is_connection_established(self) -> bool:
        """True if the state belongs to an established connection."""
        return self in _ESTABLISHED_STATES

    def can_send_data(self) -> bool:
        """True if data may be sent in this state."""
        return self in (State.ESTABLISHED, State.CLOSE_WAIT)

    def can_receive_data(self) -> bool:
        """True if data may be received in this state."""
        return self in (State.ESTABLISHED, State.FIN_WAIT_1, State.FIN_WAIT_2)


_ESTABLISHED_STATES = frozenset(
    {
        State.ESTABLISHED,
        State.FIN_WAIT_1,
        State.FIN_WAIT_2,
        State.CLOSE_WAIT,
        State.CLOSING,
        State.LAST_ACK,
    }
)


class Event(Enum):
    """An event that may cause a state transition."""

    PASSIVE_OPEN = 0
    ACTIVE_OPEN = 1
    SEND = 2
    RECEIVE_SYN = 3
    RECEIVE_SYN_ACK = 4
    RECEIVE_ACK = 5
    RECEIVE_FIN = 6
    RECEIVE_FIN_ACK = 7
    CLOSE = 8
    TIMEOUT = 9

    def __str__(self) -> str:
        return self.name


class InvalidTransitionError(ValueError):
    """Raised when an event is not allowed in the current state."""

    def __init__(self, state: State, event: Event) -> None:
        super().__init__(f"invalid event {event} for state {state}")
        self.state = state
        self.event = event


_TRANSITIONS: dict[State, dict[Event, State]] = {
    State.CLOSED: {
        Event.PASSIVE_OPEN: State.LISTEN,
        Event.ACTIVE_OPEN: State.SYN_SENT,
    },
    State.LISTEN: {
        Event.RECEIVE_SYN: State.SYN_RECEIVED,
        Event.ACTIVE_OPEN: State.SYN_SENT,
        Event.CLOSE: State.CLOSED,
    },
    State.SYN_SENT: {
        Event.RECEIVE_SYN_ACK: State.ESTABLISHED,
        Event.RECEIVE_SYN: State.SYN_RECEIVED,
        Event.CLOSE: State.CLOSED,
    },
    State.SYN_RECEIVED: {
        Event.RECEIVE_ACK: State.ESTABLISHED,
        Event.CLOSE: State.FIN_WAIT_1,
        Event.RECEIVE_FIN: State.CLOSE_WAIT,
    },
    State.ESTABLISHED: {
        Event.CLOSE: State.FIN_WAIT_1,
        Event.RECEIVE_FIN: State.CLOSE_WAIT,
    },
    State.FIN_WAIT_1: {
        Event.RECEIVE_ACK: State.FIN_WAIT_2,
        Event.RECEIVE_FIN: State.CLOSING,
        Event.RECEIVE_FIN_ACK: State.TIME_WAIT,
    },
    State.FIN_WAIT_2: {
        Event.RECEIVE_FIN: State.TIME_WAIT,
    },
    State.CLOSE_WAIT: {
        Event.CLOSE: State.LAST_ACK,
    },
    State.CLOSING: {
        Event.RECEIVE_ACK: State.TIME_WAIT,
    },
    State.LAST_ACK: {
        Event.RECEIVE_ACK: State.CLOSED,
    },
    State.TIME_WAIT: {
        Event.TIMEOUT: State.CLOSED,
    },
}

# States in which events without a listed transition leave the state unchanged.
_TOLERANT_STATES = frozenset({State.ESTABLISHED, State.CLOSE_WAIT, State.TIME_WAIT})


@dataclass
class StateMachine:
    """Tracks a connection's state and applies event-driven transitions."""

    state: State = State.CLOSED

    def transition(self, event: Event) -> State:
        """Apply ``event`` and return the new state.

        Raises InvalidTransitionError if the event is not allowed.
        """
        next_state = _TRANSITIONS[self.state].get(event)
        if next_state is None:
            if self.state not in _TOLERANT_STATES:
                raise InvalidTransitionError(self.state, event)
            next_state = self.state
        self.state = next_state
        return next_state