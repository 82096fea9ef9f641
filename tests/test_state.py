import pytest

from netstack.tcp.state import Event, InvalidTransitionError, State, StateMachine


@pytest.mark.parametrize(
    "initial,event,expected",
    [
        (State.CLOSED, Event.PASSIVE_OPEN, State.LISTEN),
        (State.CLOSED, Event.ACTIVE_OPEN, State.SYN_SENT),
        (State.LISTEN, Event.RECEIVE_SYN, State.SYN_RECEIVED),
        (State.LISTEN, Event.CLOSE, State.CLOSED),
        (State.SYN_SENT, Event.RECEIVE_SYN_ACK, State.ESTABLISHED),
        (State.SYN_RECEIVED, Event.RECEIVE_ACK, State.ESTABLISHED),
        (State.ESTABLISHED, Event.CLOSE, State.FIN_WAIT_1),
        (State.ESTABLISHED, Event.RECEIVE_FIN, State.CLOSE_WAIT),
        (State.FIN_WAIT_1, Event.RECEIVE_ACK, State.FIN_WAIT_2),
        (State.FIN_WAIT_1, Event.RECEIVE_FIN, State.CLOSING),
        (State.FIN_WAIT_1, Event.RECEIVE_FIN_ACK, State.TIME_WAIT),
        (State.FIN_WAIT_2, Event.RECEIVE_FIN, State.TIME_WAIT),
        (State.CLOSE_WAIT, Event.CLOSE, State.LAST_ACK),
        (State.CLOSING, Event.RECEIVE_ACK, State.TIME_WAIT),
        (State.LAST_ACK, Event.RECEIVE_ACK, State.CLOSED),
        (State.TIME_WAIT, Event.TIMEOUT, State.CLOSED),
    ],
)
def test_valid_transitions(initial, event, expected):
    sm = StateMachine()
    sm.state = initial
    assert sm.transition(event) == expected
    assert sm.state == expected


def test_closed_invalid_event():
    sm = StateMachine()
    with pytest.raises(InvalidTransitionError):
        sm.transition(Event.RECEIVE_FIN)
    assert sm.state == State.CLOSED


@pytest.mark.parametrize(
    "state,event",
    [
        (State.ESTABLISHED, Event.SEND),
        (State.CLOSE_WAIT, Event.RECEIVE_ACK),
        (State.TIME_WAIT, Event.RECEIVE_FIN),
    ],
)
def test_tolerant_states_stay(state, event):
    sm = StateMachine(state)
    assert sm.transition(event) == state


def test_new_machine_is_closed():
    assert StateMachine().state == State.CLOSED


@pytest.mark.parametrize(
    "state,established,can_send,can_receive",
    [
        (State.CLOSED, False, False, False),
        (State.LISTEN, False, False, False),
        (State.SYN_SENT, False, False, False),
        (State.SYN_RECEIVED, False, False, False),
        (State.ESTABLISHED, True, True, True),
        (State.FIN_WAIT_1, True, False, True),
        (State.FIN_WAIT_2, True, False, True),
        (State.CLOSE_WAIT, True, True, False),
        (State.CLOSING, True, False, False),
        (State.LAST_ACK, True, False, False),
        (State.TIME_WAIT, False, False, False),
    ],
)
def test_state_helpers(state, established, can_send, can_receive):
    assert state.is_connection_established() == established
    assert state.can_send_data() == can_send
    assert state.can_receive_data() == can_receive


@pytest.mark.parametrize(
    "state,text",
    [
        (State.CLOSED, "CLOSED"),
        (State.LISTEN, "LISTEN"),
        (State.SYN_SENT, "SYN_SENT"),
        (State.SYN_RECEIVED, "SYN_RECEIVED"),
        (State.ESTABLISHED, "ESTABLISHED"),
        (State.FIN_WAIT_1, "FIN_WAIT_1"),
        (State.FIN_WAIT_2, "FIN_WAIT_2"),
        (State.CLOSE_WAIT, "CLOSE_WAIT"),
        (State.CLOSING, "CLOSING"),
        (State.LAST_ACK, "LAST_ACK"),
        (State.TIME_WAIT, "TIME_WAIT"),
    ],
)
def test_state_string(state, text):
    assert str(state) == text
    assert f"{state}" == text


@pytest.mark.parametrize(
    "event,text",
    [
        (Event.PASSIVE_OPEN, "PASSIVE_OPEN"),
        (Event.ACTIVE_OPEN, "ACTIVE_OPEN"),
        (Event.SEND, "SEND"),
        (Event.RECEIVE_SYN, "RECEIVE_SYN"),
        (Event.RECEIVE_SYN_ACK, "RECEIVE_SYN_ACK"),
        (Event.RECEIVE_ACK, "RECEIVE_ACK"),
        (Event.RECEIVE_FIN, "RECEIVE_FIN"),
        (Event.RECEIVE_FIN_ACK, "RECEIVE_FIN_ACK"),
        (Event.CLOSE, "CLOSE"),
        (Event.TIMEOUT, "TIMEOUT"),
    ],
)
def test_event_string(event, text):
    assert str(event) == text


def test_error_message_names_event_and_state():
    sm = StateMachine(State.LAST_ACK)
    with pytest.raises(InvalidTransitionError, match="invalid event CLOSE for state LAST_ACK"):
        sm.transition(Event.CLOSE)