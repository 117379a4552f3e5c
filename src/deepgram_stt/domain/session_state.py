from enum import Enum, auto


class SessionState(Enum):
    CONNECTING = auto()
    OPEN = auto()
    END_SIGNALED = auto()
    FINALIZED = auto()
    ERRORED = auto()
    CLOSED = auto()


VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.CONNECTING: {SessionState.OPEN, SessionState.ERRORED, SessionState.CLOSED},
    SessionState.OPEN: {SessionState.END_SIGNALED, SessionState.ERRORED, SessionState.CLOSED},
    SessionState.END_SIGNALED: {SessionState.FINALIZED, SessionState.ERRORED, SessionState.CLOSED},
    SessionState.FINALIZED: {SessionState.CLOSED},
    SessionState.ERRORED: {SessionState.CLOSED},
    SessionState.CLOSED: set(),
}


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: SessionState, target: SessionState) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")
