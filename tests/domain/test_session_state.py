import pytest

from deepgram_stt.domain.session_state import (
    InvalidTransitionError,
    SessionState,
    validate_transition,
)


class TestSessionTransitions:
    def test_connecting_to_open(self):
        validate_transition(SessionState.CONNECTING, SessionState.OPEN)

    def test_connecting_to_errored(self):
        validate_transition(SessionState.CONNECTING, SessionState.ERRORED)

    def test_open_to_end_signaled(self):
        validate_transition(SessionState.OPEN, SessionState.END_SIGNALED)

    def test_end_signaled_to_finalized(self):
        validate_transition(SessionState.END_SIGNALED, SessionState.FINALIZED)

    def test_finalized_to_closed(self):
        validate_transition(SessionState.FINALIZED, SessionState.CLOSED)

    def test_errored_to_closed(self):
        validate_transition(SessionState.ERRORED, SessionState.CLOSED)

    @pytest.mark.parametrize(
        "state",
        [
            SessionState.CONNECTING,
            SessionState.OPEN,
            SessionState.END_SIGNALED,
            SessionState.FINALIZED,
            SessionState.ERRORED,
        ],
    )
    def test_every_live_state_can_close(self, state):
        validate_transition(state, SessionState.CLOSED)

    def test_invalid_closed_to_open(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(SessionState.CLOSED, SessionState.OPEN)

    def test_invalid_open_to_finalized(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(SessionState.OPEN, SessionState.FINALIZED)

    def test_invalid_finalized_to_end_signaled(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(SessionState.FINALIZED, SessionState.END_SIGNALED)

    def test_invalid_errored_to_open(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(SessionState.ERRORED, SessionState.OPEN)

    def test_closed_is_terminal(self):
        for target in SessionState:
            with pytest.raises(InvalidTransitionError):
                validate_transition(SessionState.CLOSED, target)

    def test_error_message_names_states(self):
        with pytest.raises(InvalidTransitionError, match="CLOSED to OPEN"):
            validate_transition(SessionState.CLOSED, SessionState.OPEN)
