import pytest

from imperium.services.call_state_machine import (
    VALID_TRANSITIONS,
    CallStatus,
    InvalidTransitionError,
    can_transition,
    fail,
    is_terminal,
    transition,
)


class TestCallTransitions:
    def test_happy_path(self):
        state = CallStatus.INITIATED
        for target in (CallStatus.RINGING, CallStatus.ANSWERED, CallStatus.COMPLETED):
            state = transition(state, target)
        assert state == CallStatus.COMPLETED

    def test_ringing_may_complete_without_answer(self):
        assert can_transition(CallStatus.RINGING, CallStatus.COMPLETED) is True

    def test_initiated_cannot_be_answered(self):
        assert can_transition(CallStatus.INITIATED, CallStatus.ANSWERED) is False
        with pytest.raises(InvalidTransitionError) as exc:
            transition(CallStatus.INITIATED, CallStatus.ANSWERED)
        assert exc.value.from_state == CallStatus.INITIATED
        assert exc.value.to_state == CallStatus.ANSWERED

    def test_no_backward_transitions(self):
        assert can_transition(CallStatus.ANSWERED, CallStatus.RINGING) is False
        assert can_transition(CallStatus.RINGING, CallStatus.INITIATED) is False

    @pytest.mark.parametrize("state", [CallStatus.INITIATED, CallStatus.RINGING, CallStatus.ANSWERED])
    def test_every_live_state_can_fail(self, state):
        assert fail(state) == CallStatus.FAILED

    @pytest.mark.parametrize("state", [CallStatus.COMPLETED, CallStatus.FAILED])
    def test_terminal_states_are_absorbing(self, state):
        assert is_terminal(state) is True
        assert VALID_TRANSITIONS[state] == []
        with pytest.raises(InvalidTransitionError):
            fail(state)

    def test_accepts_plain_strings(self):
        assert can_transition("RINGING", "ANSWERED") is True
        assert is_terminal("COMPLETED") is True
