from enum import Enum


class CallStatus(str, Enum):
    INITIATED = "INITIATED"
    RINGING = "RINGING"
    ANSWERED = "ANSWERED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


VALID_TRANSITIONS = {
    CallStatus.INITIATED: [CallStatus.RINGING, CallStatus.FAILED],
    # the answer notification may never arrive
    CallStatus.RINGING: [CallStatus.ANSWERED, CallStatus.COMPLETED, CallStatus.FAILED],
    CallStatus.ANSWERED: [CallStatus.COMPLETED, CallStatus.FAILED],
    CallStatus.COMPLETED: [],
    CallStatus.FAILED: [],
}

TERMINAL_STATES = {CallStatus.COMPLETED, CallStatus.FAILED}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: CallStatus, to_state: CallStatus):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid call transition: {from_state.value} -> {to_state.value}")


def is_terminal(state: CallStatus) -> bool:
    return CallStatus(state) in TERMINAL_STATES


def can_transition(from_state: CallStatus, to_state: CallStatus) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(CallStatus(from_state), [])
    return CallStatus(to_state) in allowed


def transition(from_state: CallStatus, to_state: CallStatus) -> CallStatus:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(CallStatus(from_state), CallStatus(to_state))
    return CallStatus(to_state)


def fail(current: CallStatus) -> CallStatus:
    return transition(current, CallStatus.FAILED)
