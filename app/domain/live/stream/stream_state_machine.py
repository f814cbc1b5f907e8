"""Stream state machine for managing state transitions."""

from app.schemas import StreamState


class StreamStateMachine:
    """State machine for managing relay stream state transitions.

    State flow with triggers:
    - IDLE (supervisor created) -> STARTING (start() called)
    - STARTING -> LIVE (readiness line seen) | STOPPING (stop() during start) | ERROR
    - LIVE -> STOPPING (stop() called) | STOPPED (input finished, exit 0) | ERROR (crash)
    - STOPPING -> STOPPED (process exited under the stop protocol) | ERROR
    - STOPPED/ERROR are terminal states

    Detailed triggers:
    1. STARTING: Set by start() once the parameters are valid.
    2. LIVE: Set when the readiness detector reports the encoder is running.
    3. STOPPING: Set by stop(), also when stop() races a pending start().
    4. STOPPED: Set when the process exits after SIGTERM/SIGKILL, or on its own with code 0.
    5. ERROR: Set on spawn failure, early exit, readiness timeout or non-zero exit while live.
    """

    TRANSITIONS: dict[StreamState, set[StreamState]] = {
        StreamState.IDLE: {StreamState.STARTING},
        StreamState.STARTING: {
            StreamState.LIVE,
            StreamState.STOPPING,
            StreamState.ERROR,
        },
        StreamState.LIVE: {
            StreamState.STOPPING,
            StreamState.STOPPED,
            StreamState.ERROR,
        },
        StreamState.STOPPING: {StreamState.STOPPED, StreamState.ERROR},
        StreamState.STOPPED: set(),
        StreamState.ERROR: set(),
    }

    TERMINAL_STATES: set[StreamState] = {StreamState.STOPPED, StreamState.ERROR}

    @classmethod
    def can_transition(cls, current: StreamState, new: StreamState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current stream state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_terminal(cls, state: StreamState) -> bool:
        """Check if a state is terminal (no further transitions allowed)."""
        return state in cls.TERMINAL_STATES

    @classmethod
    def get_valid_transitions(cls, state: StreamState) -> set[StreamState]:
        """Get all valid transitions from a given state."""
        return cls.TRANSITIONS.get(state, set())

    @classmethod
    def get_valid_sources(cls, target: StreamState) -> set[StreamState]:
        """Get all states that can transition to the target state."""
        return {state for state, targets in cls.TRANSITIONS.items() if target in targets}
