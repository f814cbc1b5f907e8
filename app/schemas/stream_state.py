"""Common enums used across schemas."""

from enum import Enum


class StreamState(str, Enum):
    """Relay stream lifecycle states.

    State Transition Flow:

    IDLE → STARTING → LIVE → STOPPING → STOPPED
              ↓        ↓  ↘      ↓
            ERROR    ERROR  STOPPED  ERROR

    State Descriptions:
    - IDLE: No session has run yet in this supervisor.
    - STARTING: FFmpeg spawned, waiting for the first readiness line. Set by start().
    - LIVE: FFmpeg reported stream mapping / running. Set when readiness is confirmed.
    - STOPPING: Termination in progress. Set by stop().
    - STOPPED: Process exited through the stop protocol, or the input finished cleanly.
    - ERROR: Spawn failure, early exit, readiness timeout or crash while live.

    Terminal states (no further transitions): STOPPED, ERROR
    """

    IDLE = "idle"
    STARTING = "starting"
    LIVE = "live"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def active_states(cls) -> list["StreamState"]:
        """States in which a session may still hold a process."""
        return [
            StreamState.STARTING,
            StreamState.LIVE,
            StreamState.STOPPING,
        ]


__all__ = ["StreamState"]
