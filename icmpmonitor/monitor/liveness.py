"""Per-host liveness state machine."""

from enum import Enum

from icmpmonitor.config import StartCondition


class LivenessState(str, Enum):
    """Reachability of a host."""

    UP = "up"
    DOWN = "down"
    # Only reachable through the "auto" start condition, never re-entered
    PENDING = "pending"


class Liveness:
    """Up/down state with edge-triggered action decisions.

    The scheduler calls record_timeout() when a host's reply is overdue,
    the reader calls record_reply() on a matching echo reply. Each returns
    True when the corresponding action command has to run.
    """

    def __init__(self, start_condition: StartCondition = StartCondition.UP):
        if start_condition == StartCondition.AUTO:
            self.state = LivenessState.PENDING
        elif start_condition == StartCondition.DOWN:
            self.state = LivenessState.DOWN
        else:
            self.state = LivenessState.UP

    @property
    def is_up(self) -> bool:
        return self.state is LivenessState.UP

    def record_timeout(self, repeat: bool = False) -> bool:
        """Mark the host down.

        Args:
            repeat: Fire on every call while the down condition holds.

        Returns:
            True if the down action should run.
        """
        previous = self.state
        self.state = LivenessState.DOWN
        return previous is LivenessState.UP or repeat

    def record_reply(self) -> bool:
        """Mark the host up.

        Returns:
            True if the up action should run.
        """
        previous = self.state
        self.state = LivenessState.UP
        return previous is LivenessState.DOWN

    def __repr__(self) -> str:
        return f"Liveness({self.state.value})"
