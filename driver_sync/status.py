"""Driver status path and the manual action offered at each step."""

from dataclasses import dataclass
from enum import Enum


class DriverStatus(str, Enum):
    """Driver-side order statuses known to the client."""

    PICK_ME = "Pick me"
    ACCEPTED = "Accepted"
    COMING = "Coming"
    ARRIVED_FOR_PICK = "Arrived for pick"
    TRAVELING = "Traveling"
    DROPPED = "Dropped"

    def action_label(self) -> str:
        """Button text for moving an order into this status."""
        return f"Mark as {self.value}"


@dataclass(frozen=True)
class StatusAction:
    """The single manual step available from a status."""

    label: str
    next_status: str


# Only the transitions a driver may trigger by hand. The backend owns the full
# set of statuses; anything missing here is shown without a control.
STATUS_TRANSITIONS: dict[DriverStatus, DriverStatus] = {
    DriverStatus.PICK_ME: DriverStatus.ACCEPTED,
    DriverStatus.ACCEPTED: DriverStatus.COMING,
    DriverStatus.COMING: DriverStatus.ARRIVED_FOR_PICK,
    DriverStatus.ARRIVED_FOR_PICK: DriverStatus.TRAVELING,
    DriverStatus.TRAVELING: DriverStatus.DROPPED,
}

TERMINAL_STATUSES: frozenset[DriverStatus] = frozenset({DriverStatus.DROPPED})


def next_action(status: object) -> StatusAction | None:
    """Return the action offered for ``status``, or None when there is none."""
    if not isinstance(status, str):
        return None
    target = STATUS_TRANSITIONS.get(status)
    if target is None:
        return None
    return StatusAction(label=target.action_label(), next_status=target.value)


def is_actionable(status: object) -> bool:
    return next_action(status) is not None


def is_terminal(status: object) -> bool:
    return isinstance(status, str) and status in TERMINAL_STATUSES
