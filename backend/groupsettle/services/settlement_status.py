"""Settlement lifecycle: pending -> completed | canceled."""
import enum

from groupsettle.errors import InvalidStatusTransition


class SettlementStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELED = "canceled"


ALLOWED_TRANSITIONS: dict[SettlementStatus, frozenset[SettlementStatus]] = {
    SettlementStatus.PENDING: frozenset({SettlementStatus.COMPLETED, SettlementStatus.CANCELED}),
    SettlementStatus.COMPLETED: frozenset(),
    SettlementStatus.CANCELED: frozenset(),
}


def is_terminal(status: SettlementStatus) -> bool:
    return not ALLOWED_TRANSITIONS[SettlementStatus(status)]


def transition(current: SettlementStatus, requested: SettlementStatus) -> SettlementStatus:
    """Validate a status change. Re-applying the current status is a no-op."""
    current = SettlementStatus(current)
    requested = SettlementStatus(requested)
    if requested == current:
        return current
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current.value, requested.value)
    return requested


def affects_balance(status: SettlementStatus) -> bool:
    return SettlementStatus(status) == SettlementStatus.COMPLETED
