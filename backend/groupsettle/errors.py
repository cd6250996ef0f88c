"""Errors raised by the settlement engine."""


class SettlementError(Exception):
    """Base class for deterministic balance-computation failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidSplit(SettlementError):
    """An expense's split detail does not add up to the expense amount."""


class UnknownMember(SettlementError):
    """A split or settlement references someone outside the member set."""

    def __init__(self, member_id: int, context: str = ""):
        msg = f"Member {member_id} is not part of this group"
        if context:
            msg = f"{msg} ({context})"
        super().__init__(msg)
        self.member_id = member_id


class InvalidStatusTransition(SettlementError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change settlement status from {current} to {requested}")
        self.current = current
        self.requested = requested
