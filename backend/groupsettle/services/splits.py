"""Split specifications and exact share computation.

Every split resolves to a mapping of member id -> cents whose values add up
to the expense amount exactly. Remainder cents are handed out in a fixed
order so the same expense always splits the same way.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Union

from groupsettle.errors import InvalidSplit
from groupsettle.services.money import round_half_up

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class EqualSplit:
    member_ids: tuple[int, ...] = ()
    kind: str = field(default="equal", init=False)

    def participants(self) -> list[int]:
        return sorted(set(self.member_ids))


@dataclass(frozen=True)
class ExactSplit:
    shares: dict[int, int] = field(default_factory=dict)
    kind: str = field(default="exact", init=False)

    def participants(self) -> list[int]:
        return sorted(self.shares)


@dataclass(frozen=True)
class PercentageSplit:
    percentages: dict[int, Decimal] = field(default_factory=dict)
    kind: str = field(default="percentage", init=False)

    def participants(self) -> list[int]:
        return sorted(self.percentages)


Split = Union[EqualSplit, ExactSplit, PercentageSplit]


def _equal_shares(amount: int, split: EqualSplit) -> dict[int, int]:
    members = split.participants()
    if not members:
        if amount == 0:
            return {}
        raise InvalidSplit("Equal split needs at least one participant")
    base, remainder = divmod(amount, len(members))
    # remainder cents go to the lowest ids first
    return {m: base + (1 if i < remainder else 0) for i, m in enumerate(members)}


def _exact_shares(amount: int, split: ExactSplit) -> dict[int, int]:
    if not split.shares and amount != 0:
        raise InvalidSplit("Exact split needs at least one share")
    for member_id, cents in split.shares.items():
        if cents < 0:
            raise InvalidSplit(f"Share for member {member_id} cannot be negative")
    total = sum(split.shares.values())
    if total != amount:
        raise InvalidSplit(f"Shares total {total} cents but the expense is {amount} cents")
    return dict(sorted(split.shares.items()))


def _percentage_shares(amount: int, split: PercentageSplit) -> dict[int, int]:
    if not split.percentages:
        if amount == 0:
            return {}
        raise InvalidSplit("Percentage split needs at least one participant")
    for member_id, pct in split.percentages.items():
        if pct < 0:
            raise InvalidSplit(f"Percentage for member {member_id} cannot be negative")
    total_pct = sum(split.percentages.values(), Decimal(0))
    if total_pct != HUNDRED:
        raise InvalidSplit(f"Percentages add up to {total_pct}, not 100")

    shares = {
        m: round_half_up(Decimal(amount) * split.percentages[m] / HUNDRED)
        for m in split.participants()
    }
    remainder = amount - sum(shares.values())
    if remainder:
        largest = min(split.percentages, key=lambda m: (-split.percentages[m], m))
        shares[largest] += remainder
        if shares[largest] < 0:
            raise InvalidSplit("Percentage rounding left a negative share")
    return shares


def compute_shares(amount: int, split: Split) -> dict[int, int]:
    """Return member id -> cents for ``amount`` divided according to ``split``."""
    if amount < 0:
        raise InvalidSplit("Expense amount cannot be negative")
    if isinstance(split, EqualSplit):
        return _equal_shares(amount, split)
    if isinstance(split, ExactSplit):
        return _exact_shares(amount, split)
    if isinstance(split, PercentageSplit):
        return _percentage_shares(amount, split)
    raise InvalidSplit(f"Unsupported split type: {type(split).__name__}")
