"""Group balances and the transfer plan that settles them (who owes whom).

Pure functions over already-fetched records. All amounts are integer cents,
so balances always add up to exactly zero.
"""
from dataclasses import dataclass, field
from typing import Iterable

from groupsettle.errors import UnknownMember
from groupsettle.services.settlement_status import SettlementStatus, affects_balance
from groupsettle.services.splits import Split, compute_shares


@dataclass(frozen=True)
class ExpenseRecord:
    id: int
    payer_id: int
    amount: int
    split: Split
    version: int = 1
    is_deleted: bool = False


@dataclass(frozen=True)
class SettlementRecord:
    id: int
    from_id: int
    to_id: int
    amount: int
    status: SettlementStatus = SettlementStatus.COMPLETED


@dataclass(frozen=True)
class Transfer:
    from_id: int
    to_id: int
    amount: int


@dataclass
class GroupBalance:
    paid: dict[int, int] = field(default_factory=dict)
    owed: dict[int, int] = field(default_factory=dict)
    balances: dict[int, int] = field(default_factory=dict)
    total_expenses: int = 0


def live_expenses(expenses: Iterable[ExpenseRecord]) -> list[ExpenseRecord]:
    """Latest version of every expense, with deleted ones dropped."""
    latest: dict[int, ExpenseRecord] = {}
    for e in expenses:
        current = latest.get(e.id)
        if current is None or e.version > current.version:
            latest[e.id] = e
    return [e for _, e in sorted(latest.items()) if not e.is_deleted]


def compute_balances(
    member_ids: Iterable[int],
    expenses: Iterable[ExpenseRecord],
    settlements: Iterable[SettlementRecord],
) -> GroupBalance:
    """
    balance = paid - owed + completed settlements sent - completed settlements received.
    Positive = is owed money, negative = owes money.
    Raises InvalidSplit or UnknownMember; a single bad record aborts the whole group.
    """
    members = set(member_ids)
    result = GroupBalance(
        paid={m: 0 for m in members},
        owed={m: 0 for m in members},
        balances={m: 0 for m in members},
    )

    for e in live_expenses(expenses):
        if e.payer_id not in members:
            raise UnknownMember(e.payer_id, f"payer of expense {e.id}")
        shares = compute_shares(e.amount, e.split)
        for uid in shares:
            if uid not in members:
                raise UnknownMember(uid, f"split of expense {e.id}")
        result.paid[e.payer_id] += e.amount
        result.total_expenses += e.amount
        for uid, share in shares.items():
            result.owed[uid] += share

    for m in members:
        result.balances[m] = result.paid[m] - result.owed[m]

    for s in settlements:
        for uid in (s.from_id, s.to_id):
            if uid not in members:
                raise UnknownMember(uid, f"settlement {s.id}")
        if not affects_balance(s.status):
            continue
        result.balances[s.from_id] += s.amount
        result.balances[s.to_id] -= s.amount

    return result


def _largest(pool: dict[int, int]) -> int:
    return min(pool, key=lambda uid: (-pool[uid], uid))


def suggest_settlements(balances: dict[int, int]) -> list[Transfer]:
    """
    Greedy plan: the largest debtor pays the largest creditor until everyone is square.
    Ties go to the lowest member id. Produces at most (nonzero members - 1) transfers.
    """
    if sum(balances.values()) != 0:
        raise ValueError("Balances do not add up to zero")
    debtors = {uid: -bal for uid, bal in balances.items() if bal < 0}
    creditors = {uid: bal for uid, bal in balances.items() if bal > 0}

    out: list[Transfer] = []
    while debtors and creditors:
        du = _largest(debtors)
        cu = _largest(creditors)
        amount = min(debtors[du], creditors[cu])
        out.append(Transfer(from_id=du, to_id=cu, amount=amount))
        debtors[du] -= amount
        creditors[cu] -= amount
        if debtors[du] == 0:
            del debtors[du]
        if creditors[cu] == 0:
            del creditors[cu]
    return out


def apply_transfers(balances: dict[int, int], transfers: Iterable[Transfer]) -> dict[int, int]:
    result = dict(balances)
    for t in transfers:
        result[t.from_id] = result.get(t.from_id, 0) + t.amount
        result[t.to_id] = result.get(t.to_id, 0) - t.amount
    return result
