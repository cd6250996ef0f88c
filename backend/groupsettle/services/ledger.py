"""Glue between stored rows and the settlement calculator.

Reads a group's expenses and settlements in one session and turns them into
calculator records. Also builds and validates split details on the write path.
"""
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from groupsettle.errors import InvalidSplit, UnknownMember
from groupsettle.models import Expense, ExpenseShare, Group, Settlement
from groupsettle.services.money import to_minor_units
from groupsettle.services.settlement_calculator import (
    ExpenseRecord,
    GroupBalance,
    SettlementRecord,
    Transfer,
    compute_balances,
    suggest_settlements,
)
from groupsettle.services.settlement_status import SettlementStatus
from groupsettle.services.splits import EqualSplit, ExactSplit, PercentageSplit, Split

logger = structlog.get_logger(__name__)


def build_split(
    split_type: str,
    member_ids: list[int],
    participant_ids: Optional[list[int]] = None,
    shares: Optional[dict[int, Decimal]] = None,
    percentages: Optional[dict[int, Decimal]] = None,
) -> Split:
    """Turn request fields into a split, checking every participant belongs to the group."""
    members = set(member_ids)
    if split_type == "equal":
        ids = participant_ids if participant_ids is not None else member_ids
        split: Split = EqualSplit(member_ids=tuple(ids))
    elif split_type == "exact":
        if not shares:
            raise InvalidSplit("Exact split requires shares")
        split = ExactSplit(shares={uid: to_minor_units(amt) for uid, amt in shares.items()})
    elif split_type == "percentage":
        if not percentages:
            raise InvalidSplit("Percentage split requires percentages")
        split = PercentageSplit(percentages=dict(percentages))
    else:
        raise InvalidSplit(f"Unknown split type: {split_type}")

    for uid in split.participants():
        if uid not in members:
            raise UnknownMember(uid, "split participant")
    return split


def share_rows(split: Split) -> list[ExpenseShare]:
    if isinstance(split, ExactSplit):
        return [ExpenseShare(user_id=uid, share_cents=c) for uid, c in sorted(split.shares.items())]
    if isinstance(split, PercentageSplit):
        return [ExpenseShare(user_id=uid, percentage=p) for uid, p in sorted(split.percentages.items())]
    return [ExpenseShare(user_id=uid) for uid in split.participants()]


def split_for_expense(expense: Expense) -> Split:
    if expense.split_type == "exact":
        return ExactSplit(shares={s.user_id: s.share_cents for s in expense.shares})
    if expense.split_type == "percentage":
        return PercentageSplit(percentages={s.user_id: Decimal(s.percentage) for s in expense.shares})
    return EqualSplit(member_ids=tuple(s.user_id for s in expense.shares))


def expense_record(expense: Expense) -> ExpenseRecord:
    return ExpenseRecord(
        id=expense.id,
        payer_id=expense.payer_id,
        amount=expense.amount_cents,
        split=split_for_expense(expense),
        version=expense.version or 1,
        is_deleted=bool(expense.is_deleted),
    )


def settlement_record(settlement: Settlement) -> SettlementRecord:
    return SettlementRecord(
        id=settlement.id,
        from_id=settlement.from_user_id,
        to_id=settlement.to_user_id,
        amount=settlement.amount_cents,
        status=SettlementStatus(settlement.status),
    )


def live_group_expenses(db: Session, group_id: int) -> list[Expense]:
    return (
        db.query(Expense)
        .filter(Expense.group_id == group_id, Expense.is_deleted.is_(False))
        .all()
    )


def group_balance(db: Session, group: Group) -> tuple[GroupBalance, list[Transfer]]:
    """Balances and suggested transfers for a group, computed from one consistent read."""
    expenses = live_group_expenses(db, group.id)
    settlements = db.query(Settlement).filter(Settlement.group_id == group.id).all()
    try:
        balance = compute_balances(
            [m.id for m in group.members],
            [expense_record(e) for e in expenses],
            [settlement_record(s) for s in settlements],
        )
    except (InvalidSplit, UnknownMember) as exc:
        logger.warning("balance_failed", group_id=group.id, error=exc.message)
        raise
    transfers = suggest_settlements(balance.balances)
    logger.info(
        "balance_computed",
        group_id=group.id,
        members=len(balance.balances),
        expenses=len(expenses),
        suggestions=len(transfers),
    )
    return balance, transfers


def member_has_records(db: Session, group_id: int, user_id: int) -> bool:
    """True if removing the member would orphan a live expense or a settlement in the group."""
    expenses = live_group_expenses(db, group_id)
    for e in expenses:
        if e.payer_id == user_id or any(s.user_id == user_id for s in e.shares):
            return True
    return (
        db.query(Settlement)
        .filter(
            Settlement.group_id == group_id,
            (Settlement.from_user_id == user_id) | (Settlement.to_user_id == user_id),
        )
        .first()
        is not None
    )
