"""Settlements: record payments, move them through their lifecycle, and report who owes whom."""
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from groupsettle.database import get_db
from groupsettle.models import User, Group, Settlement
from groupsettle.schemas import (
    DashboardStats,
    GroupBalanceResponse,
    GroupPosition,
    MemberBalance,
    MemberSpending,
    SettlementCreate,
    SettlementItem,
    SettlementResponse,
    SettlementUpdate,
    UserSummary,
)
from groupsettle.auth import get_current_user
from groupsettle.routers.access import member_group, member_info
from groupsettle.services.ledger import group_balance, live_group_expenses
from groupsettle.services.money import from_minor_units, to_minor_units
from groupsettle.services.settlement_status import SettlementStatus, transition

router = APIRouter(prefix="/settlements", tags=["settlements"])
logger = structlog.get_logger(__name__)


def _settlement_response(s: Settlement) -> SettlementResponse:
    return SettlementResponse(
        id=s.id,
        group_id=s.group_id,
        from_user_id=s.from_user_id,
        to_user_id=s.to_user_id,
        amount=from_minor_units(s.amount_cents),
        status=SettlementStatus(s.status),
        payment_method=s.payment_method,
        notes=s.notes,
        transaction_reference=s.transaction_reference,
        created_at=s.created_at,
        completed_at=s.completed_at,
    )


@router.post("", response_model=SettlementResponse)
def record_settlement(
    data: SettlementCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = member_group(db, data.group_id, current_user)
    member_ids = {m.id for m in group.members}
    from_user_id = data.from_user_id if data.from_user_id is not None else current_user.id
    if from_user_id not in member_ids:
        raise HTTPException(status_code=400, detail="Payer must be a group member")
    if data.to_user_id not in member_ids:
        raise HTTPException(status_code=400, detail="Recipient must be a group member")
    if from_user_id == data.to_user_id:
        raise HTTPException(status_code=400, detail="Cannot settle with yourself")
    if data.status == SettlementStatus.CANCELED:
        raise HTTPException(status_code=400, detail="A new settlement must be pending or completed")

    settlement = Settlement(
        group_id=data.group_id,
        from_user_id=from_user_id,
        to_user_id=data.to_user_id,
        amount_cents=to_minor_units(data.amount),
        status=data.status.value,
        payment_method=data.payment_method,
        notes=data.notes,
        transaction_reference=data.transaction_reference,
        completed_at=datetime.now(timezone.utc) if data.status == SettlementStatus.COMPLETED else None,
    )
    db.add(settlement)
    db.commit()
    db.refresh(settlement)
    logger.info(
        "settlement_recorded",
        settlement_id=settlement.id,
        group_id=settlement.group_id,
        amount_cents=settlement.amount_cents,
        status=settlement.status,
    )
    return _settlement_response(settlement)


@router.get("/group/{group_id}", response_model=list[SettlementResponse])
def list_settlements(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    member_group(db, group_id, current_user)
    settlements = (
        db.query(Settlement)
        .filter(Settlement.group_id == group_id)
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
        .all()
    )
    return [_settlement_response(s) for s in settlements]


@router.get("/me", response_model=list[SettlementResponse])
def list_my_settlements(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Every settlement the current user sent or received, across all groups."""
    settlements = (
        db.query(Settlement)
        .filter((Settlement.from_user_id == current_user.id) | (Settlement.to_user_id == current_user.id))
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
        .all()
    )
    return [_settlement_response(s) for s in settlements]


@router.get("/group/{group_id}/balance", response_model=GroupBalanceResponse)
def get_group_balance(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = member_group(db, group_id, current_user)
    balance, transfers = group_balance(db, group)
    members = sorted(group.members, key=lambda u: u.id)
    return GroupBalanceResponse(
        group_id=group_id,
        members=[member_info(m) for m in members],
        balances=[
            MemberBalance(
                user_id=m.id,
                paid=from_minor_units(balance.paid[m.id]),
                owed=from_minor_units(balance.owed[m.id]),
                balance=from_minor_units(balance.balances[m.id]),
            )
            for m in members
        ],
        settlements=[
            SettlementItem(from_user_id=t.from_id, to_user_id=t.to_id, amount=from_minor_units(t.amount))
            for t in transfers
        ],
        total_expenses=from_minor_units(balance.total_expenses),
    )


@router.get("/summary/me", response_model=UserSummary)
def get_my_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    groups = (
        db.query(Group)
        .filter(Group.members.any(User.id == current_user.id))
        .order_by(Group.id)
        .all()
    )
    positions = []
    total = 0
    for g in groups:
        balance, _ = group_balance(db, g)
        mine = balance.balances.get(current_user.id, 0)
        total += mine
        positions.append(GroupPosition(group_id=g.id, group_name=g.name, balance=from_minor_units(mine)))
    return UserSummary(user_id=current_user.id, groups=positions, total_balance=from_minor_units(total))


@router.get("/dashboard/{group_id}", response_model=DashboardStats)
def get_dashboard(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = member_group(db, group_id, current_user)
    expenses = live_group_expenses(db, group_id)

    cat_totals: dict[str, int] = {}
    member_paid: dict[int, int] = {m.id: 0 for m in group.members}
    for e in expenses:
        cat = e.category or "other"
        cat_totals[cat] = cat_totals.get(cat, 0) + e.amount_cents
        member_paid[e.payer_id] = member_paid.get(e.payer_id, 0) + e.amount_cents

    balance, _ = group_balance(db, group)
    member_map = {m.id: m.name or m.email for m in group.members}
    member_spending = [
        MemberSpending(user_id=uid, name=member_map.get(uid, str(uid)), paid=from_minor_units(paid))
        for uid, paid in sorted(member_paid.items())
    ]

    return DashboardStats(
        total_expenses=from_minor_units(balance.total_expenses),
        expense_count=len(expenses),
        category_totals={cat: from_minor_units(c) for cat, c in cat_totals.items()},
        member_spending=member_spending,
        your_balance=from_minor_units(balance.balances.get(current_user.id, 0)),
    )


@router.get("/{settlement_id}", response_model=SettlementResponse)
def get_settlement(
    settlement_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settlement = db.query(Settlement).filter(Settlement.id == settlement_id).first()
    if not settlement:
        raise HTTPException(status_code=404, detail="Settlement not found")
    if current_user.id not in (settlement.from_user_id, settlement.to_user_id):
        raise HTTPException(status_code=403, detail="Not authorized to view this settlement")
    return _settlement_response(settlement)


@router.patch("/{settlement_id}", response_model=SettlementResponse)
def update_settlement(
    settlement_id: int,
    data: SettlementUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settlement = db.query(Settlement).filter(Settlement.id == settlement_id).first()
    if not settlement:
        raise HTTPException(status_code=404, detail="Settlement not found")
    if current_user.id not in (settlement.from_user_id, settlement.to_user_id):
        raise HTTPException(status_code=403, detail="Not authorized to update this settlement")

    if data.status is not None:
        current = SettlementStatus(settlement.status)
        new_status = transition(current, data.status)
        if new_status != current:
            values = {"status": new_status.value}
            if new_status == SettlementStatus.COMPLETED:
                values["completed_at"] = datetime.now(timezone.utc)
            # only move the row if nobody changed its status since we read it
            updated = (
                db.query(Settlement)
                .filter(Settlement.id == settlement.id, Settlement.status == current.value)
                .update(values, synchronize_session=False)
            )
            if updated == 0:
                db.rollback()
                raise HTTPException(status_code=409, detail="Settlement status changed concurrently")
            logger.info(
                "settlement_status_changed",
                settlement_id=settlement.id,
                old=current.value,
                new=new_status.value,
                user_id=current_user.id,
            )
    if data.notes is not None:
        settlement.notes = data.notes
    if data.transaction_reference is not None:
        settlement.transaction_reference = data.transaction_reference
    db.commit()
    db.refresh(settlement)
    return _settlement_response(settlement)
