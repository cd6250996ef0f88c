"""Expenses: create, list, update, soft-delete, export."""
import csv
import io
import json
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from groupsettle.database import get_db
from groupsettle.errors import InvalidSplit, UnknownMember
from groupsettle.models import User, Expense
from groupsettle.schemas import ExpenseCreate, ExpenseUpdate, ExpenseResponse, EXPENSE_CATEGORIES
from groupsettle.auth import get_current_user
from groupsettle.routers.access import member_group
from groupsettle.services.ledger import build_split, share_rows, split_for_expense
from groupsettle.services.money import format_amount, from_minor_units, to_minor_units
from groupsettle.services.splits import PercentageSplit, Split, compute_shares

router = APIRouter(prefix="/expenses", tags=["expenses"])
logger = structlog.get_logger(__name__)


def _expense_response(exp: Expense) -> ExpenseResponse:
    split = split_for_expense(exp)
    shares = compute_shares(exp.amount_cents, split)
    return ExpenseResponse(
        id=exp.id,
        group_id=exp.group_id,
        payer_id=exp.payer_id,
        amount=from_minor_units(exp.amount_cents),
        description=exp.description,
        category=exp.category,
        split_type=exp.split_type or "equal",
        participant_ids=split.participants(),
        shares={uid: from_minor_units(c) for uid, c in shares.items()},
        percentages=dict(split.percentages) if isinstance(split, PercentageSplit) else None,
        created_at=exp.created_at,
        version=exp.version or 1,
        is_edited=bool(exp.is_edited),
        is_deleted=bool(exp.is_deleted),
        updated_at=exp.updated_at,
        updated_by_id=exp.updated_by_id,
        deleted_at=exp.deleted_at,
        deleted_by_id=exp.deleted_by_id,
    )


def _check_category(category: Optional[str]) -> None:
    if category and category not in EXPENSE_CATEGORIES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid category. Must be one of: {', '.join(EXPENSE_CATEGORIES)}",
        )


def _validated_split(amount_cents: int, member_ids: list[int], split_type: str, **fields) -> Split:
    try:
        split = build_split(split_type, member_ids, **fields)
        compute_shares(amount_cents, split)
    except (InvalidSplit, UnknownMember) as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return split


def _snapshot(exp: Expense) -> str:
    return json.dumps({
        "amount": format_amount(exp.amount_cents),
        "description": exp.description,
        "category": exp.category,
        "payer_id": exp.payer_id,
        "split_type": exp.split_type,
        "shares": [
            {
                "user_id": s.user_id,
                "share_cents": s.share_cents,
                "percentage": str(s.percentage) if s.percentage is not None else None,
            }
            for s in exp.shares
        ],
        "version": exp.version,
    })


def _live_expense(db: Session, expense_id: int) -> Expense:
    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    if not expense or expense.is_deleted:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


@router.post("", response_model=ExpenseResponse)
def create_expense(
    data: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = member_group(db, data.group_id, current_user)
    member_ids = sorted(m.id for m in group.members)
    if data.payer_id not in member_ids:
        raise HTTPException(status_code=400, detail="Payer must be a group member")
    _check_category(data.category)

    amount_cents = to_minor_units(data.amount)
    split = _validated_split(
        amount_cents,
        member_ids,
        data.split_type,
        participant_ids=data.participant_ids,
        shares=data.shares,
        percentages=data.percentages,
    )

    expense = Expense(
        group_id=data.group_id,
        payer_id=data.payer_id,
        amount_cents=amount_cents,
        description=data.description,
        category=data.category,
        split_type=data.split_type,
        version=1,
        is_edited=False,
        is_deleted=False,
    )
    expense.shares = share_rows(split)
    db.add(expense)
    db.commit()
    db.refresh(expense)
    logger.info(
        "expense_created",
        expense_id=expense.id,
        group_id=expense.group_id,
        amount_cents=amount_cents,
        split_type=expense.split_type,
    )
    return _expense_response(expense)


@router.get("", response_model=list[ExpenseResponse])
def list_expenses(
    group_id: int,
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    include_deleted: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    member_group(db, group_id, current_user)
    q = db.query(Expense).filter(Expense.group_id == group_id)

    if not include_deleted:
        q = q.filter(Expense.is_deleted.is_(False))
    if search:
        q = q.filter(Expense.description.ilike(f"%{search}%"))
    if category:
        q = q.filter(Expense.category == category)

    expenses = q.order_by(Expense.created_at.desc(), Expense.id.desc()).offset(offset).limit(limit).all()
    return [_expense_response(e) for e in expenses]


@router.get("/export")
def export_expenses(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = member_group(db, group_id, current_user)
    expenses = (
        db.query(Expense)
        .filter(Expense.group_id == group_id, Expense.is_deleted.is_(False))
        .order_by(Expense.created_at.desc(), Expense.id.desc())
        .all()
    )
    member_map = {m.id: m.name or m.email for m in group.members}

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["Date", "Description", "Category", "Amount", "Paid By", "Split Type", "Shares"])
    for e in expenses:
        shares = compute_shares(e.amount_cents, split_for_expense(e))
        share_text = ", ".join(
            f"{member_map.get(uid, str(uid))}: {format_amount(c)}" for uid, c in shares.items()
        )
        date_str = e.created_at.strftime("%Y-%m-%d %H:%M") if e.created_at else ""
        writer.writerow([
            date_str,
            e.description or "",
            e.category or "",
            format_amount(e.amount_cents),
            member_map.get(e.payer_id, str(e.payer_id)),
            e.split_type or "equal",
            share_text,
        ])

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=expenses-group-{group_id}.csv"},
    )


@router.get("/{expense_id}", response_model=ExpenseResponse)
def get_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    member_group(db, expense.group_id, current_user)
    return _expense_response(expense)


@router.patch("/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: int,
    data: ExpenseUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = _live_expense(db, expense_id)
    group = member_group(db, expense.group_id, current_user)
    member_ids = sorted(m.id for m in group.members)
    previous = _snapshot(expense)

    if data.payer_id is not None and data.payer_id not in member_ids:
        raise HTTPException(status_code=400, detail="Payer must be a group member")
    if data.category is not None:
        _check_category(data.category)

    amount_cents = to_minor_units(data.amount) if data.amount is not None else expense.amount_cents
    split_type = data.split_type or expense.split_type
    split_fields_given = any(
        v is not None for v in (data.split_type, data.participant_ids, data.shares, data.percentages)
    )
    if split_fields_given:
        split = _validated_split(
            amount_cents,
            member_ids,
            split_type,
            participant_ids=data.participant_ids,
            shares=data.shares,
            percentages=data.percentages,
        )
    else:
        split = split_for_expense(expense)
        try:
            compute_shares(amount_cents, split)
        except InvalidSplit as exc:
            raise HTTPException(status_code=400, detail=exc.message)

    if data.payer_id is not None:
        expense.payer_id = data.payer_id
    if data.description is not None:
        expense.description = data.description
    if data.category is not None:
        expense.category = data.category or None
    expense.amount_cents = amount_cents
    if split_fields_given:
        expense.split_type = split_type
        expense.shares = share_rows(split)

    expense.previous_values = previous
    expense.version = (expense.version or 1) + 1
    expense.is_edited = True
    expense.updated_at = datetime.now(timezone.utc)
    expense.updated_by_id = current_user.id
    db.commit()
    db.refresh(expense)
    logger.info("expense_edited", expense_id=expense.id, version=expense.version, user_id=current_user.id)
    return _expense_response(expense)


@router.delete("/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = _live_expense(db, expense_id)
    member_group(db, expense.group_id, current_user)
    expense.is_deleted = True
    expense.deleted_at = datetime.now(timezone.utc)
    expense.deleted_by_id = current_user.id
    db.commit()
    logger.info("expense_deleted", expense_id=expense_id, user_id=current_user.id)
