"""Pydantic schemas for request/response. Amounts travel as two-place decimals."""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, EmailStr, Field

from groupsettle.services.money import MAX_AMOUNT
from groupsettle.services.settlement_status import SettlementStatus


def _two_places(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is not None and value.as_tuple().exponent < -2:
        raise ValueError("amount may have at most two decimal places")
    return value


def _three_places(value: Decimal) -> Decimal:
    if value.as_tuple().exponent < -3:
        raise ValueError("percentage may have at most three decimal places")
    return value


Money = Annotated[Decimal, Field(le=MAX_AMOUNT), AfterValidator(_two_places)]
Percent = Annotated[Decimal, Field(ge=0, le=100), AfterValidator(_three_places)]


# ----- User -----
class UserBase(BaseModel):
    email: EmailStr
    name: Optional[str] = None


class UserCreate(UserBase):
    pass


class UserResponse(UserBase):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MemberInfo(BaseModel):
    id: int
    name: Optional[str] = None
    email: EmailStr


# ----- Group -----
class GroupBase(BaseModel):
    name: str
    description: Optional[str] = None


class GroupCreate(GroupBase):
    member_ids: list[int] = []


class GroupUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class GroupAddMember(BaseModel):
    email: EmailStr


class GroupResponse(GroupBase):
    id: int
    created_at: Optional[datetime] = None
    member_ids: list[int] = []
    members: list[MemberInfo] = []

    class Config:
        from_attributes = True


# ----- Expense -----
EXPENSE_CATEGORIES = [
    "food",
    "transport",
    "housing",
    "entertainment",
    "utilities",
    "shopping",
    "health",
    "travel",
    "education",
    "other",
]

SplitType = Literal["equal", "exact", "percentage"]


class ExpenseCreate(BaseModel):
    group_id: int
    payer_id: int
    amount: Money = Field(..., ge=0)
    description: Optional[str] = None
    category: Optional[str] = None
    split_type: SplitType = "equal"
    # equal split: defaults to every group member when omitted
    participant_ids: Optional[list[int]] = None
    shares: Optional[dict[int, Money]] = None
    percentages: Optional[dict[int, Percent]] = None


class ExpenseUpdate(BaseModel):
    amount: Optional[Money] = Field(None, ge=0)
    description: Optional[str] = None
    category: Optional[str] = None
    payer_id: Optional[int] = None
    split_type: Optional[SplitType] = None
    participant_ids: Optional[list[int]] = None
    shares: Optional[dict[int, Money]] = None
    percentages: Optional[dict[int, Percent]] = None


class ExpenseResponse(BaseModel):
    id: int
    group_id: int
    payer_id: int
    amount: Decimal
    description: Optional[str] = None
    category: Optional[str] = None
    split_type: str = "equal"
    participant_ids: list[int] = []
    shares: dict[int, Decimal] = {}
    percentages: Optional[dict[int, Decimal]] = None
    created_at: Optional[datetime] = None
    version: int = 1
    is_edited: bool = False
    is_deleted: bool = False
    updated_at: Optional[datetime] = None
    updated_by_id: Optional[int] = None
    deleted_at: Optional[datetime] = None
    deleted_by_id: Optional[int] = None


# ----- Settlement (recorded payments) -----
PaymentMethod = Literal["cash", "venmo", "other"]


class SettlementCreate(BaseModel):
    group_id: int
    to_user_id: int
    amount: Money = Field(..., gt=0)
    # defaults to the current user
    from_user_id: Optional[int] = None
    status: SettlementStatus = SettlementStatus.PENDING
    payment_method: PaymentMethod = "cash"
    notes: Optional[str] = None
    transaction_reference: Optional[str] = None


class SettlementUpdate(BaseModel):
    status: Optional[SettlementStatus] = None
    notes: Optional[str] = None
    transaction_reference: Optional[str] = None


class SettlementResponse(BaseModel):
    id: int
    group_id: int
    from_user_id: int
    to_user_id: int
    amount: Decimal
    status: SettlementStatus
    payment_method: str
    notes: Optional[str] = None
    transaction_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


# ----- Balance -----
class SettlementItem(BaseModel):
    from_user_id: int
    to_user_id: int
    amount: Decimal


class MemberBalance(BaseModel):
    user_id: int
    paid: Decimal
    owed: Decimal
    balance: Decimal


class GroupBalanceResponse(BaseModel):
    group_id: int
    members: list[MemberInfo] = []
    balances: list[MemberBalance]
    settlements: list[SettlementItem]
    total_expenses: Decimal


class GroupPosition(BaseModel):
    group_id: int
    group_name: str
    balance: Decimal


class UserSummary(BaseModel):
    user_id: int
    groups: list[GroupPosition]
    total_balance: Decimal


# ----- Dashboard -----
class MemberSpending(BaseModel):
    user_id: int
    name: str
    paid: Decimal


class DashboardStats(BaseModel):
    total_expenses: Decimal
    expense_count: int
    category_totals: dict[str, Decimal]
    member_spending: list[MemberSpending]
    your_balance: Decimal
