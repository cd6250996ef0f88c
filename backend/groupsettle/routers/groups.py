"""Groups: create, list, get, update, delete, add/remove members."""
import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from groupsettle.database import get_db
from groupsettle.models import User, Group
from groupsettle.schemas import GroupCreate, GroupUpdate, GroupResponse, GroupAddMember
from groupsettle.auth import get_current_user
from groupsettle.routers.access import member_group, member_info
from groupsettle.services.ledger import member_has_records

router = APIRouter(prefix="/groups", tags=["groups"])
logger = structlog.get_logger(__name__)


def _group_response(group: Group) -> GroupResponse:
    members = sorted(group.members, key=lambda u: u.id)
    return GroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        created_at=group.created_at,
        member_ids=[u.id for u in members],
        members=[member_info(u) for u in members],
    )


@router.get("", response_model=list[GroupResponse])
def list_groups(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    groups = (
        db.query(Group)
        .filter(Group.members.any(User.id == current_user.id))
        .order_by(Group.id)
        .all()
    )
    return [_group_response(g) for g in groups]


@router.post("", response_model=GroupResponse)
def create_group(
    data: GroupCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    members = [current_user]
    if data.member_ids:
        others = db.query(User).filter(User.id.in_(data.member_ids)).all()
        if len({u.id for u in others}) != len(set(data.member_ids)):
            raise HTTPException(status_code=400, detail="Unknown user in member_ids")
        members.extend(u for u in others if u.id != current_user.id)
    group = Group(name=data.name, description=data.description, members=members)
    db.add(group)
    db.commit()
    db.refresh(group)
    logger.info("group_created", group_id=group.id, members=len(members))
    return _group_response(group)


@router.get("/{group_id}", response_model=GroupResponse)
def get_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _group_response(member_group(db, group_id, current_user))


@router.patch("/{group_id}", response_model=GroupResponse)
def update_group(
    group_id: int,
    data: GroupUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = member_group(db, group_id, current_user)
    if data.name is not None:
        group.name = data.name
    if data.description is not None:
        group.description = data.description
    db.commit()
    db.refresh(group)
    return _group_response(group)


@router.delete("/{group_id}", status_code=204)
def delete_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = member_group(db, group_id, current_user)
    db.delete(group)
    db.commit()
    logger.info("group_deleted", group_id=group_id, user_id=current_user.id)


@router.post("/{group_id}/members", response_model=GroupResponse)
def add_group_member(
    group_id: int,
    data: GroupAddMember,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = member_group(db, group_id, current_user)
    user = db.query(User).filter(User.email == data.email).first()
    if not user:
        raise HTTPException(status_code=404, detail="No user found with that email")
    if user in group.members:
        raise HTTPException(status_code=400, detail="User already in group")
    group.members.append(user)
    db.commit()
    db.refresh(group)
    return _group_response(group)


@router.delete("/{group_id}/members/{user_id}", response_model=GroupResponse)
def remove_group_member(
    group_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    group = member_group(db, group_id, current_user)
    user = next((m for m in group.members if m.id == user_id), None)
    if not user:
        raise HTTPException(status_code=404, detail="User not in this group")
    if user.id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot remove yourself")
    # balances must keep adding up, so members with history stay
    if member_has_records(db, group_id, user_id):
        raise HTTPException(status_code=400, detail="Member has expenses or settlements in this group")
    group.members.remove(user)
    db.commit()
    db.refresh(group)
    return _group_response(group)
