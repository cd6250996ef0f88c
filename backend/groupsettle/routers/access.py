"""Lookups shared by the routers: a group the current user belongs to."""
from fastapi import HTTPException
from sqlalchemy.orm import Session

from groupsettle.models import Group, User
from groupsettle.schemas import MemberInfo


def member_group(db: Session, group_id: int, user: User) -> Group:
    group = db.query(Group).filter(Group.id == group_id).first()
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    if user not in group.members:
        raise HTTPException(status_code=403, detail="Not a member of this group")
    return group


def member_info(user: User) -> MemberInfo:
    return MemberInfo(id=user.id, name=user.name, email=user.email)
