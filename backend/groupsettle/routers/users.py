"""Users: member records. Credentials live with the external login service."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from groupsettle.database import get_db
from groupsettle.models import User
from groupsettle.schemas import UserCreate, UserResponse
from groupsettle.auth import get_current_user

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserResponse)
def create_user(data: UserCreate, db: Session = Depends(get_db)):
    if db.query(User).filter(User.email == data.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")
    user = User(email=data.email, name=data.name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserResponse.model_validate(user)


@router.get("/me", response_model=UserResponse)
def read_current_user(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)
