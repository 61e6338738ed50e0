from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.database import get_db
from backend.models.enums import UserRole
from backend.models.user import User
from backend.services import user_directory

router = APIRouter(tags=['users'])


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    role: str
    student_number: str | None = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UserAccountResponse(UserResponse):
    credits: int
    available_credits: int


@router.get('', response_model=list[UserAccountResponse])
def list_users(
    role: UserRole | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [
        UserAccountResponse(
            **UserResponse.model_validate(account.user).model_dump(),
            credits=account.credits,
            available_credits=account.available_credits,
        )
        for account in user_directory.list_users(db, current_user, role=role)
    ]


@router.post('/{user_id}/deactivate', response_model=UserResponse)
def deactivate_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return user_directory.deactivate_user(db, current_user, user_id)


@router.post('/{user_id}/reactivate', response_model=UserResponse)
def reactivate_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return user_directory.reactivate_user(db, current_user, user_id)
