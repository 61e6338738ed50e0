from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.database import get_db
from backend.models.user import User
from backend.services import ledger

router = APIRouter(tags=['auth'])


class PrincipalResponse(BaseModel):
    id: int
    email: str
    name: str
    role: str
    student_number: str | None = None
    credits: int
    available_credits: int


@router.get('/me', response_model=PrincipalResponse)
def me(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    summary = ledger.credit_summary(db, current_user.id)
    return PrincipalResponse(
        id=current_user.id,
        email=current_user.email,
        name=current_user.name,
        role=current_user.role,
        student_number=current_user.student_number,
        credits=summary['balance'],
        available_credits=summary['available'],
    )
