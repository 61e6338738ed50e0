from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.core import config
from backend.database import ensure_print_job_schema, get_db
from backend.models.user import User
from backend.services import ledger

router = APIRouter(tags=['credits'])


class PurchaseCreditsRequest(BaseModel):
    package: str

    @field_validator('package')
    @classmethod
    def validate_package(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in config.CREDIT_PACKAGES:
            raise ValueError('Invalid credit package.')
        return normalized


class CreditAdjustmentRequest(BaseModel):
    user_id: int
    amount: int
    description: str | None = None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, value: int) -> int:
        if value == 0:
            raise ValueError('Adjustment amount must not be zero.')
        return value


class CreditTransactionResponse(BaseModel):
    id: int
    user_id: int
    amount: int
    type: str
    description: str
    print_job_id: int | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class CreditSummaryResponse(BaseModel):
    balance: int
    held: int
    available: int
    total_spent: int
    total_added: int
    spent_this_month: int


class CreditPackageResponse(BaseModel):
    package: str
    credits: int


def ensure_database_ready() -> None:
    try:
        ensure_print_job_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL.',
        ) from exc


@router.get('/balance', response_model=CreditSummaryResponse)
def get_balance(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return CreditSummaryResponse(**ledger.credit_summary(db, current_user.id))


@router.get('/transactions', response_model=list[CreditTransactionResponse])
def list_transactions(
    period: str = Query(default='all', pattern='^(week|month|all)$'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return ledger.list_transactions(db, current_user.id, period=period)


@router.get('/packages', response_model=list[CreditPackageResponse])
def list_credit_packages():
    return [
        CreditPackageResponse(package=package, credits=credits)
        for package, credits in config.CREDIT_PACKAGES.items()
    ]


@router.post('/purchase', response_model=CreditTransactionResponse, status_code=status.HTTP_201_CREATED)
def purchase_credits(
    data: PurchaseCreditsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return ledger.purchase_credits(db, current_user, data.package)


@router.post('/adjustments', response_model=CreditTransactionResponse, status_code=status.HTTP_201_CREATED)
def adjust_credits(
    data: CreditAdjustmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return ledger.adjust_credits(db, current_user, data.user_id, data.amount, data.description)
