"""Credit ledger: an append-only log per user from which balances are folded."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, case, func, select
from sqlalchemy.orm import Session

from backend.auth.permissions import require_admin
from backend.core import config
from backend.core.clock import utcnow
from backend.core.exceptions import InsufficientCredits, NotFound, ValidationError
from backend.core.locks import transition_locks, user_key
from backend.database import atomic
from backend.models.credit_transaction import CreditTransaction
from backend.models.enums import ACTIVE_JOB_STATUSES, TransactionType
from backend.models.print_job import PrintJob
from backend.models.user import User

logger = logging.getLogger(__name__)

TRANSACTION_PERIODS = {
    'week': timedelta(days=7),
    'month': timedelta(days=30),
    'all': None,
}


def get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFound(f'User {user_id} not found.')
    return user


def _balance_total(user_id: int):
    return select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
        CreditTransaction.user_id == user_id,
    ).scalar_subquery()


def _held_total(user_id: int):
    return select(func.coalesce(func.sum(PrintJob.credit_cost), 0)).where(
        PrintJob.user_id == user_id,
        PrintJob.status.in_([job_status.value for job_status in ACTIVE_JOB_STATUSES]),
    ).scalar_subquery()


def balance(db: Session, user_id: int) -> int:
    get_user(db, user_id)
    return int(db.execute(select(_balance_total(user_id))).scalar())


def held_credits(db: Session, user_id: int) -> int:
    """Credits committed to the user's active jobs but not yet debited."""
    return int(db.execute(select(_held_total(user_id))).scalar())


def available_balance(db: Session, user_id: int) -> int:
    # Both sums come from one statement so a completion committing in between
    # cannot count the same job as both held and debited.
    get_user(db, user_id)
    return int(db.execute(select(_balance_total(user_id) - _held_total(user_id))).scalar())


def record(
    db: Session,
    user_id: int,
    amount: int,
    transaction_type: TransactionType,
    description: str,
    print_job_id: int | None = None,
) -> CreditTransaction:
    """Append a transaction. The caller owns the commit."""
    get_user(db, user_id)

    transaction = CreditTransaction(
        user_id=user_id,
        amount=int(amount),
        type=TransactionType(transaction_type).value,
        description=description,
        print_job_id=print_job_id,
    )
    db.add(transaction)
    db.flush()

    logger.info(
        'Recorded %s transaction %s for user %s: %+d credits (job=%s)',
        transaction.type,
        transaction.id,
        user_id,
        transaction.amount,
        print_job_id,
    )
    return transaction


def purchase_credits(db: Session, actor: User, package: str) -> CreditTransaction:
    normalized_package = (package or '').strip().lower()
    if normalized_package not in config.CREDIT_PACKAGES:
        raise ValidationError(f'Unknown credit package: {package}.')

    amount = config.CREDIT_PACKAGES[normalized_package]

    with transition_locks.hold(user_key(actor.id)):
        with atomic(db):
            return record(
                db,
                actor.id,
                amount,
                TransactionType.PURCHASE,
                f'Credit purchase - {normalized_package} pack',
            )


def adjust_credits(
    db: Session,
    actor: User,
    user_id: int,
    amount: int,
    description: str | None = None,
) -> CreditTransaction:
    require_admin(actor, 'Only admins can adjust credit balances.')

    if amount == 0:
        raise ValidationError('Adjustment amount must not be zero.')

    with transition_locks.hold(user_key(user_id)):
        with atomic(db):
            available = available_balance(db, user_id)
            if available + amount < 0:
                logger.warning(
                    'Rejected adjustment of %+d for user %s: only %s credits available',
                    amount,
                    user_id,
                    available,
                )
                raise InsufficientCredits(
                    required=-amount,
                    available=available,
                    message=f'Adjustment would leave user {user_id} with a negative balance.',
                )

            return record(
                db,
                user_id,
                amount,
                TransactionType.ADMIN_ADJUSTMENT,
                (description or '').strip() or f'Admin adjustment by user {actor.id}',
            )


def list_transactions(
    db: Session,
    user_id: int,
    period: str = 'all',
    now: datetime | None = None,
) -> list[CreditTransaction]:
    if period not in TRANSACTION_PERIODS:
        raise ValidationError(f'Unknown period: {period}. Use week, month or all.')

    get_user(db, user_id)
    query = db.query(CreditTransaction).filter(CreditTransaction.user_id == user_id)

    window = TRANSACTION_PERIODS[period]
    if window is not None:
        cutoff = (now or utcnow()) - window
        query = query.filter(CreditTransaction.created_at >= cutoff)

    return query.order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc()).all()


def credit_summary(db: Session, user_id: int, now: datetime | None = None) -> dict:
    get_user(db, user_id)
    cutoff = (now or utcnow()) - TRANSACTION_PERIODS['month']
    amount = CreditTransaction.amount

    row = db.execute(
        select(
            func.coalesce(func.sum(amount), 0).label('balance'),
            _held_total(user_id).label('held'),
            func.coalesce(func.sum(case((amount < 0, -amount), else_=0)), 0).label('total_spent'),
            func.coalesce(func.sum(case((amount > 0, amount), else_=0)), 0).label('total_added'),
            func.coalesce(
                func.sum(case((and_(amount < 0, CreditTransaction.created_at >= cutoff), -amount), else_=0)),
                0,
            ).label('spent_this_month'),
        ).where(CreditTransaction.user_id == user_id)
    ).one()

    current_balance = int(row.balance)
    held = int(row.held)
    return {
        'balance': current_balance,
        'held': held,
        'available': current_balance - held,
        'total_spent': int(row.total_spent),
        'total_added': int(row.total_added),
        'spent_this_month': int(row.spent_this_month),
    }

