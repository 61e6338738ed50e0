"""Admin view over portal accounts: listing with balances and (de)activation."""

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.auth.permissions import require_admin
from backend.core.exceptions import Conflict, NotFound
from backend.core.locks import transition_locks, user_key
from backend.database import atomic
from backend.models.credit_transaction import CreditTransaction
from backend.models.enums import UserRole
from backend.models.print_job import PrintJob
from backend.models.user import User
from backend.services.print_queue import ACTIVE_STATUS_VALUES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserAccount:
    user: User
    credits: int
    available_credits: int


def list_users(db: Session, actor: User, role: UserRole | None = None) -> list[UserAccount]:
    require_admin(actor, 'Only admins can view user accounts.')

    balances = (
        select(CreditTransaction.user_id, func.sum(CreditTransaction.amount).label('credits'))
        .group_by(CreditTransaction.user_id)
        .subquery()
    )
    held = (
        select(PrintJob.user_id, func.sum(PrintJob.credit_cost).label('held'))
        .where(PrintJob.status.in_(ACTIVE_STATUS_VALUES))
        .group_by(PrintJob.user_id)
        .subquery()
    )

    query = (
        db.query(User, func.coalesce(balances.c.credits, 0), func.coalesce(held.c.held, 0))
        .outerjoin(balances, balances.c.user_id == User.id)
        .outerjoin(held, held.c.user_id == User.id)
        .populate_existing()
    )
    if role is not None:
        query = query.filter(User.role == UserRole(role).value)

    rows = query.order_by(User.name.asc(), User.id.asc()).all()
    return [
        UserAccount(user=user, credits=int(credits), available_credits=int(credits) - int(held_credits))
        for user, credits, held_credits in rows
    ]


def _set_active(db: Session, user_id: int, is_active: bool) -> User:
    with transition_locks.hold(user_key(user_id)):
        with atomic(db):
            user = db.query(User).filter(User.id == user_id).with_for_update().populate_existing().first()
            if user is None:
                raise NotFound(f'User {user_id} not found.')
            user.is_active = is_active

    return user


def deactivate_user(db: Session, actor: User, user_id: int) -> User:
    require_admin(actor, 'Only admins can deactivate accounts.')

    if actor.id == user_id:
        raise Conflict('Admins cannot deactivate their own account.', details={'user_id': user_id})

    user = _set_active(db, user_id, False)
    logger.info('Admin %s deactivated user %s', actor.id, user_id)
    return user


def reactivate_user(db: Session, actor: User, user_id: int) -> User:
    require_admin(actor, 'Only admins can reactivate accounts.')

    user = _set_active(db, user_id, True)
    logger.info('Admin %s reactivated user %s', actor.id, user_id)
    return user
