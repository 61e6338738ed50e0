from backend.core.exceptions import Forbidden
from backend.models.user import User


def require_admin(actor: User, message: str = 'Only admins can perform this action.') -> None:
    if actor is None or not actor.is_admin:
        raise Forbidden(message)


def require_owner_or_admin(actor: User, owner_id: int, message: str) -> None:
    if actor is None:
        raise Forbidden(message)
    if actor.is_admin or actor.id == owner_id:
        return
    raise Forbidden(message)
