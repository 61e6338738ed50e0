"""User model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from backend.core.clock import utcnow
from backend.database import Base
from backend.models.enums import UserRole


class User(Base):
    """Represents a portal account. Credit balance lives in the ledger."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default='')
    role = Column(String, nullable=False, default=UserRole.STUDENT.value)  # student/admin
    student_number = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
