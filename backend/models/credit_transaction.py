"""Credit ledger entry definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from backend.core.clock import utcnow
from backend.database import Base


class CreditTransaction(Base):
    """Append-only ledger entry. Positive amounts add credits, negative spend them."""
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    type = Column(String, nullable=False)
    description = Column(String, nullable=False, default='')
    print_job_id = Column(Integer, ForeignKey("print_jobs.id"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
