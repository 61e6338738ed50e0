"""Print job model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from backend.core.clock import utcnow
from backend.database import Base
from backend.models.enums import JobStatus


class PrintJob(Base):
    """Represents a file submitted for printing on one printer."""
    __tablename__ = "print_jobs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    printer_id = Column(Integer, ForeignKey("printers.id", ondelete="SET NULL"), nullable=True, index=True)
    file_name = Column(String, nullable=False)
    file_size_bytes = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default=JobStatus.PENDING.value)
    priority = Column(Integer, nullable=False)
    credit_cost = Column(Integer, nullable=False)
    estimated_duration = Column(Integer, nullable=True)  # minutes
    notes = Column(String, nullable=True)
    admin_notes = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    @property
    def job_status(self) -> JobStatus:
        return JobStatus(self.status)
