"""Printer model definitions."""

from sqlalchemy import Column, DateTime, Integer, String

from backend.core.clock import utcnow
from backend.database import Base
from backend.models.enums import PrinterStatus


class Printer(Base):
    """Represents a physical printer in the print center."""
    __tablename__ = "printers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    brand = Column(String, nullable=False)
    status = Column(String, nullable=False, default=PrinterStatus.ONLINE.value)
    location = Column(String, nullable=True)
    description = Column(String, nullable=True)
    # Plain integer rather than a foreign key: print_jobs already references printers.
    current_job_id = Column(Integer, nullable=True)
    estimated_completion_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
