"""Closed value sets shared by the models and the lifecycle controller."""

from enum import Enum


class UserRole(str, Enum):
    STUDENT = 'student'
    ADMIN = 'admin'


class PrinterStatus(str, Enum):
    ONLINE = 'online'
    OFFLINE = 'offline'
    PRINTING = 'printing'
    MAINTENANCE = 'maintenance'
    DISABLED = 'disabled'


class JobStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    PRINTING = 'printing'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_JOB_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not self.is_active


class TransactionType(str, Enum):
    PURCHASE = 'purchase'
    PRINT_JOB = 'print_job'
    REFUND = 'refund'
    ADMIN_ADJUSTMENT = 'admin_adjustment'


ACTIVE_JOB_STATUSES = frozenset({JobStatus.PENDING, JobStatus.APPROVED, JobStatus.PRINTING})

# Every status appears as a key; terminal states map to no successors.
JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.APPROVED, JobStatus.CANCELLED}),
    JobStatus.APPROVED: frozenset({JobStatus.PRINTING, JobStatus.CANCELLED}),
    JobStatus.PRINTING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

PRINTER_STATUSES_ACCEPTING_JOBS = frozenset({PrinterStatus.ONLINE, PrinterStatus.PRINTING})
