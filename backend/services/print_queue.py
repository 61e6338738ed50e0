"""
Per-printer queue projection.

A queue is not stored anywhere: it is the printer's active jobs ordered by
priority, then submission time, then id. Recomputing it over an unchanged set
of jobs always yields the same sequence.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Query, Session

from backend.core import config
from backend.core.exceptions import NotFound
from backend.models.enums import ACTIVE_JOB_STATUSES
from backend.models.print_job import PrintJob

ACTIVE_STATUS_VALUES = [job_status.value for job_status in ACTIVE_JOB_STATUSES]
QUEUE_ORDER = (PrintJob.priority.asc(), PrintJob.created_at.asc(), PrintJob.id.asc())


@dataclass(frozen=True)
class QueueEntry:
    position: int
    job: PrintJob
    wait_minutes: int


def job_duration_minutes(job: PrintJob) -> int:
    return job.estimated_duration or config.DEFAULT_JOB_DURATION_MINUTES


def active_jobs_query(db: Session, printer_id: int) -> Query:
    return db.query(PrintJob).filter(
        PrintJob.printer_id == printer_id,
        PrintJob.status.in_(ACTIVE_STATUS_VALUES),
    )


def printer_queue(db: Session, printer_id: int) -> list[PrintJob]:
    return active_jobs_query(db, printer_id).order_by(*QUEUE_ORDER).populate_existing().all()


def queue_length(db: Session, printer_id: int) -> int:
    return active_jobs_query(db, printer_id).count()


def locate(db: Session, job_id: int) -> QueueEntry:
    """Find a job in its printer's queue, with the work scheduled ahead of it."""
    job = db.query(PrintJob).filter(PrintJob.id == job_id).first()
    if job is None or job.printer_id is None or job.job_status.is_terminal:
        raise NotFound(f'Print job {job_id} is not queued.')

    entries, _ = queue_snapshot(db, job.printer_id)
    for entry in entries:
        if entry.job.id == job_id:
            return entry

    raise NotFound(f'Print job {job_id} is not queued.')


def position_of(db: Session, job_id: int) -> int:
    return locate(db, job_id).position


def estimated_wait(db: Session, printer_id: int, position: int | None = None) -> int:
    """
    Minutes of work ahead of ``position`` (1-based) on the printer.

    Without a position this is the wait a fresh submission would see, i.e. the
    whole queue. The figure is advisory and not a scheduling guarantee.
    """
    queue = printer_queue(db, printer_id)
    ahead = queue if position is None else queue[:max(position - 1, 0)]
    return sum(job_duration_minutes(job) for job in ahead)


def queue_snapshot(db: Session, printer_id: int) -> tuple[list[QueueEntry], int]:
    entries: list[QueueEntry] = []
    wait_minutes = 0

    for position, job in enumerate(printer_queue(db, printer_id), start=1):
        entries.append(QueueEntry(position=position, job=job, wait_minutes=wait_minutes))
        wait_minutes += job_duration_minutes(job)

    return entries, wait_minutes
