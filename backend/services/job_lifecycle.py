"""
Job lifecycle controller.

Every state change of a print job goes through this module. Each transition
holds the keyed locks of the printer, job and owner it touches, and commits
job, printer and ledger changes together.

Credits are debited when a job completes. Between submission and a terminal
state the job's cost is held against the owner's balance, so a user can never
queue more work than their balance pays for.
"""

import logging
import math
from datetime import timedelta
from typing import NamedTuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.auth.permissions import require_admin, require_owner_or_admin
from backend.core import config
from backend.core.clock import utcnow
from backend.core.exceptions import (
    Conflict,
    InsufficientCredits,
    InvalidState,
    NotFound,
    PrinterUnavailable,
    ValidationError,
)
from backend.core.locks import job_key, printer_key, transition_locks, user_key
from backend.database import atomic
from backend.models.enums import (
    ACTIVE_JOB_STATUSES,
    JOB_TRANSITIONS,
    PRINTER_STATUSES_ACCEPTING_JOBS,
    JobStatus,
    PrinterStatus,
    TransactionType,
    UserRole,
)
from backend.models.print_job import PrintJob
from backend.models.printer import Printer
from backend.models.user import User
from backend.services import ledger, print_queue
from backend.services.printer_registry import get_printer

logger = logging.getLogger(__name__)


class JobEstimate(NamedTuple):
    credit_cost: int
    duration_minutes: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: int, lowest: int, highest: int) -> int:
    return max(lowest, min(value, highest))


def estimate_job(file_size_bytes: int) -> JobEstimate:
    size_kb = file_size_bytes / 1024
    credit_cost = clamp(
        round_half_up(size_kb / 100),
        config.MIN_JOB_CREDIT_COST,
        config.MAX_JOB_CREDIT_COST,
    )
    duration_minutes = clamp(
        round_half_up(size_kb / 50),
        config.MIN_JOB_DURATION_MINUTES,
        config.MAX_JOB_DURATION_MINUTES,
    )
    return JobEstimate(credit_cost=credit_cost, duration_minutes=duration_minutes)


def validate_submission(file_name: str, file_size_bytes: int, notes: str | None) -> tuple[str, str | None]:
    normalized_name = (file_name or '').strip()
    if not normalized_name:
        raise ValidationError('File name is required.')

    if not normalized_name.lower().endswith(config.ALLOWED_FILE_EXTENSIONS):
        raise ValidationError('Only .stl and .gcode files can be printed.')

    if file_size_bytes is None or file_size_bytes <= 0:
        raise ValidationError('File size must be greater than zero.')

    if file_size_bytes > config.MAX_UPLOAD_BYTES:
        raise ValidationError(f'Files must be {config.MAX_UPLOAD_BYTES // (1024 * 1024)} MB or smaller.')

    normalized_notes = (notes or '').strip() or None
    if normalized_notes and len(normalized_notes) > config.MAX_JOB_NOTES_LENGTH:
        raise ValidationError(f'Notes must be {config.MAX_JOB_NOTES_LENGTH} characters or fewer.')

    return normalized_name, normalized_notes


def get_job(db: Session, job_id: int, for_update: bool = False) -> PrintJob:
    query = db.query(PrintJob).filter(PrintJob.id == job_id)
    if for_update:
        query = query.with_for_update().populate_existing()

    job = query.first()
    if job is None:
        raise NotFound(f'Print job {job_id} not found.')
    return job


def _move(job: PrintJob, target: JobStatus) -> None:
    current = job.job_status
    if target not in JOB_TRANSITIONS[current]:
        logger.warning('Rejected transition of job %s from %s to %s', job.id, current.value, target.value)
        raise InvalidState(job.id, current.value, target.value)

    job.status = target.value
    job.updated_at = utcnow()


def _release_printer(printer: Printer | None, job: PrintJob, printer_status: PrinterStatus) -> None:
    if printer is None:
        return
    if printer.current_job_id == job.id:
        printer.current_job_id = None
    printer.status = printer_status.value
    printer.estimated_completion_at = None


def _resolve_release_status(printer_status: PrinterStatus | None) -> PrinterStatus:
    status = PrinterStatus(printer_status or PrinterStatus.ONLINE)
    if status is PrinterStatus.PRINTING:
        raise ValidationError('A printer cannot stay in the printing state once its job has ended.')
    return status


def _job_lock_keys(db: Session, job_id: int) -> tuple:
    # printer_id and user_id never change while a job is active.
    job = get_job(db, job_id)
    return printer_key(job.printer_id), job_key(job.id), user_key(job.user_id)


def submit_job(
    db: Session,
    actor: User,
    printer_id: int,
    file_name: str,
    file_size_bytes: int,
    notes: str | None = None,
) -> PrintJob:
    file_name, notes = validate_submission(file_name, file_size_bytes, notes)
    estimate = estimate_job(file_size_bytes)

    with transition_locks.hold(printer_key(printer_id), user_key(actor.id)):
        with atomic(db):
            printer = get_printer(db, printer_id, for_update=True)
            if PrinterStatus(printer.status) not in PRINTER_STATUSES_ACCEPTING_JOBS:
                logger.warning('User %s submitted to unavailable printer %s (%s)', actor.id, printer_id, printer.status)
                raise PrinterUnavailable(printer.id, printer.status)

            available = ledger.available_balance(db, actor.id)
            if available < estimate.credit_cost:
                logger.warning(
                    'User %s lacks credits for %s: need %s, available %s',
                    actor.id,
                    file_name,
                    estimate.credit_cost,
                    available,
                )
                raise InsufficientCredits(required=estimate.credit_cost, available=available)

            job = PrintJob(
                user_id=actor.id,
                printer_id=printer.id,
                file_name=file_name,
                file_size_bytes=file_size_bytes,
                status=JobStatus.PENDING.value,
                priority=config.DEFAULT_JOB_PRIORITY,
                credit_cost=estimate.credit_cost,
                estimated_duration=estimate.duration_minutes,
                notes=notes,
            )
            db.add(job)
            db.flush()

    logger.info(
        'User %s submitted job %s (%s) to printer %s for %s credits',
        actor.id,
        job.id,
        file_name,
        printer_id,
        estimate.credit_cost,
    )
    return job


def approve_job(db: Session, actor: User, job_id: int) -> PrintJob:
    require_admin(actor, 'Only admins can approve print jobs.')

    with transition_locks.hold(*_job_lock_keys(db, job_id)):
        with atomic(db):
            job = get_job(db, job_id, for_update=True)
            _move(job, JobStatus.APPROVED)
            job.approved_by = actor.id

    logger.info('Admin %s approved job %s', actor.id, job_id)
    return job


def start_job(db: Session, actor: User, job_id: int) -> PrintJob:
    require_admin(actor, 'Only admins can start print jobs.')

    with transition_locks.hold(*_job_lock_keys(db, job_id)):
        with atomic(db):
            job = get_job(db, job_id, for_update=True)
            _move(job, JobStatus.PRINTING)

            printer = get_printer(db, job.printer_id, for_update=True)
            if printer.status != PrinterStatus.ONLINE.value:
                raise PrinterUnavailable(
                    printer.id,
                    printer.status,
                    message=f'Printer {printer.id} is {printer.status}; only an online printer can start a job.',
                )

            already_printing = db.query(PrintJob.id).filter(
                PrintJob.printer_id == printer.id,
                PrintJob.status == JobStatus.PRINTING.value,
                PrintJob.id != job.id,
            ).first()
            if already_printing:
                raise Conflict(
                    f'Printer {printer.id} is already printing job {already_printing.id}.',
                    details={'printer_id': printer.id, 'current_job_id': already_printing.id},
                )

            started_at = utcnow()
            job.started_at = started_at
            printer.status = PrinterStatus.PRINTING.value
            printer.current_job_id = job.id
            printer.estimated_completion_at = started_at + timedelta(
                minutes=print_queue.job_duration_minutes(job)
            )

    logger.info('Admin %s started job %s on printer %s', actor.id, job_id, job.printer_id)
    return job


def complete_job(
    db: Session,
    actor: User,
    job_id: int,
    printer_status: PrinterStatus | None = None,
) -> PrintJob:
    require_admin(actor, 'Only admins can complete print jobs.')
    release_status = _resolve_release_status(printer_status)

    with transition_locks.hold(*_job_lock_keys(db, job_id)):
        with atomic(db):
            job = get_job(db, job_id, for_update=True)
            _move(job, JobStatus.COMPLETED)
            job.completed_at = job.updated_at

            ledger.record(
                db,
                job.user_id,
                -job.credit_cost,
                TransactionType.PRINT_JOB,
                f'Print job: {job.file_name}',
                print_job_id=job.id,
            )

            printer = get_printer(db, job.printer_id, for_update=True) if job.printer_id else None
            _release_printer(printer, job, release_status)

    logger.info('Admin %s completed job %s; debited %s credits from user %s', actor.id, job_id, job.credit_cost, job.user_id)
    return job


def fail_job(
    db: Session,
    actor: User,
    job_id: int,
    printer_status: PrinterStatus | None = None,
) -> PrintJob:
    require_admin(actor, 'Only admins can mark print jobs as failed.')
    release_status = _resolve_release_status(printer_status)

    with transition_locks.hold(*_job_lock_keys(db, job_id)):
        with atomic(db):
            job = get_job(db, job_id, for_update=True)
            _move(job, JobStatus.FAILED)
            job.completed_at = job.updated_at

            printer = get_printer(db, job.printer_id, for_update=True) if job.printer_id else None
            _release_printer(printer, job, release_status)

    logger.info('Admin %s marked job %s as failed; released hold of %s credits', actor.id, job_id, job.credit_cost)
    return job


def cancel_job(db: Session, actor: User, job_id: int) -> PrintJob:
    with transition_locks.hold(*_job_lock_keys(db, job_id)):
        with atomic(db):
            job = get_job(db, job_id, for_update=True)
            require_owner_or_admin(actor, job.user_id, 'Only the owner or an admin can cancel this print job.')
            _move(job, JobStatus.CANCELLED)
            job.cancelled_by = actor.id

    logger.info('User %s cancelled job %s', actor.id, job_id)
    return job


def set_job_priority(db: Session, actor: User, job_id: int, priority: int) -> PrintJob:
    require_admin(actor, 'Only admins can change job priority.')

    if not config.MIN_JOB_PRIORITY <= priority <= config.MAX_JOB_PRIORITY:
        raise ValidationError(
            f'Priority must be between {config.MIN_JOB_PRIORITY} and {config.MAX_JOB_PRIORITY}.'
        )

    with transition_locks.hold(*_job_lock_keys(db, job_id)):
        with atomic(db):
            job = get_job(db, job_id, for_update=True)
            if job.job_status not in (JobStatus.PENDING, JobStatus.APPROVED):
                raise InvalidState(job.id, job.status, 'reprioritized')
            job.priority = priority
            job.updated_at = utcnow()

    logger.info('Admin %s set priority of job %s to %s', actor.id, job_id, priority)
    return job


def annotate_job(db: Session, actor: User, job_id: int, note: str) -> PrintJob:
    require_admin(actor, 'Only admins can add audit notes.')

    normalized_note = (note or '').strip()
    if not normalized_note:
        raise ValidationError('Note must not be empty.')
    if len(normalized_note) > config.MAX_JOB_NOTES_LENGTH:
        raise ValidationError(f'Notes must be {config.MAX_JOB_NOTES_LENGTH} characters or fewer.')

    with transition_locks.hold(job_key(job_id)):
        with atomic(db):
            job = get_job(db, job_id, for_update=True)
            stamped_note = f'[{utcnow():%Y-%m-%d %H:%M}] admin {actor.id}: {normalized_note}'
            job.admin_notes = f'{job.admin_notes}\n{stamped_note}' if job.admin_notes else stamped_note

    return job


def list_user_jobs(db: Session, user_id: int) -> dict:
    ledger.get_user(db, user_id)
    jobs = db.query(PrintJob).filter(PrintJob.user_id == user_id).order_by(
        PrintJob.created_at.desc(),
        PrintJob.id.desc(),
    ).all()

    active = [job for job in jobs if job.job_status in ACTIVE_JOB_STATUSES]
    completed = [job for job in jobs if job.job_status is JobStatus.COMPLETED]
    other = [job for job in jobs if job.job_status in (JobStatus.FAILED, JobStatus.CANCELLED)]

    return {
        'active': active,
        'completed': completed,
        'other': other,
        'stats': {
            'total_jobs': len(jobs),
            'active_jobs': len(active),
            'completed_jobs': len(completed),
            'credits_spent': sum(job.credit_cost for job in completed),
        },
    }


def list_all_jobs(db: Session, actor: User, status: JobStatus | None = None) -> list[PrintJob]:
    require_admin(actor, 'Only admins can view all print jobs.')

    query = db.query(PrintJob)
    if status is not None:
        query = query.filter(PrintJob.status == JobStatus(status).value)

    return query.order_by(PrintJob.created_at.desc(), PrintJob.id.desc()).all()


def dashboard_stats(db: Session, actor: User) -> dict:
    require_admin(actor, 'Only admins can view print center statistics.')

    def count(model, *criteria):
        query = select(func.count()).select_from(model)
        if criteria:
            query = query.where(*criteria)
        return query.scalar_subquery()

    # One statement, so the figures describe a single moment.
    row = db.execute(
        select(
            count(Printer).label('total_printers'),
            count(Printer, Printer.status == PrinterStatus.ONLINE.value).label('online_printers'),
            count(PrintJob, PrintJob.status == JobStatus.PRINTING.value).label('active_prints'),
            count(PrintJob, PrintJob.status == JobStatus.PENDING.value).label('pending_jobs'),
            count(User).label('total_users'),
            count(User, User.role == UserRole.STUDENT.value).label('student_users'),
        )
    ).one()
    return {name: int(value) for name, value in row._mapping.items()}
