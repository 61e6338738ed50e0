import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session, aliased

from backend.auth.permissions import require_admin
from backend.core.exceptions import Conflict, NotFound, ValidationError
from backend.core.locks import printer_key, transition_locks
from backend.database import atomic
from backend.models.enums import JobStatus, PrinterStatus
from backend.models.print_job import PrintJob
from backend.models.printer import Printer
from backend.models.user import User
from backend.services import print_queue

logger = logging.getLogger(__name__)

EDITABLE_PRINTER_FIELDS = ('name', 'brand', 'location', 'description')


def _clean_required(value: str | None, field_name: str) -> str:
    normalized = (value or '').strip()
    if not normalized:
        raise ValidationError(f'Printer {field_name} is required.')
    return normalized


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def get_printer(db: Session, printer_id: int, for_update: bool = False) -> Printer:
    query = db.query(Printer).filter(Printer.id == printer_id)
    if for_update:
        query = query.with_for_update().populate_existing()

    printer = query.first()
    if printer is None:
        raise NotFound(f'Printer {printer_id} not found.')
    return printer


@dataclass(frozen=True)
class PrinterOverview:
    printer: Printer
    queue_length: int
    current_job: PrintJob | None


def _overview_query(db: Session):
    """
    Printers with their active job count and current job, read in one statement.

    Status, current job and queue length come from the same SELECT, so a
    transition committing mid-read cannot show a job as finished in the count
    while it still occupies the printer.
    """
    active_counts = (
        select(PrintJob.printer_id, func.count(PrintJob.id).label('queue_length'))
        .where(PrintJob.status.in_(print_queue.ACTIVE_STATUS_VALUES))
        .group_by(PrintJob.printer_id)
        .subquery()
    )
    running_job = aliased(PrintJob)

    return (
        db.query(Printer, func.coalesce(active_counts.c.queue_length, 0), running_job)
        .outerjoin(active_counts, active_counts.c.printer_id == Printer.id)
        .outerjoin(running_job, running_job.id == Printer.current_job_id)
        .populate_existing()
    )


def list_printers(db: Session) -> list[PrinterOverview]:
    rows = _overview_query(db).order_by(Printer.brand.asc(), Printer.name.asc(), Printer.id.asc()).all()
    return [
        PrinterOverview(printer=printer, queue_length=int(queue_length), current_job=running_job)
        for printer, queue_length, running_job in rows
    ]


def describe_printer(db: Session, printer_id: int) -> PrinterOverview:
    row = _overview_query(db).filter(Printer.id == printer_id).first()
    if row is None:
        raise NotFound(f'Printer {printer_id} not found.')

    printer, queue_length, running_job = row
    return PrinterOverview(printer=printer, queue_length=int(queue_length), current_job=running_job)


def create_printer(
    db: Session,
    actor: User,
    name: str,
    brand: str,
    location: str | None = None,
    description: str | None = None,
    status: PrinterStatus = PrinterStatus.ONLINE,
) -> Printer:
    require_admin(actor, 'Only admins can add printers.')

    status = PrinterStatus(status)
    if status is PrinterStatus.PRINTING:
        raise ValidationError('A new printer cannot start in the printing state.')

    printer = Printer(
        name=_clean_required(name, 'name'),
        brand=_clean_required(brand, 'brand'),
        location=_clean_optional(location),
        description=_clean_optional(description),
        status=status.value,
    )

    with atomic(db):
        db.add(printer)
        db.flush()

    logger.info('Admin %s created printer %s (%s)', actor.id, printer.id, printer.name)
    return printer


def update_printer(db: Session, actor: User, printer_id: int, patch: dict) -> Printer:
    require_admin(actor, 'Only admins can edit printers.')

    unknown_fields = set(patch) - set(EDITABLE_PRINTER_FIELDS)
    if unknown_fields:
        raise ValidationError(f'Cannot edit printer fields: {", ".join(sorted(unknown_fields))}.')

    with transition_locks.hold(printer_key(printer_id)):
        with atomic(db):
            printer = get_printer(db, printer_id, for_update=True)

            for field_name, value in patch.items():
                if field_name in ('name', 'brand'):
                    value = _clean_required(value, field_name)
                else:
                    value = _clean_optional(value)
                setattr(printer, field_name, value)

    logger.info('Admin %s updated printer %s: %s', actor.id, printer_id, sorted(patch))
    return printer


def delete_printer(db: Session, actor: User, printer_id: int) -> None:
    require_admin(actor, 'Only admins can delete printers.')

    with transition_locks.hold(printer_key(printer_id)):
        with atomic(db):
            printer = get_printer(db, printer_id, for_update=True)

            active_jobs = print_queue.queue_length(db, printer_id)
            if active_jobs:
                logger.warning('Refused to delete printer %s with %s active jobs', printer_id, active_jobs)
                raise Conflict(
                    f'Printer {printer_id} still has {active_jobs} active print jobs.',
                    details={'printer_id': printer_id, 'active_jobs': active_jobs},
                )

            # Finished jobs keep their history without the printer reference.
            db.query(PrintJob).filter(PrintJob.printer_id == printer_id).update(
                {PrintJob.printer_id: None},
                synchronize_session=False,
            )
            db.delete(printer)

    logger.info('Admin %s deleted printer %s', actor.id, printer_id)


def set_printer_status(db: Session, actor: User, printer_id: int, status: PrinterStatus) -> Printer:
    require_admin(actor, 'Only admins can change printer status.')

    status = PrinterStatus(status)
    if status is PrinterStatus.PRINTING:
        raise ValidationError('Printers enter the printing state only by starting a job.')

    with transition_locks.hold(printer_key(printer_id)):
        with atomic(db):
            printer = get_printer(db, printer_id, for_update=True)

            if printer.current_job_id is not None:
                raise Conflict(
                    f'Printer {printer_id} is printing job {printer.current_job_id}; '
                    'complete or fail that job first.',
                    details={'printer_id': printer_id, 'current_job_id': printer.current_job_id},
                )

            previous_status = printer.status
            printer.status = status.value
            printer.estimated_completion_at = None

    logger.info('Admin %s moved printer %s from %s to %s', actor.id, printer_id, previous_status, status.value)
    return printer


def printer_stats(db: Session, printer_id: int) -> dict:
    get_printer(db, printer_id)
    jobs = db.query(PrintJob).filter(PrintJob.printer_id == printer_id).all()
    completed_jobs = [job for job in jobs if job.status == JobStatus.COMPLETED.value]
    total_print_time = sum(job.estimated_duration or 0 for job in completed_jobs)

    return {
        'printer_id': printer_id,
        'total_jobs': len(jobs),
        'completed_jobs': len(completed_jobs),
        'total_print_minutes': total_print_time,
        'average_duration_minutes': round(total_print_time / len(completed_jobs)) if completed_jobs else 0,
        'success_rate': round(len(completed_jobs) / len(jobs) * 100) if jobs else 0,
    }
