from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.auth.permissions import require_owner_or_admin
from backend.core import config
from backend.database import ensure_print_job_schema, ensure_printer_schema, get_db
from backend.models.enums import JobStatus, PrinterStatus
from backend.models.user import User
from backend.services import job_lifecycle, print_queue

router = APIRouter(tags=['jobs'])


class SubmitJobRequest(BaseModel):
    printer_id: int
    file_name: str
    file_size_bytes: int
    notes: str | None = None

    @field_validator('file_name')
    @classmethod
    def validate_file_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('File name is required.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_JOB_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_JOB_NOTES_LENGTH} characters or fewer.')

        return normalized


class FinishJobRequest(BaseModel):
    printer_status: PrinterStatus = PrinterStatus.ONLINE


class JobPriorityRequest(BaseModel):
    priority: int = Field(ge=config.MIN_JOB_PRIORITY, le=config.MAX_JOB_PRIORITY)


class JobNoteRequest(BaseModel):
    note: str


class EstimateResponse(BaseModel):
    credit_cost: int
    duration_minutes: int


class PrintJobResponse(BaseModel):
    id: int
    user_id: int
    printer_id: int | None = None
    file_name: str
    file_size_bytes: int | None = None
    status: str
    priority: int
    credit_cost: int
    estimated_duration: int | None = None
    notes: str | None = None
    admin_notes: str | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    approved_by: int | None = None
    cancelled_by: int | None = None

    class Config:
        from_attributes = True


class UserJobStatsResponse(BaseModel):
    total_jobs: int
    active_jobs: int
    completed_jobs: int
    credits_spent: int


class UserJobsResponse(BaseModel):
    active: list[PrintJobResponse]
    completed: list[PrintJobResponse]
    other: list[PrintJobResponse]
    stats: UserJobStatsResponse


class QueuePositionResponse(BaseModel):
    job_id: int
    printer_id: int
    position: int
    estimated_wait_minutes: int


class DashboardStatsResponse(BaseModel):
    total_printers: int
    online_printers: int
    active_prints: int
    pending_jobs: int
    total_users: int
    student_users: int


def ensure_database_ready() -> None:
    try:
        ensure_printer_schema()
        ensure_print_job_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL.',
        ) from exc


@router.get('/estimate', response_model=EstimateResponse)
def estimate_job(file_size_bytes: int = Query(..., gt=0, le=config.MAX_UPLOAD_BYTES)):
    estimate = job_lifecycle.estimate_job(file_size_bytes)
    return EstimateResponse(credit_cost=estimate.credit_cost, duration_minutes=estimate.duration_minutes)


@router.post('', response_model=PrintJobResponse, status_code=status.HTTP_201_CREATED)
def submit_job(
    data: SubmitJobRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return job_lifecycle.submit_job(
        db,
        current_user,
        printer_id=data.printer_id,
        file_name=data.file_name,
        file_size_bytes=data.file_size_bytes,
        notes=data.notes,
    )


@router.get('/mine', response_model=UserJobsResponse)
def list_my_jobs(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return job_lifecycle.list_user_jobs(db, current_user.id)


@router.get('', response_model=list[PrintJobResponse])
def list_jobs(
    job_status: JobStatus | None = Query(default=None, alias='status'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return job_lifecycle.list_all_jobs(db, current_user, status=job_status)


@router.get('/stats', response_model=DashboardStatsResponse)
def get_dashboard_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return DashboardStatsResponse(**job_lifecycle.dashboard_stats(db, current_user))


@router.get('/{job_id}/position', response_model=QueuePositionResponse)
def get_queue_position(
    job_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    job = job_lifecycle.get_job(db, job_id)
    require_owner_or_admin(current_user, job.user_id, 'You can only view the queue position of your own print jobs.')

    entry = print_queue.locate(db, job_id)
    return QueuePositionResponse(
        job_id=entry.job.id,
        printer_id=entry.job.printer_id,
        position=entry.position,
        estimated_wait_minutes=entry.wait_minutes,
    )


@router.post('/{job_id}/approve', response_model=PrintJobResponse)
def approve_job(
    job_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return job_lifecycle.approve_job(db, current_user, job_id)


@router.post('/{job_id}/start', response_model=PrintJobResponse)
def start_job(
    job_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return job_lifecycle.start_job(db, current_user, job_id)


@router.post('/{job_id}/complete', response_model=PrintJobResponse)
def complete_job(
    job_id: int,
    data: FinishJobRequest | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    printer_status = data.printer_status if data else PrinterStatus.ONLINE
    return job_lifecycle.complete_job(db, current_user, job_id, printer_status=printer_status)


@router.post('/{job_id}/fail', response_model=PrintJobResponse)
def fail_job(
    job_id: int,
    data: FinishJobRequest | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    printer_status = data.printer_status if data else PrinterStatus.ONLINE
    return job_lifecycle.fail_job(db, current_user, job_id, printer_status=printer_status)


@router.post('/{job_id}/cancel', response_model=PrintJobResponse)
def cancel_job(
    job_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return job_lifecycle.cancel_job(db, current_user, job_id)


@router.put('/{job_id}/priority', response_model=PrintJobResponse)
def set_job_priority(
    job_id: int,
    data: JobPriorityRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return job_lifecycle.set_job_priority(db, current_user, job_id, data.priority)


@router.post('/{job_id}/notes', response_model=PrintJobResponse)
def annotate_job(
    job_id: int,
    data: JobNoteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return job_lifecycle.annotate_job(db, current_user, job_id, data.note)
