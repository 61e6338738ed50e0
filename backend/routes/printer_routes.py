from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.database import ensure_print_job_schema, ensure_printer_schema, get_db
from backend.models.enums import PrinterStatus
from backend.models.user import User
from backend.services import print_queue, printer_registry

router = APIRouter(tags=['printers'])


class CreatePrinterRequest(BaseModel):
    name: str
    brand: str
    location: str | None = None
    description: str | None = None
    status: PrinterStatus = PrinterStatus.ONLINE

    @field_validator('name', 'brand')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized


class UpdatePrinterRequest(BaseModel):
    name: str | None = None
    brand: str | None = None
    location: str | None = None
    description: str | None = None


class PrinterStatusRequest(BaseModel):
    status: PrinterStatus


class CurrentJobResponse(BaseModel):
    id: int
    file_name: str
    user_id: int
    started_at: datetime | None = None

    class Config:
        from_attributes = True


class PrinterResponse(BaseModel):
    id: int
    name: str
    brand: str
    status: str
    location: str | None = None
    description: str | None = None
    current_job_id: int | None = None
    estimated_completion_at: datetime | None = None
    queue_length: int = 0
    current_job: CurrentJobResponse | None = None

    class Config:
        from_attributes = True


class QueueEntryResponse(BaseModel):
    position: int
    job_id: int
    user_id: int
    file_name: str
    status: str
    priority: int
    estimated_duration: int | None = None
    wait_minutes: int
    created_at: datetime


class PrinterQueueResponse(BaseModel):
    printer_id: int
    jobs: list[QueueEntryResponse]
    estimated_wait_minutes: int


class PrinterStatsResponse(BaseModel):
    printer_id: int
    total_jobs: int
    completed_jobs: int
    total_print_minutes: int
    average_duration_minutes: int
    success_rate: int


def ensure_database_ready() -> None:
    try:
        ensure_printer_schema()
        ensure_print_job_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL.',
        ) from exc


def build_printer_response(overview: printer_registry.PrinterOverview) -> PrinterResponse:
    response = PrinterResponse.model_validate(overview.printer)
    response.queue_length = overview.queue_length
    if overview.current_job is not None:
        response.current_job = CurrentJobResponse.model_validate(overview.current_job)
    return response


@router.get('', response_model=list[PrinterResponse])
def list_printers(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return [build_printer_response(overview) for overview in printer_registry.list_printers(db)]


@router.post('', response_model=PrinterResponse, status_code=status.HTTP_201_CREATED)
def create_printer(
    data: CreatePrinterRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    printer = printer_registry.create_printer(
        db,
        current_user,
        name=data.name,
        brand=data.brand,
        location=data.location,
        description=data.description,
        status=data.status,
    )
    return build_printer_response(printer_registry.describe_printer(db, printer.id))


@router.patch('/{printer_id}', response_model=PrinterResponse)
def update_printer(
    printer_id: int,
    data: UpdatePrinterRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    printer = printer_registry.update_printer(
        db,
        current_user,
        printer_id,
        data.model_dump(exclude_unset=True),
    )
    return build_printer_response(printer_registry.describe_printer(db, printer.id))


@router.delete('/{printer_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_printer(
    printer_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    printer_registry.delete_printer(db, current_user, printer_id)


@router.put('/{printer_id}/status', response_model=PrinterResponse)
def set_printer_status(
    printer_id: int,
    data: PrinterStatusRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    printer = printer_registry.set_printer_status(db, current_user, printer_id, data.status)
    return build_printer_response(printer_registry.describe_printer(db, printer.id))


@router.get('/{printer_id}/queue', response_model=PrinterQueueResponse)
def get_printer_queue(
    printer_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    printer_registry.get_printer(db, printer_id)
    entries, total_wait = print_queue.queue_snapshot(db, printer_id)

    return PrinterQueueResponse(
        printer_id=printer_id,
        jobs=[
            QueueEntryResponse(
                position=entry.position,
                job_id=entry.job.id,
                user_id=entry.job.user_id,
                file_name=entry.job.file_name,
                status=entry.job.status,
                priority=entry.job.priority,
                estimated_duration=entry.job.estimated_duration,
                wait_minutes=entry.wait_minutes,
                created_at=entry.job.created_at,
            )
            for entry in entries
        ],
        estimated_wait_minutes=total_wait,
    )


@router.get('/{printer_id}/stats', response_model=PrinterStatsResponse)
def get_printer_stats(
    printer_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return PrinterStatsResponse(**printer_registry.printer_stats(db, printer_id))
