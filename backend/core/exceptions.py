"""
Typed failures raised by the print center services.

Exception Hierarchy:
    PrintCenterError (base)
    ├── ValidationError      - malformed input (400)
    ├── Forbidden            - role or ownership mismatch (403)
    ├── NotFound             - unknown id (404)
    ├── Conflict             - operation clashes with current data (409)
    ├── InvalidState         - illegal job lifecycle transition (409)
    ├── InsufficientCredits  - available balance too low (402)
    └── PrinterUnavailable   - printer is not accepting work (409)

Routes never catch these; the handler registered in backend.main renders
them as {"error": kind, "detail": message}.
"""

from typing import Any, Dict, Optional

from fastapi import status


class PrintCenterError(Exception):
    """Base exception for all print center errors."""

    kind = 'error'
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'error': self.kind, 'detail': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(PrintCenterError):
    kind = 'validation_error'
    status_code = status.HTTP_400_BAD_REQUEST


class Forbidden(PrintCenterError):
    kind = 'forbidden'
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(PrintCenterError):
    kind = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(PrintCenterError):
    kind = 'conflict'
    status_code = status.HTTP_409_CONFLICT


class InvalidState(PrintCenterError):
    """A job was asked to make a transition its current status does not allow."""

    kind = 'invalid_state'
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, job_id: int, current_status: str, target_status: str):
        message = f"Print job {job_id} cannot move from {current_status} to {target_status}."
        details = {
            'job_id': job_id,
            'current_status': current_status,
            'target_status': target_status,
        }
        super().__init__(message, details)
        self.job_id = job_id
        self.current_status = current_status
        self.target_status = target_status


class InsufficientCredits(PrintCenterError):
    """The user's available balance does not cover the requested amount."""

    kind = 'insufficient_credits'
    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, required: int, available: int, message: Optional[str] = None):
        message = message or f"Insufficient credits: need {required}, only {available} available."
        details = {'required': required, 'available': available}
        super().__init__(message, details)
        self.required = required
        self.available = available


class PrinterUnavailable(PrintCenterError):
    kind = 'printer_unavailable'
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, printer_id: int, printer_status: str, message: Optional[str] = None):
        message = message or f"Printer {printer_id} is {printer_status} and cannot take this job."
        details = {'printer_id': printer_id, 'printer_status': printer_status}
        super().__init__(message, details)
        self.printer_id = printer_id
        self.printer_status = printer_status
