"""
Exceptions raised by the kiosk workflows.
The HTTP layer maps each family to a status code in main.py.
"""

from typing import Dict, Optional


class KioskError(Exception):
    """Base class for all kiosk errors."""


class ValidationFailed(KioskError):
    """Input rejected before any store or network call."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in errors.items()))


class NotFound(KioskError):
    """Referenced record does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class EmployeeNotFound(NotFound):
    def __init__(self, employee_id: str):
        super().__init__("Employee", employee_id)


class VisitorLogNotFound(NotFound):
    def __init__(self, log_id: str):
        super().__init__("Visitor log", log_id)


class PreregistrationNotFound(NotFound):
    def __init__(self, preregistration_id: str):
        super().__init__("Preregistration", preregistration_id)


class StoreError(KioskError):
    """The database could not be reached or rejected the write. Retryable."""


class Conflict(KioskError):
    """The request clashes with work that already happened or is running."""


class CheckInBusyError(Conflict):
    """A check-in is already in flight for this kiosk."""


class PreregistrationAlreadyCheckedIn(Conflict):
    def __init__(self, preregistration_id: str):
        self.preregistration_id = preregistration_id
        super().__init__(f"Preregistration {preregistration_id} is already checked in")


class AuthError(KioskError):
    """Raised when an authorization token cannot be produced."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(message)
