"""
Guest check-in.

GuestForm holds what the guest has typed so far and decides whether the
check-in button is enabled. CheckInWorkflow turns a complete form into a
VisitorLog and emails the host. The visit is always recorded once the form is
valid; the email is best-effort and its failure comes back as a warning.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import CheckInBusyError, EmployeeNotFound, PreregistrationAlreadyCheckedIn, ValidationFailed
from .repositories import EmployeeRepository, PreregistrationRepository, VisitorLogRepository
from .schemas import CheckInOutcome, CheckInPayload, CheckInRequest, EmployeeOut, VisitorLogOut

logger = logging.getLogger(__name__)

NOTIFICATION_WARNING = "Your visit was recorded, but we could not notify your host. Please let reception know you are here."


@dataclass
class Guest:
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    name: str = ""


# PUBLIC_INTERFACE
def host_for(employees: EmployeeRepository, employee_id: str) -> EmployeeOut:
    """
    The employee a guest may check in to see: it must exist and be active,
    the same set the kiosk directory shows.
    """
    employee = employees.get(employee_id)
    if employee is None:
        raise EmployeeNotFound(employee_id)
    if not employee.is_active:
        raise ValidationFailed({"employee": "This person is no longer available. Please choose someone else."})
    return employee


# PUBLIC_INTERFACE
@dataclass
class GuestForm:
    """
    Ephemeral state of the guest details form.
    There is always at least one guest entry.
    """
    selected_employee: Optional[EmployeeOut] = None
    company_name: str = ""
    guests: List[Guest] = field(default_factory=lambda: [Guest()])

    @property
    def guest_names(self) -> List[str]:
        return [guest.name.strip() for guest in self.guests]

    @property
    def is_check_in_enabled(self) -> bool:
        return (
            self.selected_employee is not None
            and len(self.guests) > 0
            and all(guest.name.strip() for guest in self.guests)
        )

    def errors(self) -> Dict[str, str]:
        errors = {}
        if self.selected_employee is None:
            errors["employee"] = "Select the person you are visiting."
        if not self.guests:
            errors["guests"] = "Enter at least one guest name."
        for index, guest in enumerate(self.guests):
            if not guest.name.strip():
                errors[f"guests[{index}]"] = "Guest name cannot be blank."
        return errors

    def on_company_change(self, name: str):
        self.company_name = name

    def on_guest_name_change(self, guest_id: str, name: str):
        for guest in self.guests:
            if guest.id == guest_id:
                guest.name = name

    def add_guest(self) -> Guest:
        guest = Guest()
        self.guests.append(guest)
        return guest

    def remove_guest(self, guest_id: str):
        if len(self.guests) > 1:
            self.guests = [guest for guest in self.guests if guest.id != guest_id]

    @classmethod
    def from_payload(cls, payload: CheckInPayload, employees: EmployeeRepository) -> "GuestForm":
        """Builds a form from a submitted payload; the employee must exist and be active."""
        return cls(
            selected_employee=host_for(employees, payload.employee_id),
            company_name=payload.company_name,
            guests=[Guest(name=name) for name in payload.guest_names],
        )


@dataclass
class CheckInResult:
    outcome: CheckInOutcome
    visitor_log: VisitorLogOut
    warning: Optional[str] = None


# PUBLIC_INTERFACE
class CheckInWorkflow:
    """
    Records a visit and notifies the host.

    Only one check-in runs at a time per guard; pass a shared lock to
    protect a kiosk against double taps across requests.
    """

    def __init__(self, visitor_logs: VisitorLogRepository, notifier, guard: Optional[threading.Lock] = None):
        self.visitor_logs = visitor_logs
        self.notifier = notifier
        self._guard = guard or threading.Lock()

    @property
    def is_busy(self) -> bool:
        return self._guard.locked()

    def check_in(self, form: GuestForm, preregistration_id: Optional[str] = None) -> CheckInResult:
        """
        Raises ValidationFailed for an incomplete form, CheckInBusyError when a
        check-in is already running and StoreError when the visit could not be
        recorded (nothing is sent in that case). A preregistration_id is marked
        checked in together with the new log.
        """
        if not form.is_check_in_enabled:
            raise ValidationFailed(form.errors())
        if not self._guard.acquire(blocking=False):
            raise CheckInBusyError("A check-in is already in progress.")
        try:
            return self._check_in(form, preregistration_id)
        finally:
            self._guard.release()

    def _check_in(self, form: GuestForm, preregistration_id: Optional[str]) -> CheckInResult:
        employee = form.selected_employee
        request = CheckInRequest(
            employee_email=employee.email,
            visitor_company=form.company_name,
            visitor_names=form.guest_names,
        )

        log = self.visitor_logs.add(
            visitor_name=", ".join(request.visitor_names),
            employee_id=employee.id,
            employee_name=employee.display_name,
            company_name=form.company_name.strip() or None,
            preregistration_id=preregistration_id,
        )
        logger.info("Checked in %s to see %s (log %s)", log.visitor_name, employee.id, log.id)

        if self.notifier.send_check_in_notification(request):
            return CheckInResult(CheckInOutcome.SUCCESS, log)
        logger.warning("Visit %s recorded but host %s was not notified", log.id, employee.id)
        return CheckInResult(CheckInOutcome.NOTIFICATION_FAILED, log, NOTIFICATION_WARNING)


# PUBLIC_INTERFACE
def check_in_preregistered(workflow: CheckInWorkflow, employees: EmployeeRepository,
                           preregistrations: PreregistrationRepository, preregistration_id: str) -> CheckInResult:
    """
    Checks in a pending preregistered guest and marks the preregistration done.
    A guest who is already checked in raises PreregistrationAlreadyCheckedIn
    and the host is not emailed again.
    """
    prereg = preregistrations.get(preregistration_id)
    if prereg.status != "pending":
        raise PreregistrationAlreadyCheckedIn(preregistration_id)

    form = GuestForm(
        selected_employee=host_for(employees, prereg.employee_to_see_id),
        company_name=prereg.visitor_company or "",
        guests=[Guest(name=prereg.visitor_name)],
    )
    return workflow.check_in(form, preregistration_id=preregistration_id)
