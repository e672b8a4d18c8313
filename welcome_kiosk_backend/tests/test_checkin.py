import threading

import pytest
from sqlalchemy.exc import OperationalError

from conftest import FakeNotifier, add_employee
from kiosk.checkin import CheckInWorkflow, Guest, GuestForm, check_in_preregistered
from kiosk.errors import (
    CheckInBusyError,
    EmployeeNotFound,
    PreregistrationAlreadyCheckedIn,
    StoreError,
    ValidationFailed,
)
from kiosk.models import VisitorLog
from kiosk.repositories import EmployeeRepository, PreregistrationRepository, VisitorLogRepository
from kiosk.schemas import CheckInOutcome, CheckInPayload, PreregistrationCreate


def form_for(employee, *names, company="Acme"):
    return GuestForm(selected_employee=employee, company_name=company, guests=[Guest(name=n) for n in names])


class TestGuestForm:
    def test_starts_with_one_blank_guest_and_disabled(self):
        form = GuestForm()
        assert len(form.guests) == 1
        assert not form.is_check_in_enabled

    def test_enabled_needs_employee_and_every_guest_name(self, sam):
        form = GuestForm(selected_employee=sam)
        assert not form.is_check_in_enabled

        form.on_guest_name_change(form.guests[0].id, "Ana Lee")
        assert form.is_check_in_enabled

        extra = form.add_guest()
        assert not form.is_check_in_enabled
        form.on_guest_name_change(extra.id, "   ")
        assert not form.is_check_in_enabled
        form.on_guest_name_change(extra.id, "Bo Chen")
        assert form.is_check_in_enabled

    def test_blank_company_is_allowed(self, sam):
        form = form_for(sam, "Ana Lee", company="")
        assert form.is_check_in_enabled

    def test_no_employee_disables(self):
        assert not form_for(None, "Ana Lee").is_check_in_enabled

    def test_last_guest_cannot_be_removed(self):
        form = GuestForm()
        only = form.guests[0]
        form.remove_guest(only.id)
        assert form.guests == [only]

        extra = form.add_guest()
        form.remove_guest(only.id)
        assert form.guests == [extra]


class TestCheckInWorkflow:
    def test_scenario_records_visit_and_notifies_host(self, db, sam):
        notifier = FakeNotifier()
        result = CheckInWorkflow(VisitorLogRepository(db), notifier).check_in(form_for(sam, "Ana Lee"))

        assert result.outcome is CheckInOutcome.SUCCESS
        assert result.warning is None
        logs = db.query(VisitorLog).all()
        assert len(logs) == 1
        log = logs[0]
        assert log.visitor_name == "Ana Lee"
        assert log.company_name == "Acme"
        assert log.employee_visited_id == "e1"
        assert log.employee_visited_name == "Sam Jones"
        assert log.has_checked_out is False
        assert log.check_out_time is None
        assert [r.employee_email for r in notifier.requests] == ["sam@x.com"]

    def test_notification_payload(self, db, sam):
        notifier = FakeNotifier()
        CheckInWorkflow(VisitorLogRepository(db), notifier).check_in(form_for(sam, "Ana Lee", " Bo Chen "))

        request = notifier.requests[0]
        assert request.model_dump(by_alias=True) == {
            "employeeEmail": "sam@x.com",
            "visitorCompany": "Acme",
            "visitorNames": ["Ana Lee", "Bo Chen"],
        }

    def test_several_guests_share_one_log(self, db, sam):
        CheckInWorkflow(VisitorLogRepository(db), FakeNotifier()).check_in(form_for(sam, "Ana Lee", "Bo Chen"))
        assert [log.visitor_name for log in db.query(VisitorLog)] == ["Ana Lee, Bo Chen"]

    def test_failed_notification_still_records_visit(self, db, sam):
        result = CheckInWorkflow(VisitorLogRepository(db), FakeNotifier(succeed=False)).check_in(
            form_for(sam, "Ana Lee"))

        assert result.outcome is CheckInOutcome.NOTIFICATION_FAILED
        assert result.warning
        assert db.query(VisitorLog).count() == 1

    def test_invalid_form_makes_no_calls(self, db, sam):
        notifier = FakeNotifier()
        with pytest.raises(ValidationFailed) as excinfo:
            CheckInWorkflow(VisitorLogRepository(db), notifier).check_in(form_for(sam, "Ana Lee", ""))

        assert "guests[1]" in excinfo.value.errors
        assert notifier.requests == []
        assert db.query(VisitorLog).count() == 0

    def test_store_failure_skips_notification(self, db, sam, monkeypatch):
        notifier = FakeNotifier()

        def fail_commit():
            raise OperationalError("INSERT", {}, Exception("database is down"))

        monkeypatch.setattr(db, "commit", fail_commit)
        form = form_for(sam, "Ana Lee")
        with pytest.raises(StoreError):
            CheckInWorkflow(VisitorLogRepository(db), notifier).check_in(form)

        assert notifier.requests == []
        assert form.guest_names == ["Ana Lee"]

    def test_second_check_in_while_busy_is_rejected(self, db, sam):
        entered = threading.Event()
        release = threading.Event()

        class SlowNotifier(FakeNotifier):
            def send_check_in_notification(self, request):
                entered.set()
                release.wait(5)
                return super().send_check_in_notification(request)

        workflow = CheckInWorkflow(VisitorLogRepository(db), SlowNotifier())
        worker = threading.Thread(target=workflow.check_in, args=(form_for(sam, "Ana Lee"),))
        worker.start()
        try:
            assert entered.wait(5)
            assert workflow.is_busy
            with pytest.raises(CheckInBusyError):
                workflow.check_in(form_for(sam, "Ana Lee"))
        finally:
            release.set()
            worker.join(5)
        assert not workflow.is_busy


class TestPreregisteredCheckIn:
    def test_checks_in_and_marks_done(self, db, sam):
        preregistrations = PreregistrationRepository(db)
        prereg = preregistrations.add(PreregistrationCreate(
            visitor_name="Ana Lee", visitor_company="Acme", employee_to_see_id=sam.id))
        notifier = FakeNotifier()

        result = check_in_preregistered(CheckInWorkflow(VisitorLogRepository(db), notifier),
                                        EmployeeRepository(db), preregistrations, prereg.id)

        assert result.visitor_log.visitor_name == "Ana Lee"
        assert result.visitor_log.company_name == "Acme"
        assert notifier.requests[0].visitor_names == ["Ana Lee"]
        assert preregistrations.list_pending() == []

    def test_missing_employee(self, db):
        employee = add_employee(db, first_name="Gone", last_name="Away", email="gone@x.com")
        preregistrations = PreregistrationRepository(db)
        prereg = preregistrations.add(PreregistrationCreate(visitor_name="Ana", employee_to_see_id=employee.id))
        EmployeeRepository(db).delete(employee.id)

        with pytest.raises(EmployeeNotFound):
            check_in_preregistered(CheckInWorkflow(VisitorLogRepository(db), FakeNotifier()),
                                   EmployeeRepository(db), preregistrations, prereg.id)
        assert [p.id for p in preregistrations.list_pending()] == [prereg.id]

    def test_second_check_in_is_rejected(self, db, sam):
        preregistrations = PreregistrationRepository(db)
        prereg = preregistrations.add(PreregistrationCreate(visitor_name="Ana Lee", employee_to_see_id=sam.id))
        notifier = FakeNotifier()
        workflow = CheckInWorkflow(VisitorLogRepository(db), notifier)

        check_in_preregistered(workflow, EmployeeRepository(db), preregistrations, prereg.id)
        with pytest.raises(PreregistrationAlreadyCheckedIn):
            check_in_preregistered(workflow, EmployeeRepository(db), preregistrations, prereg.id)

        assert db.query(VisitorLog).count() == 1
        assert len(notifier.requests) == 1

    def test_claimed_elsewhere_before_the_write(self, db, sam, monkeypatch):
        preregistrations = PreregistrationRepository(db)
        prereg = preregistrations.add(PreregistrationCreate(visitor_name="Ana Lee", employee_to_see_id=sam.id))
        VisitorLogRepository(db).add("Ana Lee", sam.id, "Sam Jones", preregistration_id=prereg.id)
        pending_view = prereg.model_copy(update={"status": "pending"})
        monkeypatch.setattr(preregistrations, "get", lambda preregistration_id: pending_view)
        notifier = FakeNotifier()

        with pytest.raises(PreregistrationAlreadyCheckedIn):
            check_in_preregistered(CheckInWorkflow(VisitorLogRepository(db), notifier),
                                   EmployeeRepository(db), preregistrations, prereg.id)

        assert db.query(VisitorLog).count() == 1
        assert notifier.requests == []


class TestInactiveHost:
    def test_form_rejects_inactive_employee(self, db):
        employee = add_employee(db, first_name="Old", last_name="Timer", email="old@x.com", is_active=False)

        with pytest.raises(ValidationFailed) as error:
            GuestForm.from_payload(CheckInPayload(employee_id=employee.id, guest_names=["Ana Lee"]),
                                   EmployeeRepository(db))
        assert "employee" in error.value.errors

    def test_preregistration_for_inactive_employee_stays_pending(self, db):
        employee = add_employee(db, first_name="Old", last_name="Timer", email="old@x.com", is_active=False)
        preregistrations = PreregistrationRepository(db)
        prereg = preregistrations.add(PreregistrationCreate(visitor_name="Ana", employee_to_see_id=employee.id))
        notifier = FakeNotifier()

        with pytest.raises(ValidationFailed):
            check_in_preregistered(CheckInWorkflow(VisitorLogRepository(db), notifier),
                                   EmployeeRepository(db), preregistrations, prereg.id)
        assert [p.id for p in preregistrations.list_pending()] == [prereg.id]
        assert notifier.requests == []
