"""
Data access for the kiosk collections.

Each repository wraps a Session for one-shot reads and writes (one
transaction per write), and offers LiveQuery factories for the standing
queries the screens subscribe to.
"""

import logging
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import (
    EmployeeNotFound,
    PreregistrationAlreadyCheckedIn,
    PreregistrationNotFound,
    StoreError,
    VisitorLogNotFound,
)
from .live import ChangeFeed, LiveQuery
from .models import Employee, Preregistration, VisitorLog
from .schemas import EmployeeFields, EmployeeOut, PreregistrationCreate, PreregistrationOut, VisitorLogOut
from .validation import validate_employee

logger = logging.getLogger(__name__)


@contextmanager
def store_call(db: Session, action: str):
    """Rolls back and converts database failures into StoreError."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error %s: %s", action, exc)
        raise StoreError(f"Could not {action}. Please try again.") from exc


# PUBLIC_INTERFACE
class EmployeeRepository:
    """
    The employee directory.
    """

    def __init__(self, db: Session):
        self.db = db

    def _row(self, employee_id: str) -> Employee:
        employee = self.db.get(Employee, employee_id)
        if employee is None:
            raise EmployeeNotFound(employee_id)
        return employee

    def get(self, employee_id: str) -> Optional[EmployeeOut]:
        with store_call(self.db, f"load employee {employee_id}"):
            employee = self.db.get(Employee, employee_id)
        return EmployeeOut.model_validate(employee) if employee else None

    def list(self, skip: int = 0, limit: Optional[int] = None, active_only: bool = False) -> List[EmployeeOut]:
        with store_call(self.db, "load employees"):
            return [EmployeeOut.model_validate(e) for e in _employee_query(self.db, active_only, skip, limit)]

    def add(self, fields: EmployeeFields) -> str:
        """Validates and inserts a new employee; returns the new id."""
        fields = validate_employee(fields)
        employee = Employee(**fields.model_dump())
        with store_call(self.db, "add employee"):
            self.db.add(employee)
            self.db.flush()
            employee_id = employee.id
            self.db.commit()
        logger.info("Added employee %s", employee_id)
        return employee_id

    def update(self, employee_id: str, fields: EmployeeFields) -> EmployeeOut:
        fields = validate_employee(fields)
        with store_call(self.db, f"update employee {employee_id}"):
            employee = self._row(employee_id)
            for name, value in fields.model_dump().items():
                setattr(employee, name, value)
            self.db.commit()
            self.db.refresh(employee)
        return EmployeeOut.model_validate(employee)

    def set_photo(self, employee_id: str, photo_url: str) -> EmployeeOut:
        with store_call(self.db, f"update photo of employee {employee_id}"):
            employee = self._row(employee_id)
            employee.photo_url = photo_url
            self.db.commit()
            self.db.refresh(employee)
        return EmployeeOut.model_validate(employee)

    def delete(self, employee_id: str) -> None:
        with store_call(self.db, f"delete employee {employee_id}"):
            self.db.delete(self._row(employee_id))
            self.db.commit()
        logger.info("Deleted employee %s", employee_id)

    @staticmethod
    def live_query(feed: ChangeFeed, session_factory, active_only: bool = False) -> LiveQuery:
        """Employees ordered by name, refreshed on every directory change."""
        def fetch(db):
            return [EmployeeOut.model_validate(e) for e in _employee_query(db, active_only)]
        return LiveQuery(feed, session_factory, [Employee.__tablename__], fetch)


def _employee_query(db, active_only=False, skip=0, limit=None):
    query = db.query(Employee)
    if active_only:
        query = query.filter(Employee.is_active.is_(True))
    query = query.order_by(Employee.first_name, Employee.last_name).offset(skip)
    if limit is not None:
        query = query.limit(limit)
    return query.all()


# PUBLIC_INTERFACE
class VisitorLogRepository:
    """
    Check-in/check-out records.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, log_id: str) -> Optional[VisitorLogOut]:
        with store_call(self.db, f"load visitor log {log_id}"):
            log = self.db.get(VisitorLog, log_id)
        return VisitorLogOut.model_validate(log) if log else None

    def list(self, skip: int = 0, limit: int = 25) -> List[VisitorLogOut]:
        """Most recent check-ins first."""
        with store_call(self.db, "load visitor logs"):
            logs = (self.db.query(VisitorLog)
                    .order_by(VisitorLog.check_in_time.desc())
                    .offset(skip)
                    .limit(limit)
                    .all())
            return [VisitorLogOut.model_validate(log) for log in logs]

    def add(self, visitor_name: str, employee_id: str, employee_name: str,
            company_name: Optional[str] = None, purpose_of_visit: Optional[str] = None,
            preregistration_id: Optional[str] = None) -> VisitorLogOut:
        """
        Records a check-in. The check-in time is assigned by the database.

        With preregistration_id the preregistration is moved from pending to
        checkedIn in the same transaction; PreregistrationAlreadyCheckedIn is
        raised, and nothing is written, when it is no longer pending.
        """
        log = VisitorLog(
            visitor_name=visitor_name,
            company_name=company_name,
            purpose_of_visit=purpose_of_visit,
            employee_visited_id=employee_id,
            employee_visited_name=employee_name,
            has_checked_out=False,
        )
        with store_call(self.db, "log check-in"):
            if preregistration_id is not None:
                _claim_preregistration(self.db, preregistration_id)
            self.db.add(log)
            self.db.commit()
            self.db.refresh(log)
        return VisitorLogOut.model_validate(log)

    def check_out(self, log_id: str) -> VisitorLogOut:
        """
        Sets the check-out time and flag together.
        A log that is already checked out is returned unchanged.
        """
        with store_call(self.db, f"log check-out for {log_id}"):
            log = self.db.get(VisitorLog, log_id)
            if log is None:
                raise VisitorLogNotFound(log_id)
            if not log.has_checked_out:
                log.check_out_time = func.now()
                log.has_checked_out = True
                self.db.commit()
                self.db.refresh(log)
        return VisitorLogOut.model_validate(log)

    @staticmethod
    def live_query_all(feed: ChangeFeed, session_factory) -> LiveQuery:
        """Every log, latest check-in first."""
        def fetch(db):
            logs = db.query(VisitorLog).order_by(VisitorLog.check_in_time.desc()).all()
            return [VisitorLogOut.model_validate(log) for log in logs]
        return LiveQuery(feed, session_factory, [VisitorLog.__tablename__], fetch)

    @staticmethod
    def live_query_checked_in(feed: ChangeFeed, session_factory) -> LiveQuery:
        """Visitors still on site, earliest check-in first."""
        def fetch(db):
            logs = (db.query(VisitorLog)
                    .filter(VisitorLog.has_checked_out.is_(False))
                    .order_by(VisitorLog.check_in_time.asc())
                    .all())
            return [VisitorLogOut.model_validate(log) for log in logs]
        return LiveQuery(feed, session_factory, [VisitorLog.__tablename__], fetch)


# PUBLIC_INTERFACE
class PreregistrationRepository:
    """
    Guests announced ahead of their arrival.
    """

    def __init__(self, db: Session):
        self.db = db

    def add(self, payload: PreregistrationCreate) -> PreregistrationOut:
        values = payload.model_dump(exclude_none=True)
        prereg = Preregistration(status="pending", **values)
        with store_call(self.db, "add preregistration"):
            self.db.add(prereg)
            self.db.commit()
            self.db.refresh(prereg)
        return PreregistrationOut.model_validate(prereg)

    def get(self, preregistration_id: str) -> PreregistrationOut:
        with store_call(self.db, f"load preregistration {preregistration_id}"):
            prereg = self.db.get(Preregistration, preregistration_id)
        if prereg is None:
            raise PreregistrationNotFound(preregistration_id)
        return PreregistrationOut.model_validate(prereg)

    def list_pending(self) -> List[PreregistrationOut]:
        with store_call(self.db, "load preregistrations"):
            rows = (self.db.query(Preregistration)
                    .filter(Preregistration.status == "pending")
                    .order_by(Preregistration.arrival_timestamp)
                    .all())
            return [PreregistrationOut.model_validate(p) for p in rows]


def _claim_preregistration(db: Session, preregistration_id: str) -> None:
    # Locked read, so two kiosks cannot both claim the same guest.
    prereg = (db.query(Preregistration)
              .filter(Preregistration.id == preregistration_id)
              .with_for_update()
              .populate_existing()
              .first())
    if prereg is None:
        db.rollback()
        raise PreregistrationNotFound(preregistration_id)
    if prereg.status != "pending":
        db.rollback()
        raise PreregistrationAlreadyCheckedIn(preregistration_id)
    prereg.status = "checkedIn"
