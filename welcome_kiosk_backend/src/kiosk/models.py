"""
SQLAlchemy ORM models for the Welcome Kiosk.
Entities: Employee, VisitorLog, Preregistration, AdminUser.
"""

import uuid

from sqlalchemy import (
    Column,
    String,
    DateTime,
    func,
    Boolean,
    CheckConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id():
    return uuid.uuid4().hex


# PUBLIC_INTERFACE
class Employee(Base):
    """
    Employee model.
    Directory entries guests can select as their host.
    """
    __tablename__ = "employees"

    id = Column(String(32), primary_key=True, default=new_id)
    first_name = Column(String, nullable=False, index=True)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    title = Column(String, nullable=True)
    department = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def display_name(self):
        return f"{self.first_name} {self.last_name}"


# PUBLIC_INTERFACE
class VisitorLog(Base):
    """
    VisitorLog model.
    One row per check-in event; updated once at check-out.
    """
    __tablename__ = "visitor_logs"
    __table_args__ = (
        CheckConstraint(
            "(NOT has_checked_out AND check_out_time IS NULL) "
            "OR (has_checked_out AND check_out_time IS NOT NULL)",
            name="ck_visitor_logs_checkout_consistent",
        ),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    visitor_name = Column(String, nullable=False)
    company_name = Column(String, nullable=True)
    purpose_of_visit = Column(String, nullable=True)
    # No foreign key: employees can be deleted while their visits stay on record.
    employee_visited_id = Column(String(32), nullable=False, index=True)
    employee_visited_name = Column(String, nullable=False)
    check_in_time = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    check_out_time = Column(DateTime(timezone=True), nullable=True)
    has_checked_out = Column(Boolean, nullable=False, default=False, index=True)


# PUBLIC_INTERFACE
class Preregistration(Base):
    """
    Preregistration model.
    Guests announced ahead of time; checked in with a single tap at the kiosk.
    """
    __tablename__ = "preregistrations"

    id = Column(String(32), primary_key=True, default=new_id)
    visitor_name = Column(String, nullable=False)
    visitor_company = Column(String, nullable=True)
    employee_to_see_id = Column(String(32), nullable=False)
    arrival_timestamp = Column(DateTime(timezone=True), server_default=func.now())
    status = Column(String, nullable=False, default="pending")  # pending, checkedIn


# PUBLIC_INTERFACE
class AdminUser(Base):
    """
    AdminUser model.
    Accounts that can sign in to the admin area; is_admin backs the "admin" token claim.
    """
    __tablename__ = "admin_users"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)     # Store hashed password, not plaintext
    full_name = Column(String, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
