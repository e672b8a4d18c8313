"""
Pydantic schemas shared by the workflows and the HTTP API.
"""

import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# -------------------- Directory --------------------

class EmployeeFields(BaseModel):
    """Editable employee attributes."""
    first_name: str = Field(..., examples=["Sam"])
    last_name: str = Field(..., examples=["Jones"])
    email: str = Field(..., examples=["sam.jones@acme.com"])
    title: Optional[str] = None
    department: Optional[str] = None
    photo_url: Optional[str] = None
    is_active: bool = True


class EmployeeOut(EmployeeFields):
    id: str
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


# -------------------- Visitor logs --------------------

class VisitorLogOut(BaseModel):
    id: str
    visitor_name: str
    company_name: Optional[str] = None
    purpose_of_visit: Optional[str] = None
    employee_visited_id: str
    employee_visited_name: str
    check_in_time: Optional[datetime.datetime] = None
    check_out_time: Optional[datetime.datetime] = None
    has_checked_out: bool = False

    model_config = ConfigDict(from_attributes=True)


class VisitorLogRow(BaseModel):
    """A visitor log paired with the host's current display name."""
    log: VisitorLogOut
    host_name: str


# -------------------- Check-in --------------------

class CheckInPayload(BaseModel):
    """Guest details as submitted from the kiosk form."""
    employee_id: str = Field(..., description="Id of the employee being visited")
    company_name: str = Field("", description="Visitor company; may be blank")
    guest_names: List[str] = Field(..., min_length=1, examples=[["Ana Lee"]])
    kiosk_id: Optional[str] = Field(None, description="Identifies the tablet, for double-submit protection")


class CheckInRequest(BaseModel):
    """Body sent to the notification endpoint."""
    employee_email: str = Field(..., alias="employeeEmail")
    visitor_company: str = Field("", alias="visitorCompany")
    visitor_names: List[str] = Field(..., alias="visitorNames")

    model_config = ConfigDict(populate_by_name=True)


class CheckInOutcome(str, Enum):
    SUCCESS = "success"
    NOTIFICATION_FAILED = "notification_failed"


class CheckInResponse(BaseModel):
    status: CheckInOutcome
    visitor_log: VisitorLogOut
    warning: Optional[str] = None


class NotificationResult(BaseModel):
    status: str
    employee_email: str


# -------------------- Preregistrations --------------------

class PreregistrationCreate(BaseModel):
    visitor_name: str
    visitor_company: Optional[str] = None
    employee_to_see_id: str
    arrival_timestamp: Optional[datetime.datetime] = None


class PreregistrationOut(BaseModel):
    id: str
    visitor_name: str
    visitor_company: Optional[str] = None
    employee_to_see_id: str
    arrival_timestamp: Optional[datetime.datetime] = None
    status: str

    model_config = ConfigDict(from_attributes=True)


# -------------------- Admin & auth --------------------

class AdminUserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: Optional[str] = None
    is_admin: bool = True


class AdminUserOut(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    is_admin: bool
    is_active: bool
    created_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str


# -------------------- Kiosk & validation --------------------

class GreetingOut(BaseModel):
    greeting: str


class FieldValidationRequest(BaseModel):
    field: str = Field(..., description="'email', 'first_name', 'last_name' or 'guest_name'")
    value: str


class FieldValidationResult(BaseModel):
    field: str
    value: str
    is_valid: bool
    errors: Optional[List[str]] = None
