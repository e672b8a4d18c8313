"""
Client-side style validation rules, applied before anything reaches the store.
"""

from typing import Dict, List

from email_validator import EmailNotValidError, validate_email

from .errors import ValidationFailed
from .schemas import EmployeeFields


# PUBLIC_INTERFACE
def is_valid_email(value: str) -> bool:
    """Basic address-format check; does not look up the domain."""
    if not value or not value.strip():
        return False
    try:
        validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


# PUBLIC_INTERFACE
def employee_errors(fields: EmployeeFields) -> Dict[str, str]:
    """
    Returns {field: message} for every rule the employee breaks.
    """
    errors = {}
    if not fields.first_name.strip():
        errors["first_name"] = "First name is required."
    if not fields.last_name.strip():
        errors["last_name"] = "Last name is required."
    if not fields.email.strip():
        errors["email"] = "Email is required."
    elif not is_valid_email(fields.email):
        errors["email"] = "Invalid email format."
    return errors


# PUBLIC_INTERFACE
def validate_employee(fields: EmployeeFields) -> EmployeeFields:
    """
    Raises ValidationFailed for a bad employee, else returns a trimmed copy.
    """
    errors = employee_errors(fields)
    if errors:
        raise ValidationFailed(errors)
    return fields.model_copy(update={
        "first_name": fields.first_name.strip(),
        "last_name": fields.last_name.strip(),
        "email": fields.email.strip(),
        "title": fields.title.strip() if fields.title else fields.title,
        "department": fields.department.strip() if fields.department else fields.department,
    })


# PUBLIC_INTERFACE
def validate_field(field: str, value: str) -> List[str]:
    """
    Real-time validation of a single form field. Unknown fields always pass.
    """
    errors = []
    if field == "email":
        if not value.strip():
            errors.append("Email is required.")
        elif not is_valid_email(value):
            errors.append("Invalid email format.")
    elif field in ("first_name", "last_name"):
        if not value.strip():
            errors.append("This field is required.")
    elif field == "guest_name":
        if not value.strip():
            errors.append("Guest name cannot be blank.")
    return errors
