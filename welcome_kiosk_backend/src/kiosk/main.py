import logging
import os
import shutil
import threading
import uuid
import weakref
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, UploadFile, File, Body, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.status import HTTP_201_CREATED, HTTP_204_NO_CONTENT, HTTP_400_BAD_REQUEST

from .auth import authenticate_user, claims_for, create_access_token, create_admin_user, ensure_admin_user, require_admin
from .checkin import CheckInWorkflow, GuestForm, check_in_preregistered
from .checkout import check_out_visitor
from .config import Settings, get_settings
from .database import SessionLocal, change_feed, get_db
from .errors import Conflict, NotFound, StoreError, ValidationFailed
from .live import combine_latest, sse_events
from .models import AdminUser
from .notifications import NotificationClient
from .projections import filter_employees, visitor_log_rows
from .repositories import EmployeeRepository, PreregistrationRepository, VisitorLogRepository
from .schemas import (
    AdminUserCreate,
    AdminUserOut,
    CheckInPayload,
    CheckInRequest,
    CheckInResponse,
    EmployeeFields,
    EmployeeOut,
    FieldValidationRequest,
    FieldValidationResult,
    GreetingOut,
    NotificationResult,
    PreregistrationCreate,
    PreregistrationOut,
    Token,
    VisitorLogOut,
    VisitorLogRow,
)
from .validation import validate_field as field_errors
from .welcome import greeting_for

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        ensure_admin_user(db, get_settings())
    finally:
        db.close()
    yield


app = FastAPI(
    title="Welcome Kiosk Backend",
    description="API for the visitor check-in kiosk (check-in, check-out, host notifications) and its admin area.",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "kiosk", "description": "Welcome screen and employee picker"},
        {"name": "visitor", "description": "Visitor check-in and check-out"},
        {"name": "notifications", "description": "Notification triggers to hosts"},
        {"name": "auth", "description": "Admin sign-in"},
        {"name": "admin", "description": "Admin management & dashboard"},
        {"name": "validation", "description": "Real-time field validation"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_url],  # Restrict to frontend origin for security
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Standing queries shared by the streaming endpoints.
kiosk_directory = EmployeeRepository.live_query(change_feed, SessionLocal, active_only=True)
full_directory = EmployeeRepository.live_query(change_feed, SessionLocal)
all_visitor_logs = VisitorLogRepository.live_query_all(change_feed, SessionLocal)
checked_in_visitors = VisitorLogRepository.live_query_checked_in(change_feed, SessionLocal)

# Entries disappear once no request holds the kiosk's lock.
_kiosk_guards: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_kiosk_guards_lock = threading.Lock()


# -------------------- Dependencies --------------------

@lru_cache()
def get_notifier() -> NotificationClient:
    return NotificationClient.from_settings(get_settings())


def kiosk_guard(kiosk_id: Optional[str]) -> threading.Lock:
    """One check-in at a time per kiosk; requests without an id are not serialized."""
    if not kiosk_id:
        return threading.Lock()
    with _kiosk_guards_lock:
        guard = _kiosk_guards.get(kiosk_id)
        if guard is None:
            guard = _kiosk_guards[kiosk_id] = threading.Lock()
        return guard


def event_stream(subscribe) -> StreamingResponse:
    return StreamingResponse(sse_events(subscribe), media_type="text/event-stream")


# -------------------- Error mapping --------------------

@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    return JSONResponse(status_code=422, content={"detail": "Validation failed", "errors": exc.errors})


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(Conflict)
async def conflict_handler(request: Request, exc: Conflict):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# -------------------- Health Check --------------------

# PUBLIC_INTERFACE
@app.get("/", tags=["kiosk"])
def health_check():
    """
    Health check endpoint.
    ---
    Returns {"message": "Healthy"} if API is up.
    """
    return {"message": "Healthy"}


# -------------------- Kiosk --------------------

# PUBLIC_INTERFACE
@app.get("/api/kiosk/greeting", response_model=GreetingOut, tags=["kiosk"])
def kiosk_greeting():
    """Greeting for the welcome screen, based on the server's local time."""
    return GreetingOut(greeting=greeting_for(datetime.now().hour))


# PUBLIC_INTERFACE
@app.get("/api/employees", response_model=List[EmployeeOut], tags=["kiosk"])
def list_employees(q: Optional[str] = None, db: Session = Depends(get_db)):
    """
    Active employees ordered by name, optionally filtered by first name,
    last name or email.
    """
    return filter_employees(EmployeeRepository(db).list(active_only=True), q)


# PUBLIC_INTERFACE
@app.get("/api/employees/stream", tags=["kiosk"])
def stream_employees(q: Optional[str] = None):
    """Server-Sent Events: the filtered employee list after every directory change."""
    return event_stream(lambda listener: kiosk_directory.subscribe(
        lambda employees: listener(filter_employees(employees, q))))


# -------------------- Visitor check-in / check-out --------------------

# PUBLIC_INTERFACE
@app.post("/api/visitor/check-in", response_model=CheckInResponse, status_code=HTTP_201_CREATED, tags=["visitor"])
def visitor_check_in(payload: CheckInPayload, db: Session = Depends(get_db),
                     notifier: NotificationClient = Depends(get_notifier)):
    """
    Records a visit and emails the host.
    A failed email still records the visit; the response then carries a warning.
    """
    form = GuestForm.from_payload(payload, EmployeeRepository(db))
    workflow = CheckInWorkflow(VisitorLogRepository(db), notifier, kiosk_guard(payload.kiosk_id))
    result = workflow.check_in(form)
    return CheckInResponse(status=result.outcome, visitor_log=result.visitor_log, warning=result.warning)


# PUBLIC_INTERFACE
@app.get("/api/visitor/checked-in", response_model=List[VisitorLogRow], tags=["visitor"])
def list_checked_in():
    """Visitors who have not checked out, earliest first, with host names."""
    return visitor_log_rows(checked_in_visitors.snapshot(), full_directory.snapshot())


# PUBLIC_INTERFACE
@app.get("/api/visitor/checked-in/stream", tags=["visitor"])
def stream_checked_in():
    """Server-Sent Events version of /api/visitor/checked-in."""
    return event_stream(lambda listener: combine_latest(
        checked_in_visitors, full_directory, visitor_log_rows, listener))


# PUBLIC_INTERFACE
@app.post("/api/visitor/{log_id}/check-out", response_model=VisitorLogOut, tags=["visitor"])
def visitor_check_out(log_id: str, db: Session = Depends(get_db)):
    """Checks a visitor out. Repeated calls return the first check-out."""
    return check_out_visitor(VisitorLogRepository(db), log_id)


# PUBLIC_INTERFACE
@app.get("/api/preregistrations", response_model=List[PreregistrationOut], tags=["visitor"])
def list_preregistrations(db: Session = Depends(get_db)):
    """Pending preregistered guests, by expected arrival."""
    return PreregistrationRepository(db).list_pending()


# PUBLIC_INTERFACE
@app.post("/api/preregistrations/{preregistration_id}/check-in", response_model=CheckInResponse,
          status_code=HTTP_201_CREATED, tags=["visitor"])
def preregistration_check_in(preregistration_id: str, db: Session = Depends(get_db),
                             notifier: NotificationClient = Depends(get_notifier)):
    workflow = CheckInWorkflow(VisitorLogRepository(db), notifier)
    result = check_in_preregistered(workflow, EmployeeRepository(db), PreregistrationRepository(db),
                                    preregistration_id)
    return CheckInResponse(status=result.outcome, visitor_log=result.visitor_log, warning=result.warning)


# -------------------- Notifications --------------------

# PUBLIC_INTERFACE
@app.post("/api/notifications/notify-host", response_model=NotificationResult, tags=["notifications"])
def notify_host(request: CheckInRequest = Body(...),
                notifier: NotificationClient = Depends(get_notifier),
                admin: AdminUser = Depends(require_admin)):
    """
    Re-sends a check-in notification, e.g. after the kiosk reported a warning.
    """
    if not notifier.send_check_in_notification(request):
        raise HTTPException(502, "Notification service did not accept the request.")
    return NotificationResult(status="sent", employee_email=request.employee_email)


# -------------------- Auth --------------------

# PUBLIC_INTERFACE
@app.post("/api/auth/token", response_model=Token, tags=["auth"])
def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends(),
                           db: Session = Depends(get_db),
                           settings: Settings = Depends(get_settings)):
    """Exchanges admin credentials (username = email) for a bearer token."""
    user = authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Invalid email or password.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Token(access_token=create_access_token(claims_for(user), settings), token_type="bearer")


# -------------------- Admin Dashboard Endpoints --------------------

# PUBLIC_INTERFACE
@app.get("/api/admin/employees", response_model=List[EmployeeOut], tags=["admin"])
def admin_list_employees(skip: int = 0, limit: int = 100, db: Session = Depends(get_db),
                         admin: AdminUser = Depends(require_admin)):
    """
    Every employee, active or not, ordered by name.
    """
    return EmployeeRepository(db).list(skip=skip, limit=limit)


# PUBLIC_INTERFACE
@app.get("/api/admin/employees/stream", tags=["admin"])
def admin_stream_employees(admin: AdminUser = Depends(require_admin)):
    return event_stream(full_directory.subscribe)


# PUBLIC_INTERFACE
@app.post("/api/admin/employees", response_model=EmployeeOut, status_code=HTTP_201_CREATED, tags=["admin"])
def admin_add_employee(fields: EmployeeFields, db: Session = Depends(get_db),
                       admin: AdminUser = Depends(require_admin)):
    repository = EmployeeRepository(db)
    return repository.get(repository.add(fields))


# PUBLIC_INTERFACE
@app.get("/api/admin/employees/{employee_id}", response_model=EmployeeOut, tags=["admin"])
def admin_get_employee(employee_id: str, db: Session = Depends(get_db),
                       admin: AdminUser = Depends(require_admin)):
    employee = EmployeeRepository(db).get(employee_id)
    if employee is None:
        raise HTTPException(404, f"Employee {employee_id} not found")
    return employee


# PUBLIC_INTERFACE
@app.put("/api/admin/employees/{employee_id}", response_model=EmployeeOut, tags=["admin"])
def admin_update_employee(employee_id: str, fields: EmployeeFields, db: Session = Depends(get_db),
                          admin: AdminUser = Depends(require_admin)):
    return EmployeeRepository(db).update(employee_id, fields)


# PUBLIC_INTERFACE
@app.delete("/api/admin/employees/{employee_id}", status_code=HTTP_204_NO_CONTENT, tags=["admin"])
def admin_delete_employee(employee_id: str, db: Session = Depends(get_db),
                          admin: AdminUser = Depends(require_admin)):
    EmployeeRepository(db).delete(employee_id)
    return Response(status_code=HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@app.post("/api/admin/employees/{employee_id}/photo", response_model=EmployeeOut, tags=["admin"])
def admin_upload_employee_photo(employee_id: str, file: UploadFile = File(...),
                                db: Session = Depends(get_db),
                                settings: Settings = Depends(get_settings),
                                admin: AdminUser = Depends(require_admin)):
    """
    Stores an employee photo under PHOTO_DIR and points the employee at it.
    """
    repository = EmployeeRepository(db)
    if repository.get(employee_id) is None:
        raise HTTPException(404, f"Employee {employee_id} not found")
    if file.content_type and not file.content_type.startswith("image/"):
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="Photo must be an image.")

    extension = os.path.splitext(file.filename or "")[1].lower() or ".jpg"
    os.makedirs(settings.photo_dir, exist_ok=True)
    path = os.path.join(settings.photo_dir, f"employee_{uuid.uuid4().hex}{extension}")
    with open(path, "wb") as out:
        shutil.copyfileobj(file.file, out)
    logger.info("Saved photo for employee %s to %s", employee_id, path)
    return repository.set_photo(employee_id, path)


# PUBLIC_INTERFACE
@app.get("/api/admin/visitlogs", response_model=List[VisitorLogRow], tags=["admin"])
def get_visitlogs(skip: int = 0, limit: int = 25, db: Session = Depends(get_db),
                  admin: AdminUser = Depends(require_admin)):
    """
    List all visit logs (most recent first, paginated) with host names.
    """
    logs = VisitorLogRepository(db).list(skip=skip, limit=limit)
    return visitor_log_rows(logs, EmployeeRepository(db).list())


# PUBLIC_INTERFACE
@app.get("/api/admin/visitlogs/stream", tags=["admin"])
def stream_visitlogs(admin: AdminUser = Depends(require_admin)):
    return event_stream(lambda listener: combine_latest(
        all_visitor_logs, full_directory, visitor_log_rows, listener))


# PUBLIC_INTERFACE
@app.post("/api/admin/preregistrations", response_model=PreregistrationOut, status_code=HTTP_201_CREATED,
          tags=["admin"])
def admin_add_preregistration(payload: PreregistrationCreate, db: Session = Depends(get_db),
                              admin: AdminUser = Depends(require_admin)):
    if EmployeeRepository(db).get(payload.employee_to_see_id) is None:
        raise HTTPException(404, f"Employee {payload.employee_to_see_id} not found")
    return PreregistrationRepository(db).add(payload)


# PUBLIC_INTERFACE
@app.get("/api/admin/users", response_model=List[AdminUserOut], tags=["admin"])
def get_admin_users(skip: int = 0, limit: int = 25, db: Session = Depends(get_db),
                    admin: AdminUser = Depends(require_admin)):
    """
    List all admin users (for dashboard).
    """
    return db.query(AdminUser).order_by(AdminUser.email).offset(skip).limit(limit).all()


# PUBLIC_INTERFACE
@app.post("/api/admin/users", response_model=AdminUserOut, status_code=HTTP_201_CREATED, tags=["admin"])
def add_admin_user(payload: AdminUserCreate, db: Session = Depends(get_db),
                   admin: AdminUser = Depends(require_admin)):
    try:
        return create_admin_user(db, payload)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="An account with this email already exists.")


# -------------------- Real-time Field Validation --------------------

# PUBLIC_INTERFACE
@app.post("/api/validation/validate-field", response_model=FieldValidationResult, tags=["validation"])
def validate_field(payload: FieldValidationRequest):
    """
    Real-time field validation API for frontend forms.
    Returns validity and errors, if any.
    """
    errors = field_errors(payload.field, payload.value)
    return FieldValidationResult(field=payload.field, value=payload.value, is_valid=not errors,
                                 errors=errors or None)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
