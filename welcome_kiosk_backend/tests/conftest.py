import os
import tempfile

_TEST_DIR = tempfile.mkdtemp(prefix="kiosk-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TEST_DIR, "kiosk.db")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PHOTO_DIR"] = os.path.join(_TEST_DIR, "photos")
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from fastapi.testclient import TestClient

from kiosk.auth import create_admin_user
from kiosk.database import SessionLocal, change_feed, engine
from kiosk.models import Base, Employee
from kiosk.schemas import AdminUserCreate, EmployeeOut


class FakeNotifier:
    """Stands in for NotificationClient; records every request."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.requests = []

    def send_check_in_notification(self, request):
        self.requests.append(request)
        return self.succeed


class FakeTask:
    def __init__(self, due, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.done = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Manual clock: tasks run only when advance() passes their due time."""

    def __init__(self):
        self.now = 0.0
        self.tasks = []

    def clock(self):
        return self.now

    def schedule(self, delay, callback):
        task = FakeTask(self.now + delay, callback)
        self.tasks.append(task)
        return task

    def advance(self, seconds):
        self.now += seconds
        due = [t for t in self.tasks if not t.cancelled and not t.done and t.due <= self.now]
        for task in sorted(due, key=lambda t: t.due):
            task.done = True
            task.callback()

    @property
    def pending(self):
        return [t for t in self.tasks if not t.cancelled and not t.done]


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def feed():
    return change_feed


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def scheduler():
    return FakeScheduler()


def add_employee(db, **values):
    defaults = {"first_name": "Sam", "last_name": "Jones", "email": "sam@x.com"}
    defaults.update(values)
    employee = Employee(**defaults)
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return EmployeeOut.model_validate(employee)


@pytest.fixture
def sam(db):
    return add_employee(db, id="e1")


@pytest.fixture
def admin_user(db):
    return create_admin_user(db, AdminUserCreate(
        email="admin@acme.com", password="s3cret-pass", full_name="Ada Admin", is_admin=True))


@pytest.fixture
def staff_user(db):
    return create_admin_user(db, AdminUserCreate(
        email="desk@acme.com", password="desk-pass-1", full_name="Front Desk", is_admin=False))


@pytest.fixture
def client(notifier):
    from kiosk.main import app, get_notifier

    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def bearer(client, email, password):
    response = client.post("/api/auth/token", data={"username": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_headers(client, admin_user):
    return bearer(client, "admin@acme.com", "s3cret-pass")
