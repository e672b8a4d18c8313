import pytest

from conftest import add_employee
from kiosk.admin import DataLoadState, EmployeeDirectoryGate
from kiosk.auth import AuthSession, create_access_token, decode_token, get_password_hash, verify_password
from kiosk.config import Settings
from kiosk.database import SessionLocal
from kiosk.errors import AuthError
from kiosk.models import AdminUser
from kiosk.repositories import EmployeeRepository

SETTINGS = Settings(secret_key="unit-test-secret")


@pytest.fixture
def auth():
    return AuthSession(SessionLocal, SETTINGS)


def test_password_hashing_round_trip():
    hashed = get_password_hash("hunter22")
    assert hashed != "hunter22"
    assert verify_password("hunter22", hashed)
    assert not verify_password("hunter23", hashed)


def test_token_carries_claims():
    token = create_access_token({"sub": "u1", "admin": True}, SETTINGS)
    claims = decode_token(token, SETTINGS)
    assert claims["sub"] == "u1"
    assert claims["admin"] is True
    assert "exp" in claims


def test_sign_in_and_out(auth, admin_user):
    seen = []
    subscription = auth.add_identity_listener(seen.append)

    assert auth.sign_in("someone@acme.com", "whatever") is None
    assert auth.sign_in("admin@acme.com", "wrong") is None
    identity = auth.sign_in("Admin@Acme.com", "s3cret-pass")
    assert identity.email == "admin@acme.com"
    assert auth.current_identity == identity

    assert auth.sign_out() is True
    assert auth.current_identity is None
    subscription.remove()
    assert seen == [None, identity, None]


def test_authorization_token_requires_identity(auth):
    with pytest.raises(AuthError):
        auth.get_authorization_token()


def test_forced_refresh_picks_up_revoked_admin_flag(auth, admin_user, db):
    auth.sign_in("admin@acme.com", "s3cret-pass")
    assert auth.get_authorization_token()["admin"] is True

    db.get(AdminUser, admin_user.id).is_admin = False
    db.commit()

    assert auth.get_authorization_token()["admin"] is True
    assert auth.get_authorization_token(force_refresh=True)["admin"] is False


class TestEmployeeDirectoryGate:
    def gate(self, auth, feed, states=None):
        listener = (lambda gate: states.append(gate.state)) if states is not None else None
        return EmployeeDirectoryGate(auth, EmployeeRepository.live_query(feed, SessionLocal), listener)

    def test_not_authenticated(self, auth, feed, sam):
        gate = self.gate(auth, feed)
        try:
            assert gate.state is DataLoadState.NOT_AUTHENTICATED
            assert gate.employees == []
        finally:
            gate.close()

    def test_admin_sees_live_directory(self, auth, feed, db, sam, admin_user):
        states = []
        gate = self.gate(auth, feed, states)
        try:
            auth.sign_in("admin@acme.com", "s3cret-pass")
            assert gate.state is DataLoadState.SUCCESS
            assert [e.id for e in gate.employees] == ["e1"]

            add_employee(db, first_name="Ana", last_name="Lee", email="ana@x.com")
            assert [e.first_name for e in gate.employees] == ["Ana", "Sam"]
        finally:
            gate.close()
        assert states[:3] == [DataLoadState.NOT_AUTHENTICATED, DataLoadState.LOADING, DataLoadState.SUCCESS]

    def test_missing_admin_claim_denies_regardless_of_directory(self, auth, feed, sam, staff_user):
        gate = self.gate(auth, feed)
        try:
            auth.sign_in("desk@acme.com", "desk-pass-1")
            assert gate.state is DataLoadState.PERMISSION_DENIED
            assert gate.employees == []
        finally:
            gate.close()

    def test_sign_out_clears_directory_and_stops_listening(self, auth, feed, db, sam, admin_user):
        states = []
        gate = self.gate(auth, feed, states)
        try:
            auth.sign_in("admin@acme.com", "s3cret-pass")
            auth.sign_out()
            assert gate.state is DataLoadState.NOT_AUTHENTICATED
            assert gate.employees == []

            count = len(states)
            add_employee(db, first_name="Ana", last_name="Lee", email="ana@x.com")
            assert len(states) == count
        finally:
            gate.close()

    def test_token_failure_is_an_error_state(self, auth, feed, db, sam, admin_user):
        gate = self.gate(auth, feed)
        try:
            auth.sign_in("admin@acme.com", "s3cret-pass")
            db.get(AdminUser, admin_user.id).is_active = False
            db.commit()

            auth.reload()
            assert gate.state is DataLoadState.ERROR
            assert "Auth check failed" in gate.error_message
            assert gate.employees == []
        finally:
            gate.close()
