"""
Admin authentication.

Bearer tokens are HS256 JWTs carrying an "admin" claim. AuthSession tracks the
signed-in identity for in-process screens; the dependencies at the bottom
guard the admin routes.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .database import get_db
from .errors import AuthError
from .live import Subscription
from .models import AdminUser
from .schemas import AdminUserCreate

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def get_user(db: Session, email: str) -> Optional[AdminUser]:
    return db.query(AdminUser).filter(AdminUser.email == email.strip().lower()).first()


def authenticate_user(db: Session, email: str, password: str) -> Optional[AdminUser]:
    user = get_user(db, email)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def create_admin_user(db: Session, payload: AdminUserCreate) -> AdminUser:
    user = AdminUser(
        email=str(payload.email).lower(),
        hashed_password=get_password_hash(payload.password),
        full_name=payload.full_name,
        is_admin=payload.is_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def ensure_admin_user(db: Session, settings: Settings) -> Optional[AdminUser]:
    """Creates the bootstrap admin from ADMIN_EMAIL/ADMIN_PASSWORD if missing."""
    if not settings.admin_email or not settings.admin_password:
        return None
    user = get_user(db, settings.admin_email)
    if user is None:
        user = create_admin_user(db, AdminUserCreate(
            email=settings.admin_email, password=settings.admin_password, is_admin=True))
        logger.info("Created bootstrap admin user %s", user.email)
    return user


def claims_for(user: AdminUser) -> dict:
    return {"sub": user.id, "email": user.email, "admin": bool(user.is_admin)}


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str, settings: Settings) -> dict:
    return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str
    full_name: Optional[str] = None


# PUBLIC_INTERFACE
class AuthSession:
    """
    The signed-in identity of one admin client, with change notifications.

    Listeners get the current identity as soon as they register and again
    after every sign-in or sign-out.
    """

    def __init__(self, session_factory, settings: Settings):
        self.session_factory = session_factory
        self.settings = settings
        self._identity: Optional[Identity] = None
        self._token: Optional[str] = None
        self._listeners: List[Callable[[Optional[Identity]], None]] = []
        self._lock = threading.Lock()

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._identity

    def sign_in(self, email: str, password: str) -> Optional[Identity]:
        """Returns the identity, or None when the credentials are rejected."""
        db = self.session_factory()
        try:
            user = authenticate_user(db, email, password)
            if user is None:
                logger.error("Error logging in user %s: invalid credentials", email)
                return None
            identity = Identity(user.id, user.email, user.full_name)
            token = create_access_token(claims_for(user), self.settings)
        except SQLAlchemyError as exc:
            logger.error("Error logging in user %s: %s", email, exc)
            return None
        finally:
            db.close()
        self._set_identity(identity, token)
        return identity

    def sign_out(self) -> bool:
        self._set_identity(None, None)
        return True

    def reload(self):
        """Announces the current identity again so listeners re-check access."""
        self._set_identity(self._identity, None)

    def add_identity_listener(self, listener: Callable[[Optional[Identity]], None]) -> Subscription:
        with self._lock:
            self._listeners.append(listener)

        def release():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        listener(self._identity)
        return Subscription(release)

    def get_authorization_token(self, force_refresh: bool = False) -> dict:
        """
        Claims of the current token. force_refresh re-reads the account so a
        revoked admin flag shows up immediately.
        """
        identity = self._identity
        if identity is None:
            raise AuthError("Not signed in.")
        if force_refresh or self._token is None:
            self._token = self._issue_token(identity)
        try:
            return decode_token(self._token, self.settings)
        except JWTError as exc:
            raise AuthError(f"Invalid authorization token: {exc}", exc) from exc

    def _issue_token(self, identity: Identity) -> str:
        db = self.session_factory()
        try:
            user = db.get(AdminUser, identity.user_id)
        except SQLAlchemyError as exc:
            raise AuthError(f"Could not refresh token: {exc}", exc) from exc
        finally:
            db.close()
        if user is None or not user.is_active:
            raise AuthError("Account is no longer active.")
        return create_access_token(claims_for(user), self.settings)

    def _set_identity(self, identity: Optional[Identity], token: Optional[str]):
        self._identity = identity
        self._token = token
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(identity)


# -------------------- FastAPI dependencies --------------------

async def get_token_claims(token: str = Depends(oauth2_scheme),
                           settings: Settings = Depends(get_settings)) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        claims = decode_token(token, settings)
    except JWTError:
        raise credentials_exception
    if claims.get("sub") is None:
        raise credentials_exception
    return claims


def get_current_user(claims: dict = Depends(get_token_claims), db: Session = Depends(get_db)) -> AdminUser:
    user = db.get(AdminUser, claims["sub"])
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_admin(claims: dict = Depends(get_token_claims),
                  user: AdminUser = Depends(get_current_user)) -> AdminUser:
    if claims.get("admin") is not True or not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
    return user
