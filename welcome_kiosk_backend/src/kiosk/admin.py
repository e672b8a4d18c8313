"""
Admin employee list: only identities holding the "admin" claim see the directory.
"""

import logging
from enum import Enum
from typing import Callable, List, Optional

from .auth import AuthSession, Identity
from .errors import AuthError, StoreError
from .live import LiveQuery, Subscription
from .schemas import EmployeeOut

logger = logging.getLogger(__name__)


class DataLoadState(str, Enum):
    LOADING = "loading"
    SUCCESS = "success"
    NOT_AUTHENTICATED = "not_authenticated"
    PERMISSION_DENIED = "permission_denied"
    ERROR = "error"


# PUBLIC_INTERFACE
class EmployeeDirectoryGate:
    """
    Follows the signed-in identity and loads the directory for admins only.

    On every identity change the previous directory subscription is dropped,
    a fresh token is requested and its "admin" claim decides between
    SUCCESS (live employee list), PERMISSION_DENIED and ERROR. Without an
    identity the state is NOT_AUTHENTICATED. employees is empty in every
    state but SUCCESS.
    """

    def __init__(self, auth: AuthSession, employees: LiveQuery,
                 listener: Optional[Callable[["EmployeeDirectoryGate"], None]] = None):
        self.auth = auth
        self.employees_query = employees
        self.state = DataLoadState.LOADING
        self.employees: List[EmployeeOut] = []
        self.error_message: Optional[str] = None
        self._listener = listener
        self._directory: Optional[Subscription] = None
        self._auth_subscription = auth.add_identity_listener(self._on_identity_changed)

    def close(self):
        self._auth_subscription.remove()
        self._stop_directory()

    def _on_identity_changed(self, identity: Optional[Identity]):
        self._stop_directory()
        if identity is None:
            self._set(DataLoadState.NOT_AUTHENTICATED)
            return

        self._set(DataLoadState.LOADING)
        try:
            claims = self.auth.get_authorization_token(force_refresh=True)
        except AuthError as exc:
            logger.error("Auth check failed for %s: %s", identity.email, exc)
            self._set(DataLoadState.ERROR, f"Auth check failed: {exc}")
            return

        if claims.get("admin") is not True:
            self._set(DataLoadState.PERMISSION_DENIED)
            return

        try:
            self._directory = self.employees_query.subscribe(self._on_employees, self._on_directory_error)
        except StoreError as exc:
            self._on_directory_error(exc)

    def _on_employees(self, employees: List[EmployeeOut]):
        logger.debug("Loaded %d employees", len(employees))
        self._set(DataLoadState.SUCCESS, employees=employees)

    def _on_directory_error(self, exc: Exception):
        logger.error("Error loading employees: %s", exc)
        self._stop_directory()
        self._set(DataLoadState.ERROR, f"Load failed: {exc}")

    def _stop_directory(self):
        if self._directory is not None:
            self._directory.remove()
            self._directory = None

    def _set(self, state: DataLoadState, error_message: Optional[str] = None,
             employees: Optional[List[EmployeeOut]] = None):
        self.state = state
        self.error_message = error_message
        self.employees = employees if employees is not None else []
        if self._listener is not None:
            self._listener(self)
