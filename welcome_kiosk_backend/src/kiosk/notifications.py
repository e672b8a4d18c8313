"""
Client for the external check-in notification endpoint (emails the host).
"""

import logging
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import Settings
from .schemas import CheckInRequest

logger = logging.getLogger(__name__)


def build_session(max_retries: int, backoff_factor: float) -> requests.Session:
    """
    Session that retries connection failures and 5xx responses with
    exponential backoff. POST is retried explicitly; urllib3 skips it by default.
    """
    retry = Retry(
        total=max_retries,
        connect=max_retries,
        read=max_retries,
        status=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=(500, 502, 503, 504),
        allowed_methods=frozenset(["POST"]),
        raise_on_status=False,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


# PUBLIC_INTERFACE
class NotificationClient:
    """
    Sends check-in notifications.
    send_check_in_notification never raises; it returns False on any failure.
    """

    def __init__(self, base_url: str, timeout: Optional[float] = 10.0,
                 max_retries: int = 3, backoff_factor: float = 0.5,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or build_session(max_retries, backoff_factor)

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationClient":
        return cls(
            settings.notification_url,
            timeout=settings.notification_timeout,
            max_retries=settings.notification_max_retries,
            backoff_factor=settings.notification_backoff_factor,
        )

    def send_check_in_notification(self, request: CheckInRequest) -> bool:
        try:
            response = self.session.post(
                self.base_url,
                json=request.model_dump(by_alias=True),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Notification call to %s failed: %s", self.base_url, exc)
            return False

        if 200 <= response.status_code < 300:
            logger.info("Check-in notification sent to %s", request.employee_email)
            return True
        logger.error("Unsuccessful notification response: %s - %s", response.status_code, response.text)
        return False
