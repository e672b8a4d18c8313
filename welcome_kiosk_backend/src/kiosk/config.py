"""
Runtime configuration for the kiosk backend.
Values come from the environment (and a local .env file, if present).
"""

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


# PUBLIC_INTERFACE
class Settings(BaseModel):
    """
    Application settings.
    Built once by get_settings(); tests construct their own instances.
    """
    frontend_url: str = "http://localhost:3000"

    notification_url: str = "http://localhost:8080/"
    notification_timeout: float = 10.0
    notification_max_retries: int = 3
    notification_backoff_factor: float = 0.5

    secret_key: str = "change-me"
    access_token_expire_minutes: int = 60

    photo_dir: str = "employee_photos"

    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    admin_tap_count: int = 5
    tap_window_seconds: float = 0.3
    confirmation_delay_seconds: float = 5.0


# PUBLIC_INTERFACE
@lru_cache()
def get_settings() -> Settings:
    """
    Reads settings from environment variables.
    """
    defaults = Settings()
    return Settings(
        frontend_url=os.getenv("FRONTEND_URL", defaults.frontend_url),
        notification_url=os.getenv("NOTIFICATION_URL", defaults.notification_url),
        notification_timeout=os.getenv("NOTIFICATION_TIMEOUT", defaults.notification_timeout),
        notification_max_retries=os.getenv("NOTIFICATION_MAX_RETRIES", defaults.notification_max_retries),
        notification_backoff_factor=os.getenv("NOTIFICATION_BACKOFF_FACTOR", defaults.notification_backoff_factor),
        secret_key=os.getenv("SECRET_KEY", defaults.secret_key),
        access_token_expire_minutes=os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", defaults.access_token_expire_minutes),
        photo_dir=os.getenv("PHOTO_DIR", defaults.photo_dir),
        admin_email=os.getenv("ADMIN_EMAIL"),
        admin_password=os.getenv("ADMIN_PASSWORD"),
        admin_tap_count=os.getenv("ADMIN_TAP_COUNT", defaults.admin_tap_count),
        tap_window_seconds=os.getenv("TAP_WINDOW_SECONDS", defaults.tap_window_seconds),
        confirmation_delay_seconds=os.getenv("CONFIRMATION_DELAY_SECONDS", defaults.confirmation_delay_seconds),
    )
