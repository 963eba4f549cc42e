from __future__ import annotations

import logging
import os
import re
from pathlib import Path

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")

BASE_THEMES = {"light", "dark", "system"}

DEFAULT_SETTINGS = {
    "theme": "light",
    "submitButtonText": "Submit",
    "successMessage": "Form submitted successfully!",
    "requireEmail": False,
    "enableCaptcha": False,
    "enableRedirect": False,
    "redirectUrl": "",
    "enableEmailNotifications": False,
}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.storage_backend = os.getenv("STORAGE_BACKEND", "sqlite").lower()
        self.sqlite_path = Path(os.getenv("SQLITE_PATH", "./data/app.db"))
        self.json_path = Path(os.getenv("JSON_PATH", "./data/jsonstore.json"))
        self.auth_mode = os.getenv("AUTH_MODE", "header").lower()
        self.default_user_id = os.getenv("DEFAULT_USER_ID", "local")
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = _env_int("PORT", 8000)
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        self.free_form_limit = _env_int("FREE_FORM_LIMIT", 3)
        self.free_submission_limit = _env_int("FREE_SUBMISSION_LIMIT", 100)
        self.slug_max_attempts = _env_int("SLUG_MAX_ATTEMPTS", 5)
        self.completion_sample_size = _env_int("COMPLETION_SAMPLE_SIZE", 50)
        self.completion_sample_max = _env_int("COMPLETION_SAMPLE_MAX", 500)

        self.mail_api_url = os.getenv("MAIL_API_URL", "")
        self.mail_api_key = os.getenv("MAIL_API_KEY", "")
        self.mail_from = os.getenv("MAIL_FROM", "noreply@formcraft.app")
        self.mail_timeout = _env_float("MAIL_TIMEOUT", 10.0)


def ensure_dirs(settings: Settings) -> None:
    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    settings.json_path.parent.mkdir(parents=True, exist_ok=True)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
