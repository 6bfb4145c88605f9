# src/taskmate/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.

Environment variables:
- TASKMATE_APP_NAME            display name (default: taskmate)
- TASKMATE_LOG_LEVEL           console log level (default: INFO)
- TASKMATE_CONSOLE_ENABLED     run the console connector (default: true)
- TASKMATE_DATA_DIR            local data directory (default: .local/taskmate)
- TASKMATE_DB_PATH             SQLite store path (default: <data_dir>/taskmate.sqlite3)
- TASKMATE_USER_EMAIL          acting user's email (default: me@localhost)
- TASKMATE_USER_NAME           acting user's display name (optional)
- TASKMATE_NOTIFICATION_LIMIT  notifications kept in the inbox view (default: 20)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKMATE"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Local .env never overrides variables already set in the environment.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Acting user ----
    user_email: str
    user_name: str | None

    # ---- Tuning ----
    notification_limit: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskmate").strip() or "taskmate"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskmate"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "taskmate.sqlite3")

        user_email = _env(_k("USER_EMAIL"), "me@localhost").strip().lower() or "me@localhost"
        user_name = _env(_k("USER_NAME"), "").strip() or None

        notification_limit = max(1, _env_int(_k("NOTIFICATION_LIMIT"), 20))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            db_path=db_path,
            user_email=user_email,
            user_name=user_name,
            notification_limit=notification_limit,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
