# src/complaint_desk/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (the REST key and Matrix password are optional).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "DESK"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_choice(name: str, default: str, choices: set[str]) -> str:
    raw = _env(name, default).strip().lower()
    return raw if raw in choices else default


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Store ----
    store_backend: str
    sqlite_path: Path
    rest_url: str
    rest_api_key: Optional[str]
    rest_poll_seconds: float
    channel_name: str

    # ---- Acting agent (who this console acts as) ----
    agent_id: str
    agent_name: str

    # ---- Notifications ----
    notifier: str
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_room: str
    matrix_store_path: Path

    # ---- Display ----
    duration_locale: str

    @staticmethod
    def from_env() -> "Settings":
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/complaint_desk"))

        rest_api_key = _env(_k("REST_API_KEY"), "").strip() or None

        return Settings(
            app_name=_env(_k("APP_NAME"), "complaint-desk"),
            log_level=_env(_k("LOG_LEVEL"), "INFO"),
            data_dir=data_dir,
            store_backend=_env_choice(_k("STORE"), "sqlite", {"sqlite", "rest"}),
            sqlite_path=_env_path(_k("SQLITE_PATH"), data_dir / "complaints.sqlite3"),
            rest_url=_env(_k("REST_URL"), "").strip(),
            rest_api_key=rest_api_key,
            rest_poll_seconds=_env_float(_k("REST_POLL_SECONDS"), 5.0),
            channel_name=_env(_k("CHANNEL"), "admin-complaints-channel"),
            agent_id=_env(_k("AGENT_ID"), "local-admin").strip(),
            agent_name=_env(_k("AGENT_NAME"), "Admin").strip(),
            notifier=_env_choice(_k("NOTIFIER"), "console", {"console", "matrix", "none"}),
            matrix_homeserver=_env(_k("MATRIX_HOMESERVER"), "").strip(),
            matrix_user_id=_env(_k("MATRIX_USER_ID"), "").strip(),
            matrix_password=_env(_k("MATRIX_PASSWORD"), "").strip(),
            matrix_room=_env(_k("MATRIX_ROOM"), "").strip(),
            matrix_store_path=_env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix"),
            duration_locale=_env_choice(_k("DURATION_LOCALE"), "en", {"en", "ar"}),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Load .env (without overriding real env vars) and build Settings once."""
    global _SETTINGS
    if _SETTINGS is None:
        load_dotenv(override=False)
        _SETTINGS = Settings.from_env()
    return _SETTINGS
