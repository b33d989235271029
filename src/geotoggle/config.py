# src/geotoggle/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing is required at import time; every field has a local default.
- The core never reads settings on its own: the composition root passes them in.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .core.models import Permission

ENV_PREFIX = "GEOTOGGLE"

DEFAULT_PERMISSIONS = [p.value for p in Permission]


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


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_int_list(name: str, default: list[int]) -> list[int]:
    out: list[int] = []
    for part in _env_list(name, [str(x) for x in default]):
        try:
            out.append(int(part))
        except ValueError:
            continue
    return out


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
    console_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    toggle_db_path: Path
    samples_dir: Path

    # ---- Location subscription ----
    min_interval_ms: int
    min_distance_m: float
    max_consecutive_write_failures: int

    # ---- Notifications / foreground ----
    notification_channel_id: str
    notification_id: int
    foreground_max_tokens: int

    # ---- Broadcast ----
    broadcast_queue_size: int

    # ---- Platform emulation ----
    granted_permissions: list[str]
    widget_ids: list[int]

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "geotoggle").strip() or "geotoggle"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/geotoggle"))
        toggle_db_path = _env_path(_k("TOGGLE_DB_PATH"), data_dir / "widgets.sqlite3")
        samples_dir = _env_path(_k("SAMPLES_DIR"), data_dir / "samples")

        # Same defaults as the GPS provider request: every 2 s, any distance.
        min_interval_ms = max(0, _env_int(_k("MIN_INTERVAL_MS"), 2000))
        min_distance_m = max(0.0, _env_float(_k("MIN_DISTANCE_M"), 0.0))
        max_consecutive_write_failures = max(1, _env_int(_k("MAX_WRITE_FAILURES"), 3))

        notification_channel_id = _env(_k("NOTIFICATION_CHANNEL_ID"), "location_service_channel")
        notification_id = _env_int(_k("NOTIFICATION_ID"), 1)
        foreground_max_tokens = max(1, _env_int(_k("FOREGROUND_MAX_TOKENS"), 1))

        broadcast_queue_size = max(1, _env_int(_k("BROADCAST_QUEUE_SIZE"), 64))

        granted_permissions = _env_list(_k("GRANTED_PERMISSIONS"), DEFAULT_PERMISSIONS)
        widget_ids = _env_int_list(_k("WIDGET_IDS"), [1])

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            toggle_db_path=toggle_db_path,
            samples_dir=samples_dir,
            min_interval_ms=min_interval_ms,
            min_distance_m=min_distance_m,
            max_consecutive_write_failures=max_consecutive_write_failures,
            notification_channel_id=notification_channel_id,
            notification_id=notification_id,
            foreground_max_tokens=foreground_max_tokens,
            broadcast_queue_size=broadcast_queue_size,
            granted_permissions=granted_permissions,
            widget_ids=widget_ids,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
