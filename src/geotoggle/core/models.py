# src/geotoggle/core/models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TextIO

COORD_DECIMALS = 6


class Permission(StrEnum):
    LOCATION = "location"
    NOTIFICATIONS = "notifications"
    FOREGROUND_SERVICE = "foreground_service"


class ServiceRunState(StrEnum):
    STOPPED = "stopped"
    RUNNING = "running"


class TrackingCommand(StrEnum):
    """Commands accepted by the tracking service. Both are idempotent."""

    START = "start"
    STOP = "stop"

    @classmethod
    def parse(cls, raw: str | None) -> TrackingCommand:
        value = (raw or "").strip().lower()
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"unknown tracking command: {raw!r}") from None


class StopReason(StrEnum):
    """
    Why the service ended up STOPPED.

    REQUESTED: an explicit Stop command (widget tap, console, shutdown).
    INTERRUPTED: a state-breaking failure (denied token, fatal provider error,
    repeated log write failures).
    """

    REQUESTED = "requested"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True, slots=True)
class LocationSample:
    captured_at_ms: int
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")

    def format_latitude(self) -> str:
        return f"{self.latitude:.{COORD_DECIMALS}f}"

    def format_longitude(self) -> str:
        return f"{self.longitude:.{COORD_DECIMALS}f}"

    def to_csv_line(self) -> str:
        return f"{self.captured_at_ms},{self.format_latitude()},{self.format_longitude()}\n"

    def to_broadcast(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(slots=True)
class LogHandle:
    """An open per-run sample log. Owned by the tracking service for one run."""

    path: Path
    started_at_ms: int
    stream: TextIO | None = None
    lines_written: int = 0

    @property
    def closed(self) -> bool:
        return self.stream is None


@dataclass(frozen=True, slots=True)
class ForegroundToken:
    token_id: int
    notification_id: int
    acquired_at: float


class NotificationPriority(StrEnum):
    LOW = "low"
    DEFAULT = "default"
    HIGH = "high"


@dataclass(frozen=True, slots=True)
class Notification:
    channel_id: str
    notification_id: int
    title: str
    text: str
    priority: NotificationPriority = NotificationPriority.DEFAULT
    silent: bool = False
    ongoing: bool = True
