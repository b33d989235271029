# src/geotoggle/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the tracking core.

The core depends on Protocols instead of concrete platform adapters.
This keeps location providers/notification surfaces swappable and makes testing easier.
"""

from collections.abc import Callable, Iterable
from typing import Protocol

from .models import (
    ForegroundToken,
    LocationSample,
    LogHandle,
    Notification,
    ServiceRunState,
    StopReason,
    TrackingCommand,
)

StateListener = Callable[[ServiceRunState, StopReason | None], None]


class LocationStream(Protocol):
    """
    One active location subscription.

    receive() waits for the next fix. It raises ProviderError for a single failed
    fix (the stream stays usable) and ProviderFatalError when the subscription is
    broken for good.
    """

    async def receive(self) -> LocationSample: ...

    @property
    def closed(self) -> bool: ...


class LocationSource(Protocol):
    async def subscribe(self, *, min_interval_ms: int, min_distance_m: float) -> LocationStream: ...
    async def unsubscribe(self, stream: LocationStream) -> None: ...


class ForegroundGate(Protocol):
    """OS lease that keeps a background task alive; paired with a visible notification."""

    async def acquire(self, notification_id: int, notification: Notification) -> ForegroundToken: ...
    def release(self, token: ForegroundToken) -> None: ...


class PermissionChecker(Protocol):
    def is_granted(self, permission: str) -> bool: ...


class NotificationSink(Protocol):
    def post(self, notification: Notification) -> None: ...
    def cancel(self, notification_id: int) -> None: ...


class SampleLog(Protocol):
    def open(self, started_at_ms: int) -> LogHandle: ...
    def append(self, handle: LogHandle, sample: LocationSample) -> None: ...
    def close(self, handle: LogHandle) -> None: ...


class SamplePublisher(Protocol):
    def publish(self, sample: LocationSample) -> None: ...


class CommandSink(Protocol):
    """Fire-and-forget command surface of the tracking service."""

    def submit(self, command: TrackingCommand) -> None: ...


class ToggleRepo(Protocol):
    def get(self, widget_id: int) -> bool: ...
    def set(self, widget_id: int, value: bool) -> None: ...
    def delete(self, widget_id: int) -> None: ...
    def widget_ids(self) -> list[int]: ...
    def set_all(self, value: bool, widget_ids: Iterable[int] | None = None) -> int: ...
    def locked(self, widget_id: int): ...
