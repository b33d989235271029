# src/geotoggle/tracking/notifications.py

from __future__ import annotations

import logging
import threading
from enum import StrEnum

from ..core.models import LocationSample, Notification, NotificationPriority, Permission
from ..core.ports import NotificationSink, PermissionChecker

logger = logging.getLogger(__name__)

TITLE = "Location Service"
TEXT_STARTED = "Tracking your location in real-time."
TEXT_STOPPED = "Location tracking stopped."


class TrackingStatus(StrEnum):
    """What the persistent notification is showing."""

    STARTED = "started"
    RUNNING = "running"
    STOPPED = "stopped"
    INTERRUPTED = "interrupted"


class NotificationPresenter:
    """
    Renders the tracking status as one persistent notification.

    Presentation is best-effort: without the notifications permission, present()
    does nothing and returns False; sink failures are logged and swallowed.
    """

    def __init__(
        self,
        sink: NotificationSink,
        permissions: PermissionChecker,
        *,
        channel_id: str = "location_service_channel",
        notification_id: int = 1,
    ) -> None:
        self._sink = sink
        self._permissions = permissions
        self.channel_id = channel_id
        self.notification_id = int(notification_id)

    def render(
        self,
        status: TrackingStatus,
        latest: LocationSample | None = None,
        *,
        detail: str | None = None,
    ) -> Notification:
        if status == TrackingStatus.RUNNING and latest is not None:
            return Notification(
                channel_id=self.channel_id,
                notification_id=self.notification_id,
                title=TITLE,
                text=f"Lat: {latest.format_latitude()}, Lon: {latest.format_longitude()}",
                priority=NotificationPriority.LOW,
                silent=True,
            )

        if status == TrackingStatus.INTERRUPTED:
            text = "Tracking interrupted"
            if detail:
                text = f"{text}: {detail}"
            return Notification(
                channel_id=self.channel_id,
                notification_id=self.notification_id,
                title=TITLE,
                text=text,
                priority=NotificationPriority.HIGH,
                ongoing=False,
            )

        if status == TrackingStatus.STOPPED:
            return Notification(
                channel_id=self.channel_id,
                notification_id=self.notification_id,
                title=TITLE,
                text=TEXT_STOPPED,
                priority=NotificationPriority.LOW,
                silent=True,
                ongoing=False,
            )

        return Notification(
            channel_id=self.channel_id,
            notification_id=self.notification_id,
            title=TITLE,
            text=TEXT_STARTED,
            priority=NotificationPriority.HIGH,
        )

    def present(
        self,
        status: TrackingStatus,
        latest: LocationSample | None = None,
        *,
        detail: str | None = None,
    ) -> bool:
        if not self._permissions.is_granted(Permission.NOTIFICATIONS):
            logger.debug("Notification skipped (permission not granted) status=%s", status.value)
            return False

        try:
            if status == TrackingStatus.STOPPED:
                # A normal stop clears the notification instead of leaving a stale one.
                self._sink.cancel(self.notification_id)
            else:
                self._sink.post(self.render(status, latest, detail=detail))
        except Exception:
            logger.exception("Notification sink failed status=%s", status.value)
            return False
        return True


class LoggingNotificationSink:
    """Console/platform-less sink: notifications become log records."""

    def post(self, notification: Notification) -> None:
        logger.info("[notification %s] %s: %s", notification.notification_id, notification.title, notification.text)

    def cancel(self, notification_id: int) -> None:
        logger.info("[notification %s] cleared", notification_id)


class MemoryNotificationSink:
    """Keeps the currently shown notification per id (plus a history)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active: dict[int, Notification] = {}
        self.history: list[Notification] = []
        self.cancelled: list[int] = []

    def post(self, notification: Notification) -> None:
        with self._lock:
            self.active[notification.notification_id] = notification
            self.history.append(notification)

    def cancel(self, notification_id: int) -> None:
        with self._lock:
            self.active.pop(notification_id, None)
            self.cancelled.append(notification_id)

    def current(self, notification_id: int) -> Notification | None:
        with self._lock:
            return self.active.get(notification_id)
