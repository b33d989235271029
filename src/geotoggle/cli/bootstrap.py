# src/geotoggle/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete adapters into AppState (permissions/location/foreground/notifications),
- reconciles persisted widget flags with the freshly created (STOPPED) service.
"""

from __future__ import annotations

import logging

from ..adapters.foreground import LocalForegroundGate
from ..adapters.location import ChannelLocationSource
from ..adapters.permissions import PermissionRegistry
from ..config import get_settings
from ..core.ports import NotificationSink
from ..core.state import AppState
from ..tracking.broadcast import LocationBroadcaster
from ..tracking.notifications import LoggingNotificationSink, NotificationPresenter
from ..tracking.sample_log import CsvSampleLog
from ..tracking.service import TrackingService
from ..widget.control import WidgetControl
from ..widget.toggle_store import ToggleStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.samples_dir.mkdir(parents=True, exist_ok=True)
    settings.toggle_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, notification_sink: NotificationSink | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    sink = notification_sink if notification_sink is not None else LoggingNotificationSink()

    permissions = PermissionRegistry(settings.granted_permissions)
    location = ChannelLocationSource(permissions)
    permissions.add_listener(location.on_permission_changed)

    gate = LocalForegroundGate(permissions, sink, max_tokens=settings.foreground_max_tokens)
    presenter = NotificationPresenter(
        sink,
        permissions,
        channel_id=settings.notification_channel_id,
        notification_id=settings.notification_id,
    )
    sample_log = CsvSampleLog(settings.samples_dir)
    broadcaster = LocationBroadcaster(queue_size=settings.broadcast_queue_size)

    service = TrackingService(
        source=location,
        gate=gate,
        sample_log=sample_log,
        presenter=presenter,
        publisher=broadcaster,
        min_interval_ms=settings.min_interval_ms,
        min_distance_m=settings.min_distance_m,
        max_consecutive_write_failures=settings.max_consecutive_write_failures,
    )

    toggle_store = ToggleStore(settings.toggle_db_path)
    widget = WidgetControl(toggle_store, service)
    service.add_state_listener(widget.on_service_state)

    widget.on_update(settings.widget_ids)
    # A new process always starts STOPPED; stale "on" flags from a killed run are reset.
    widget.reconcile(service.state)

    logger.info(
        "State ready (widgets=%s, permissions=%s)",
        toggle_store.widget_ids(),
        ", ".join(permissions.granted()) or "none",
    )

    return AppState(
        settings=settings,
        permissions=permissions,
        location=location,
        gate=gate,
        sample_log=sample_log,
        presenter=presenter,
        broadcaster=broadcaster,
        service=service,
        toggle_store=toggle_store,
        widget=widget,
    )
