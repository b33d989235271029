# src/geotoggle/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..adapters.foreground import LocalForegroundGate
from ..adapters.location import ChannelLocationSource
from ..adapters.permissions import PermissionRegistry
from ..tracking.broadcast import LocationBroadcaster
from ..tracking.notifications import NotificationPresenter
from ..tracking.service import TrackingService
from ..tracking.sample_log import CsvSampleLog
from ..widget.control import WidgetControl
from ..widget.toggle_store import ToggleStore


@dataclass
class AppState:
    """Everything one process owns. Built once by the composition root and passed around."""

    # Settings are kept as Any so tests can pass a SimpleNamespace.
    settings: Any

    permissions: PermissionRegistry
    location: ChannelLocationSource
    gate: LocalForegroundGate
    sample_log: CsvSampleLog
    presenter: NotificationPresenter
    broadcaster: LocationBroadcaster
    service: TrackingService

    toggle_store: ToggleStore
    widget: WidgetControl
