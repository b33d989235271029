# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from geotoggle.cli.bootstrap import create_initial_state
from geotoggle.core.models import Permission
from geotoggle.core.state import AppState
from geotoggle.tracking.notifications import MemoryNotificationSink
from geotoggle.widget.toggle_store import ToggleStore

from .fakes import Pipeline, build_pipeline


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="geotoggle-test",
        log_level="DEBUG",
        console_enabled=False,
        # Paths (tmp per test run)
        data_dir=tmp_path,
        toggle_db_path=tmp_path / "widgets.sqlite3",
        samples_dir=tmp_path / "samples",
        # Location subscription: no filtering so every pushed fix is delivered
        min_interval_ms=0,
        min_distance_m=0.0,
        max_consecutive_write_failures=3,
        notification_channel_id="test_channel",
        notification_id=1,
        foreground_max_tokens=1,
        broadcast_queue_size=8,
        granted_permissions=[p.value for p in Permission],
        widget_ids=[1, 2],
    )


@pytest.fixture()
def sink() -> MemoryNotificationSink:
    return MemoryNotificationSink()


@pytest.fixture()
def state(settings: SimpleNamespace, sink: MemoryNotificationSink) -> AppState:
    """
    AppState wired through the real composition root.

    NOTE: We keep the real SQLite toggle store and CSV sample log here because
    their correctness is part of what we want to test.
    """
    return create_initial_state(settings=settings, notification_sink=sink)


@pytest.fixture()
def toggle_store(tmp_path: Path) -> ToggleStore:
    return ToggleStore(tmp_path / "toggles.sqlite3")


@pytest.fixture()
def pipeline(tmp_path: Path) -> Pipeline:
    """TrackingService with a fake foreground gate and a recording sample log."""
    return build_pipeline(tmp_path / "samples")
