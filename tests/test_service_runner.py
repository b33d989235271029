# tests/test_service_runner.py

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from geotoggle.connectors.service_runner import start_service_in_background
from geotoggle.core.models import ServiceRunState


def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_taps_from_other_threads_reach_the_background_service(state) -> None:
    runner = start_service_in_background(state)
    assert runner is not None
    try:
        # Straight after startup, before run() necessarily got going.
        state.widget.on_toggle(1)
        assert _wait_for(lambda: state.service.running)

        # Later, while run() sits idle waiting for the next command.
        time.sleep(0.05)
        tapper = threading.Thread(target=state.widget.on_toggle, args=(1,))
        tapper.start()
        tapper.join()
        assert _wait_for(lambda: state.service.state == ServiceRunState.STOPPED)
    finally:
        runner.stop()
        runner.join(timeout=5.0)

    assert not runner.thread.is_alive()


def test_stopping_the_runner_stops_tracking_and_drops_late_commands(state, caplog) -> None:
    runner = start_service_in_background(state)
    assert runner is not None
    state.service.start()
    assert _wait_for(lambda: state.service.running)

    runner.stop()
    runner.join(timeout=5.0)
    assert state.service.state == ServiceRunState.STOPPED

    with caplog.at_level(logging.WARNING, logger="geotoggle.tracking.service"):
        state.service.start()

    assert "dropping start" in caplog.text
    assert state.service.state == ServiceRunState.STOPPED
