# src/geotoggle/connectors/service_runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState

logger = logging.getLogger(__name__)


@dataclass
class ServiceBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    task: asyncio.Task

    def stop(self) -> None:
        """Cancel the service worker; its shutdown path forces a final Stop."""
        try:
            self.loop.call_soon_threadsafe(self.task.cancel)
        except RuntimeError:
            logger.debug("Failed to signal tracking service stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_service_in_background(state: AppState) -> ServiceBackgroundRunner | None:
    """
    Start the tracking service event loop in a background thread.

    The console REPL blocks on input(), so the async service gets its own loop
    in a daemon thread.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        state.service.bind_loop(loop)
        task = loop.create_task(state.service.run(), name="geotoggle-service")

        holder["loop"] = loop
        holder["task"] = task
        ready.set()

        try:
            loop.run_until_complete(task)
        except asyncio.CancelledError:
            pass
        finally:
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    t = threading.Thread(target=runner, name="geotoggle-service", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    task = holder.get("task")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(task, asyncio.Task):
        logger.error("Tracking service thread did not initialize properly.")
        return None

    logger.info("Tracking service background thread started.")
    return ServiceBackgroundRunner(thread=t, loop=loop, task=task)
