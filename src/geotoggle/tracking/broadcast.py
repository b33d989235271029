# src/geotoggle/tracking/broadcast.py

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from collections.abc import Callable
from typing import Any

from ..core.models import LocationSample

logger = logging.getLogger(__name__)

LOCATION_UPDATE_ACTION = "geotoggle.LOCATION_UPDATE"

BroadcastPayload = dict[str, Any]
BroadcastCallback = Callable[[BroadcastPayload], None]

_STOP = object()


class BroadcastListener:
    """Bounded queue subscription. Overflowing updates are dropped, never awaited."""

    def __init__(self, maxsize: int) -> None:
        self.queue: asyncio.Queue[BroadcastPayload] = asyncio.Queue(maxsize=max(1, int(maxsize)))
        self.dropped = 0

    def deliver(self, payload: BroadcastPayload) -> None:
        try:
            self.queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.dropped += 1

    async def get(self) -> BroadcastPayload:
        return await self.queue.get()


class CallbackWorker:
    """
    Runs one callback on its own daemon thread, fed by a bounded queue.

    A slow or blocking callback only backs up its own queue; once that is full
    further updates for it are dropped.
    """

    def __init__(self, callback: BroadcastCallback, maxsize: int) -> None:
        self.callback = callback
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=max(1, int(maxsize)))
        self._stopped = threading.Event()
        self.dropped = 0
        self._thread = threading.Thread(target=self._drain, name="geotoggle-broadcast-cb", daemon=True)
        self._thread.start()

    def deliver(self, payload: BroadcastPayload) -> None:
        if self._stopped.is_set():
            return
        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            self.dropped += 1

    def stop(self) -> None:
        self._stopped.set()
        try:
            self._queue.put_nowait(_STOP)
        except queue.Full:
            # The drain loop checks the flag after every item.
            pass

    def _drain(self) -> None:
        while not self._stopped.is_set():
            item = self._queue.get()
            if item is _STOP or self._stopped.is_set():
                return
            try:
                self.callback(item)
            except Exception:
                logger.exception("Broadcast callback failed")


class LocationBroadcaster:
    """
    Fire-and-forget fan-out of {latitude, longitude} updates.

    Queue listeners must live on the event loop that publishes. Callbacks run
    on their own worker threads. No acknowledgement, no backpressure.
    """

    def __init__(self, *, action: str = LOCATION_UPDATE_ACTION, queue_size: int = 64) -> None:
        self.action = action
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._listeners: list[BroadcastListener] = []
        self._callbacks: list[CallbackWorker] = []
        self.published = 0

    def listen(self, maxsize: int | None = None) -> BroadcastListener:
        listener = BroadcastListener(self._queue_size if maxsize is None else maxsize)
        with self._lock:
            self._listeners.append(listener)
        return listener

    def unlisten(self, listener: BroadcastListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def add_callback(self, callback: BroadcastCallback, maxsize: int | None = None) -> CallbackWorker:
        worker = CallbackWorker(callback, self._queue_size if maxsize is None else maxsize)
        with self._lock:
            self._callbacks.append(worker)
        return worker

    def remove_callback(self, callback: BroadcastCallback) -> None:
        with self._lock:
            workers = [w for w in self._callbacks if w.callback is callback]
            self._callbacks = [w for w in self._callbacks if w.callback is not callback]
        for worker in workers:
            worker.stop()

    def close(self) -> None:
        """Stop every callback worker (queue listeners are left as they are)."""
        with self._lock:
            workers = list(self._callbacks)
            self._callbacks.clear()
        for worker in workers:
            worker.stop()

    def publish(self, sample: LocationSample) -> None:
        payload: BroadcastPayload = {"action": self.action, **sample.to_broadcast()}
        with self._lock:
            listeners = list(self._listeners)
            workers = list(self._callbacks)

        self.published += 1
        for listener in listeners:
            listener.deliver(dict(payload))
        for worker in workers:
            worker.deliver(dict(payload))
