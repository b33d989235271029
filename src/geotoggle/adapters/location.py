# src/geotoggle/adapters/location.py

"""
Location source adapter.

The platform (GPS provider, replay file, console) pushes fixes into the source
from any thread; the tracking service reads them from an asyncio stream in
delivery order. There is at most one active subscription: subscribing again
closes the previous stream.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading

from ..core.errors import PermissionDeniedError, ProviderError, ProviderFatalError
from ..core.models import LocationSample, Permission
from ..core.ports import PermissionChecker

logger = logging.getLogger(__name__)

_EARTH_RADIUS_M = 6_371_000.0


def distance_m(a: LocationSample, b: LocationSample) -> float:
    """Great-circle (haversine) distance between two fixes, in meters."""
    lat1, lon1 = math.radians(a.latitude), math.radians(a.longitude)
    lat2, lon2 = math.radians(b.latitude), math.radians(b.longitude)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * _EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


class ChannelLocationStream:
    """Queue-backed LocationStream. Only touched from its event loop."""

    def __init__(self, *, min_interval_ms: int, min_distance_m: float) -> None:
        self.min_interval_ms = max(0, int(min_interval_ms))
        self.min_distance_m = max(0.0, float(min_distance_m))
        self._queue: asyncio.Queue[LocationSample | ProviderError] = asyncio.Queue()
        self._last: LocationSample | None = None
        self._closed = False
        self.delivered = 0
        self.filtered = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def receive(self) -> LocationSample:
        if self._closed and self._queue.empty():
            raise ProviderFatalError("location subscription is closed")

        item = await self._queue.get()
        if isinstance(item, ProviderFatalError):
            self._closed = True
            raise item
        if isinstance(item, ProviderError):
            raise item
        self.delivered += 1
        return item

    def _accept(self, sample: LocationSample) -> bool:
        last = self._last
        if last is None:
            return True
        if sample.captured_at_ms - last.captured_at_ms < self.min_interval_ms:
            return False
        if self.min_distance_m > 0 and distance_m(last, sample) < self.min_distance_m:
            return False
        return True

    def offer(self, sample: LocationSample) -> None:
        if self._closed:
            return
        if self._last is not None and sample.captured_at_ms < self._last.captured_at_ms:
            logger.warning(
                "Dropping out-of-order fix ts=%s (last=%s)", sample.captured_at_ms, self._last.captured_at_ms
            )
            self.filtered += 1
            return
        if not self._accept(sample):
            self.filtered += 1
            return
        self._last = sample
        self._queue.put_nowait(sample)

    def offer_error(self, error: ProviderError) -> None:
        if self._closed:
            return
        self._queue.put_nowait(error)

    def close(self, reason: str) -> None:
        """Close the stream; a pending receive() is woken with ProviderFatalError."""
        if self._closed:
            return
        self._queue.put_nowait(ProviderFatalError(reason))
        self._closed = True


class ChannelLocationSource:
    """
    LocationSource fed by push_fix()/push_error()/fail().

    Pushes are thread-safe: they are marshalled onto the loop that owns the
    active subscription.
    """

    def __init__(self, permissions: PermissionChecker) -> None:
        self._permissions = permissions
        self._lock = threading.Lock()
        self._stream: ChannelLocationStream | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def active(self) -> bool:
        with self._lock:
            return self._stream is not None and not self._stream.closed

    async def subscribe(self, *, min_interval_ms: int, min_distance_m: float) -> ChannelLocationStream:
        if not self._permissions.is_granted(Permission.LOCATION):
            raise PermissionDeniedError(Permission.LOCATION)

        stream = ChannelLocationStream(min_interval_ms=min_interval_ms, min_distance_m=min_distance_m)
        with self._lock:
            previous = self._stream
            self._stream = stream
            self._loop = asyncio.get_running_loop()

        if previous is not None:
            logger.info("Replacing existing location subscription")
            previous.close("replaced by a new subscription")

        logger.info(
            "Location subscription started (min_interval_ms=%s, min_distance_m=%s)",
            stream.min_interval_ms,
            stream.min_distance_m,
        )
        return stream

    async def unsubscribe(self, stream: ChannelLocationStream) -> None:
        with self._lock:
            if self._stream is stream:
                self._stream = None
        stream.close("unsubscribed")
        logger.info("Location subscription stopped (delivered=%s, filtered=%s)", stream.delivered, stream.filtered)

    # ---- provider side ----

    def _dispatch(self, fn_name: str, *args) -> bool:
        with self._lock:
            stream = self._stream
            loop = self._loop
        if stream is None or loop is None:
            return False
        try:
            loop.call_soon_threadsafe(getattr(stream, fn_name), *args)
        except RuntimeError:
            # Loop already closed (process shutting down).
            logger.debug("Dropping %s: event loop is closed", fn_name)
            return False
        return True

    def push_fix(self, sample: LocationSample) -> bool:
        """Deliver a new fix. Returns False when nobody is subscribed."""
        return self._dispatch("offer", sample)

    def push_error(self, message: str = "location fix failed") -> bool:
        return self._dispatch("offer_error", ProviderError(message))

    def fail(self, message: str = "location provider failed") -> bool:
        with self._lock:
            stream = self._stream
            self._stream = None
            loop = self._loop
        if stream is None or loop is None:
            return False
        try:
            loop.call_soon_threadsafe(stream.close, message)
        except RuntimeError:
            logger.debug("Dropping fatal provider error: event loop is closed")
            return False
        return True

    def on_permission_changed(self, permission: str, granted: bool) -> None:
        if permission == Permission.LOCATION and not granted:
            if self.fail("location permission revoked"):
                logger.warning("Location permission revoked while subscribed")
