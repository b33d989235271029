# src/geotoggle/adapters/foreground.py

from __future__ import annotations

import itertools
import logging
import threading
import time

from ..core.errors import PermissionDeniedError
from ..core.models import ForegroundToken, Notification, Permission
from ..core.ports import NotificationSink, PermissionChecker

logger = logging.getLogger(__name__)


class LocalForegroundGate:
    """
    Foreground execution lease.

    A token is granted only with the foreground-service and location permissions
    and while fewer than max_tokens are outstanding (the OS quota). Acquiring posts
    the mandatory notification; releasing cancels it.
    """

    def __init__(
        self,
        permissions: PermissionChecker,
        sink: NotificationSink | None = None,
        *,
        max_tokens: int = 1,
    ) -> None:
        self._permissions = permissions
        self._sink = sink
        self._max_tokens = max(1, int(max_tokens))
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._outstanding: dict[int, ForegroundToken] = {}

    @property
    def outstanding(self) -> int:
        with self._lock:
            return len(self._outstanding)

    async def acquire(self, notification_id: int, notification: Notification) -> ForegroundToken:
        for permission in (Permission.FOREGROUND_SERVICE, Permission.LOCATION):
            if not self._permissions.is_granted(permission):
                raise PermissionDeniedError(permission, f"foreground execution denied: {permission} not granted")

        with self._lock:
            if len(self._outstanding) >= self._max_tokens:
                raise PermissionDeniedError(
                    Permission.FOREGROUND_SERVICE,
                    f"foreground execution denied: quota of {self._max_tokens} token(s) exhausted",
                )
            token = ForegroundToken(
                token_id=next(self._ids),
                notification_id=int(notification_id),
                acquired_at=time.time(),
            )
            self._outstanding[token.token_id] = token

        # The foreground notification is shown regardless of the notifications
        # permission, like a platform foreground service.
        if self._sink is not None:
            try:
                self._sink.post(notification)
            except Exception:
                logger.exception("Failed to post foreground notification id=%s", notification_id)

        logger.info("Foreground token %s acquired", token.token_id)
        return token

    def release(self, token: ForegroundToken) -> None:
        with self._lock:
            removed = self._outstanding.pop(token.token_id, None)
        if removed is None:
            return
        if self._sink is not None:
            try:
                self._sink.cancel(token.notification_id)
            except Exception:
                logger.exception("Failed to cancel foreground notification id=%s", token.notification_id)
        logger.info("Foreground token %s released", token.token_id)
