# src/geotoggle/adapters/permissions.py

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

PermissionListener = Callable[[str, bool], None]


class PermissionRegistry:
    """
    Runtime permission state (location, notifications, foreground service).

    Granting/revoking is driven from outside (console, host platform). Listeners
    are told about every change so adapters can react to a revocation while a
    subscription is active.
    """

    def __init__(self, granted: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._granted: set[str] = {self._norm(p) for p in granted if self._norm(p)}
        self._listeners: list[PermissionListener] = []

    @staticmethod
    def _norm(permission: str) -> str:
        return (permission or "").strip().lower()

    def is_granted(self, permission: str) -> bool:
        with self._lock:
            return self._norm(permission) in self._granted

    def granted(self) -> list[str]:
        with self._lock:
            return sorted(self._granted)

    def add_listener(self, listener: PermissionListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def grant(self, permission: str) -> None:
        self._set(permission, True)

    def revoke(self, permission: str) -> None:
        self._set(permission, False)

    def _set(self, permission: str, granted: bool) -> None:
        name = self._norm(permission)
        if not name:
            raise ValueError("permission name is required")

        with self._lock:
            before = name in self._granted
            if granted:
                self._granted.add(name)
            else:
                self._granted.discard(name)
            listeners = list(self._listeners)

        if before == granted:
            return

        logger.info("Permission %s -> %s", name, "granted" if granted else "revoked")
        for listener in listeners:
            try:
                listener(name, granted)
            except Exception:
                logger.exception("Permission listener failed permission=%s", name)
