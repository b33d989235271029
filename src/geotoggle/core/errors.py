# src/geotoggle/core/errors.py

"""
Error taxonomy shared by the tracking core and its adapters.

- PermissionDeniedError: a platform permission is missing or was revoked.
- StorageError: toggle store or sample log write failed.
- ProviderError: a single location fix failed (transient, skipped).
- ProviderFatalError: the location subscription itself broke (forces Stop).
"""

from __future__ import annotations


class GeotoggleError(Exception):
    """Base class for all errors raised by geotoggle components."""


class PermissionDeniedError(GeotoggleError):
    def __init__(self, permission: str, message: str | None = None) -> None:
        self.permission = permission
        super().__init__(message or f"permission not granted: {permission}")


class StorageError(GeotoggleError):
    pass


class ProviderError(GeotoggleError):
    pass


class ProviderFatalError(ProviderError):
    pass
