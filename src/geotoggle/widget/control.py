# src/geotoggle/widget/control.py

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..core.errors import StorageError
from ..core.models import ServiceRunState, StopReason, TrackingCommand
from ..core.ports import CommandSink, ToggleRepo

logger = logging.getLogger(__name__)


class WidgetControl:
    """
    Home-screen widget entry points.

    on_toggle() is the whole protocol: read the stored flag, flip it, persist it
    (best-effort) and send Start or Stop. It never talks to the location source,
    the notification or the sample log directly.
    """

    def __init__(self, store: ToggleRepo, commands: CommandSink) -> None:
        self._store = store
        self._commands = commands

    def on_toggle(self, widget_id: int) -> bool:
        """Handle a tap on widget_id's switch. Returns the new requested state."""
        wid = int(widget_id)
        with self._store.locked(wid):
            current = self._store.get(wid)
            requested = not current
            try:
                self._store.set(wid, requested)
            except StorageError:
                # The tap still takes effect; only the persisted intent is stale.
                logger.exception("Failed to persist toggle widget_id=%s value=%s", wid, requested)

            # Submitted under the lock so commands arrive in flag-write order.
            command = TrackingCommand.START if requested else TrackingCommand.STOP
            self._commands.submit(command)

        logger.info("Widget %s toggled -> %s (%s)", wid, "on" if requested else "off", command.value)
        return requested

    def on_update(self, widget_ids: Iterable[int]) -> None:
        """Widgets placed or refreshed: make sure each has a record, keep existing flags."""
        for wid in widget_ids:
            wid = int(wid)
            with self._store.locked(wid):
                current = self._store.get(wid)
                try:
                    self._store.set(wid, current)
                except StorageError:
                    logger.exception("Failed to register widget_id=%s", wid)

    def on_deleted(self, widget_ids: Iterable[int]) -> None:
        for wid in widget_ids:
            try:
                self._store.delete(int(wid))
                logger.info("Widget %s removed", wid)
            except StorageError:
                logger.exception("Failed to delete toggle record widget_id=%s", wid)

    def reconcile(self, actual: ServiceRunState) -> int:
        """
        Align every stored flag with the service's actual state.

        Used at process start (service is STOPPED, nothing is tracking) and after
        an interrupted stop, so the next tap always means "start".
        """
        value = actual == ServiceRunState.RUNNING
        try:
            changed = self._store.set_all(value)
        except StorageError:
            logger.exception("Widget reconciliation failed (actual=%s)", actual.value)
            return 0
        if changed:
            logger.info("Reconciled %s widget flag(s) to %s", changed, "on" if value else "off")
        return changed

    def on_service_state(self, state: ServiceRunState, reason: StopReason | None) -> None:
        """Tracking service state listener: reconcile after forced stops only."""
        if state == ServiceRunState.STOPPED and reason == StopReason.INTERRUPTED:
            self.reconcile(state)
