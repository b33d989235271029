# src/geotoggle/widget/toggle_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import time
from collections.abc import Iterable, Iterator
from pathlib import Path

from ..core.errors import StorageError

logger = logging.getLogger(__name__)


class ToggleStore:
    """
    SQLite store of one boolean per widget instance ("tracking requested").

    The flag records the user's intent, not whether the service is running.

    Concurrency:
    - each method opens its own SQLite connection
    - locked(widget_id) gives a per-key re-entrant lock for read-modify-write
      sequences; writes are last-write-wins, there is no cross-key locking
    """

    def __init__(self, db_path: str | Path = "widgets.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._locks: dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._ensure_schema()
        try:
            total = self.count()
        except sqlite3.Error:
            total = -1
        logger.info("ToggleStore ready db=%s widgets=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS widget_toggles (
                    widget_id INTEGER PRIMARY KEY,
                    enabled INTEGER NOT NULL DEFAULT 0,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    @contextlib.contextmanager
    def locked(self, widget_id: int) -> Iterator[None]:
        key = int(widget_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
        with lock:
            yield

    # ---- public API ----

    def count(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM widget_toggles").fetchone()
            return int(n)
        finally:
            conn.close()

    def get(self, widget_id: int) -> bool:
        """Stored flag, or False when absent. Never raises."""
        try:
            conn = self._get_conn()
            try:
                row = conn.execute(
                    "SELECT enabled FROM widget_toggles WHERE widget_id = ?",
                    (int(widget_id),),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error:
            logger.exception("ToggleStore read failed widget_id=%s; assuming off", widget_id)
            return False
        return bool(row["enabled"]) if row is not None else False

    def exists(self, widget_id: int) -> bool:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT 1 FROM widget_toggles WHERE widget_id = ?",
                (int(widget_id),),
            ).fetchone()
            return row is not None
        finally:
            conn.close()

    def set(self, widget_id: int, value: bool) -> None:
        key = int(widget_id)
        with self.locked(key):
            try:
                conn = self._get_conn()
                try:
                    conn.execute(
                        """
                        INSERT INTO widget_toggles(widget_id, enabled, updated_at)
                        VALUES (?, ?, ?)
                        ON CONFLICT(widget_id) DO UPDATE SET
                            enabled = excluded.enabled,
                            updated_at = excluded.updated_at
                        """,
                        (key, 1 if value else 0, time.time()),
                    )
                    conn.commit()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageError(f"cannot persist toggle for widget {key}: {e}") from e
        logger.debug("Toggle widget_id=%s -> %s", key, bool(value))

    def delete(self, widget_id: int) -> None:
        key = int(widget_id)
        with self.locked(key):
            try:
                conn = self._get_conn()
                try:
                    conn.execute("DELETE FROM widget_toggles WHERE widget_id = ?", (key,))
                    conn.commit()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageError(f"cannot delete toggle for widget {key}: {e}") from e
        with self._locks_guard:
            self._locks.pop(key, None)

    def widget_ids(self) -> list[int]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT widget_id FROM widget_toggles ORDER BY widget_id").fetchall()
            return [int(r["widget_id"]) for r in rows]
        finally:
            conn.close()

    def set_all(self, value: bool, widget_ids: Iterable[int] | None = None) -> int:
        """
        Overwrite the flag of every known widget (or of widget_ids).

        Returns how many records changed. Keys are locked one at a time.
        """
        changed = 0
        try:
            ids = self.widget_ids() if widget_ids is None else [int(w) for w in widget_ids]
            for wid in ids:
                with self.locked(wid):
                    if self.exists(wid) and self.get(wid) == bool(value):
                        continue
                    self.set(wid, value)
                    changed += 1
        except sqlite3.Error as e:
            raise StorageError(f"cannot reset widget toggles: {e}") from e
        return changed
