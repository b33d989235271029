# tests/test_toggle_store.py

from __future__ import annotations

import threading
from pathlib import Path

from geotoggle.widget.toggle_store import ToggleStore


def test_missing_widget_reads_as_off(toggle_store: ToggleStore) -> None:
    assert toggle_store.get(42) is False
    assert toggle_store.exists(42) is False
    assert toggle_store.count() == 0


def test_set_get_overwrite_delete(toggle_store: ToggleStore) -> None:
    toggle_store.set(1, True)
    assert toggle_store.get(1) is True

    toggle_store.set(1, False)
    assert toggle_store.get(1) is False
    assert toggle_store.count() == 1

    toggle_store.delete(1)
    assert toggle_store.exists(1) is False
    assert toggle_store.get(1) is False


def test_flags_survive_reopen(tmp_path: Path) -> None:
    db = tmp_path / "widgets.sqlite3"
    store = ToggleStore(db)
    store.set(7, True)
    store.set(8, False)

    reopened = ToggleStore(db)
    assert reopened.get(7) is True
    assert reopened.get(8) is False
    assert reopened.widget_ids() == [7, 8]


def test_set_all_only_counts_changes(toggle_store: ToggleStore) -> None:
    toggle_store.set(1, True)
    toggle_store.set(2, False)
    toggle_store.set(3, True)

    assert toggle_store.set_all(False) == 2
    assert [toggle_store.get(w) for w in (1, 2, 3)] == [False, False, False]
    assert toggle_store.set_all(False) == 0


def test_set_all_with_explicit_ids_creates_records(toggle_store: ToggleStore) -> None:
    assert toggle_store.set_all(False, widget_ids=[5, 6]) == 2
    assert toggle_store.widget_ids() == [5, 6]


def test_locked_read_modify_write_has_no_lost_updates(toggle_store: ToggleStore) -> None:
    toggle_store.set(1, False)
    flips_per_thread = 15

    def flipper() -> None:
        for _ in range(flips_per_thread):
            with toggle_store.locked(1):
                toggle_store.set(1, not toggle_store.get(1))

    threads = [threading.Thread(target=flipper) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # 45 flips in total -> odd -> on
    assert toggle_store.get(1) is True
