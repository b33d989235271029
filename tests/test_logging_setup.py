# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from geotoggle.logging_setup import _ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("geotoggle.tracking.service", logging.INFO, True),
        ("geotoggle.tracking.sample_log", logging.INFO, False),
        ("geotoggle.tracking.sample_log", logging.WARNING, True),
        ("geotoggle.tracking.broadcast", logging.DEBUG, False),
        ("asyncio", logging.INFO, False),
        ("asyncio", logging.WARNING, True),
        ("py.warnings", logging.WARNING, False),
        ("urllib3", logging.ERROR, True),
    ],
)
def test_console_filter(name: str, level: int, shown: bool) -> None:
    assert _ConsoleNoiseFilter().filter(_record(name, level)) is shown


def test_setup_logging_writes_the_log_file(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        log_file = setup_logging(log_dir=tmp_path / "logs")
        logging.getLogger("geotoggle.test").debug("hello file")
        for h in root.handlers:
            h.flush()
        assert log_file == tmp_path / "logs" / "geotoggle.log"
        assert "hello file" in log_file.read_text("utf-8")
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved[0]:
            root.addHandler(h)
        root.setLevel(saved[1])
        logging.captureWarnings(False)
