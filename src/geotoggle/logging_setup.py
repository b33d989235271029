# src/geotoggle/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "geotoggle.log"

# Loggers that fire once per location fix.
_PER_SAMPLE_LOGGERS = ("geotoggle.tracking.sample_log", "geotoggle.tracking.broadcast")


class _ConsoleNoiseFilter(logging.Filter):
    """Keeps the console REPL readable while a run streams fixes."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith(_PER_SAMPLE_LOGGERS):
            return record.levelno >= logging.WARNING
        if name.startswith("geotoggle."):
            return True
        if name == "asyncio":
            return record.levelno >= logging.WARNING
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/geotoggle",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console on stderr (filtered) plus the full log in <log_dir>/geotoggle.log.

    Replaces any handlers already on the root logger. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    to_file = logging.FileHandler(str(log_file), encoding="utf-8")
    to_file.setLevel(file_level)
    to_file.setFormatter(fmt)
    root.addHandler(to_file)

    # warnings.warn(...) -> "py.warnings" logger, ERROR+ on the console like other libraries.
    logging.captureWarnings(True)
    return log_file
