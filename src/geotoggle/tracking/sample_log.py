# src/geotoggle/tracking/sample_log.py

from __future__ import annotations

import logging
import os
from pathlib import Path

from ..core.errors import StorageError
from ..core.models import LocationSample, LogHandle

logger = logging.getLogger(__name__)

LOG_FILE_PREFIX = "location_data_"
LOG_FILE_SUFFIX = ".csv"


def log_file_name(started_at_ms: int) -> str:
    return f"{LOG_FILE_PREFIX}{int(started_at_ms)}{LOG_FILE_SUFFIX}"


class CsvSampleLog:
    """
    Append-only CSV log, one file per tracking run.

    Line format: "<epoch-ms>,<lat>,<lon>\\n". Every append is flushed and fsynced
    before returning: sample rate is seconds-scale, durability wins.
    """

    def __init__(self, directory: str | Path, *, fsync: bool = True) -> None:
        self._dir = Path(directory)
        self._fsync = fsync

    @property
    def directory(self) -> Path:
        return self._dir

    def open(self, started_at_ms: int) -> LogHandle:
        path = self._dir / log_file_name(started_at_ms)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            stream = path.open("a", encoding="utf-8", newline="")
        except OSError as e:
            raise StorageError(f"cannot open sample log {path}: {e}") from e

        logger.info("Sample log opened %s", path)
        return LogHandle(path=path, started_at_ms=int(started_at_ms), stream=stream)

    def append(self, handle: LogHandle, sample: LocationSample) -> None:
        stream = handle.stream
        if stream is None:
            raise StorageError(f"sample log is closed: {handle.path}")

        try:
            stream.write(sample.to_csv_line())
            stream.flush()
            if self._fsync:
                os.fsync(stream.fileno())
        except (OSError, ValueError) as e:
            raise StorageError(f"cannot append to sample log {handle.path}: {e}") from e

        handle.lines_written += 1
        logger.debug("Sample appended ts=%s path=%s", sample.captured_at_ms, handle.path.name)

    def close(self, handle: LogHandle) -> None:
        stream = handle.stream
        if stream is None:
            return
        handle.stream = None
        try:
            stream.close()
        except OSError:
            logger.exception("Failed to close sample log %s", handle.path)
            return
        logger.info("Sample log closed %s lines=%s", handle.path, handle.lines_written)


def read_samples(path: str | Path) -> list[LocationSample]:
    """Parse a run log back into samples (malformed lines are skipped)."""
    out: list[LocationSample] = []
    with Path(path).open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            parts = line.split(",")
            if len(parts) != 3:
                logger.warning("Skipping malformed sample line %s:%s", path, lineno)
                continue
            try:
                out.append(LocationSample(int(parts[0]), float(parts[1]), float(parts[2])))
            except ValueError:
                logger.warning("Skipping malformed sample line %s:%s", path, lineno)
    return out
