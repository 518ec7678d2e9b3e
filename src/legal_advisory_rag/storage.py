"""Filesystem helpers: directory bootstrap and atomic file replacement."""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

TEMP_MARKER = ".tmp-"


def temp_path_for(target: Path) -> Path:
    """Return a unique hidden sibling of *target* used as the write buffer."""
    return target.with_name(f".{target.name}{TEMP_MARKER}{os.getpid()}-{uuid.uuid4().hex[:8]}")


def _fsync_directory(directory: Path) -> None:
    try:
        fd = os.open(str(directory), os.O_DIRECTORY)
    except (OSError, AttributeError):
        # O_DIRECTORY is unavailable on some platforms
        return
    try:
        os.fsync(fd)
    except OSError:
        logger.debug("Directory fsync not supported for %s", directory)
    finally:
        os.close(fd)


def atomic_write_bytes(target: str | Path, data: bytes) -> Path:
    """Write *data* to *target* so readers only ever see the old or the new file.

    The bytes go to a temporary file in the same directory, are flushed and
    fsynced, then renamed over *target*.  On failure the temporary file is
    removed and *target* is left exactly as it was.

    Raises
    ------
    OSError
        Whatever the underlying write / fsync / rename raised.
    """
    target = Path(target)
    temp_path = temp_path_for(target)
    try:
        with temp_path.open("wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(temp_path, target)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
    _fsync_directory(target.parent)
    return target


def ensure_directories(upload_location: str | Path, index_path: str | Path) -> None:
    """Create the staging directory and the snapshot's parent directory if absent."""
    for directory in (Path(upload_location), Path(index_path).parent):
        if not directory.exists():
            logger.info("Creating directory %s", directory)
        directory.mkdir(parents=True, exist_ok=True)
