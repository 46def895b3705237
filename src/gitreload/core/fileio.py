"""Durable file primitives for the staging directory.

Every mutation is a single atomic operation followed by an fsync of the
containing directory, so a crash leaves either the old or the new file
and never a partial one.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from gitreload.core.exceptions import StagingIOFailure


TEMP_PREFIX = ".tmp-"


def fsync_dir(directory: Path) -> None:
    """Flush directory entries (renames, unlinks) to disk."""
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError as e:
        raise StagingIOFailure(str(directory), "fsync", str(e)) from e
    try:
        os.fsync(fd)
    except OSError as e:
        raise StagingIOFailure(str(directory), "fsync", str(e)) from e
    finally:
        os.close(fd)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via temp file + fsync + rename.

    Raises:
        StagingIOFailure: If any step fails. The temp file is removed
            and ``path`` keeps its previous content.
    """
    try:
        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=TEMP_PREFIX)
    except OSError as e:
        raise StagingIOFailure(str(path), "write", str(e)) from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        # Atomic rename
        os.replace(temp_name, path)
    except OSError as e:
        try:
            os.unlink(temp_name)
        except FileNotFoundError:
            pass
        raise StagingIOFailure(str(path), "write", str(e)) from e

    fsync_dir(path.parent)


def atomic_write_text(path: Path, text: str) -> None:
    """UTF-8 variant of :func:`atomic_write_bytes`."""
    atomic_write_bytes(path, text.encode("utf-8"))


def durable_unlink(path: Path) -> bool:
    """Remove ``path`` if present and fsync its directory.

    Returns:
        True if a file was removed, False if it did not exist.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StagingIOFailure(str(path), "unlink", str(e)) from e

    fsync_dir(path.parent)
    return True
