"""Atomic file operations for the file-backed session store."""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from qbxml_relay.utils.logging import get_logger

logger = get_logger("utils.atomic")


class AtomicWriteError(Exception):
    """Raised when an atomic write operation fails."""

    pass


@contextmanager
def atomic_write(
    path: Path,
    encoding: str = "utf-8",
) -> Generator[Any, None, None]:
    """
    Context manager for atomic text writes.

    Writes to a temporary file in the target directory, then renames it over
    the target. On failure the temp file is removed and the target is left
    untouched.

    Raises:
        AtomicWriteError: If the atomic write fails
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    temp_path = Path(temp_name)
    success = False

    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            yield f

        temp_path.replace(path)
        success = True

    except Exception as e:
        logger.error("atomic_write_failed", path=str(path), error=str(e))
        raise AtomicWriteError(f"Failed to atomically write {path}: {e}") from e

    finally:
        if not success and temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass


def atomic_write_json(path: Path, data: Any, indent: int = 2) -> None:
    """Atomically replace ``path`` with ``data`` serialized as JSON."""
    with atomic_write(path) as f:
        json.dump(data, f, indent=indent, default=str)


def exclusive_create_json(path: Path, data: Any) -> bool:
    """
    Create ``path`` with JSON content only if it does not exist yet.

    Returns:
        True if the file was created, False if it already existed
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    except FileExistsError:
        return False

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
    except Exception as e:
        path.unlink(missing_ok=True)
        raise AtomicWriteError(f"Failed to create {path}: {e}") from e

    return True
