"""Atomic artifact writes (snapshot and report files)."""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

__all__ = ["atomic_write"]


def atomic_write(
    path: str | os.PathLike[str],
    data: bytes | str,
    *,
    encoding: str = "utf-8",
    create_parents: bool = False,
) -> Path:
    """
    Write ``data`` next to ``path`` in a temp file, fsync it, then swap it in.

    Readers see either the previous artifact or the complete new one.
    """

    target = Path(path)
    if create_parents:
        target.parent.mkdir(parents=True, exist_ok=True)
    directory = target.parent.resolve(strict=True)
    payload = data.encode(encoding) if isinstance(data, str) else data

    fd, staged = tempfile.mkstemp(dir=directory, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(staged, target)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(staged)
        raise
    _sync_directory(directory)
    return target


def _sync_directory(directory: Path) -> None:
    # Persist the rename itself; not every platform lets a directory be opened.
    if not hasattr(os, "O_DIRECTORY"):
        return
    with contextlib.suppress(OSError):
        dir_fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
