"""
dod-gate — filesystem utilities

Purpose
- Atomic writes and copies for audit artifacts (receipts, reports, manifests).
- Best-effort free-space probing for evidence bundles.

Functional requirements
- Atomic writes use a temp file in the destination directory and ``os.replace``.
- Free-space probing never raises; an unreadable value is reported as ``None``.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

import psutil

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_copy",
    "atomic_write",
    "free_disk_bytes",
    "unique_path",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)
    payload = data if isinstance(data, bytes) else data.encode(encoding)

    try:
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
        _fsync_directory(target_parent)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def atomic_copy(source: PathLike, destination: PathLike) -> bytes:
    """Copy ``source`` to ``destination`` atomically and return the copied bytes."""

    payload = Path(source).read_bytes()
    target = Path(destination)
    target.parent.mkdir(parents=True, exist_ok=True)
    atomic_write(target, payload)
    return payload


def free_disk_bytes(path: PathLike) -> int | None:
    """Return free bytes on the filesystem holding ``path`` (or its nearest existing parent)."""

    existing = Path(path).resolve(strict=False)
    while not existing.exists():
        if existing.parent == existing:
            return None
        existing = existing.parent
    try:
        return int(psutil.disk_usage(str(existing)).free)
    except (OSError, RuntimeError):
        return None


def unique_path(directory: PathLike, stem: str, suffix: str) -> Path:
    """Return ``<directory>/<stem><suffix>``, adding ``-1``, ``-2``, ... until the name is free."""

    root = Path(directory)
    candidate = root / f"{stem}{suffix}"
    counter = 1
    while candidate.exists():
        candidate = root / f"{stem}-{counter}{suffix}"
        counter += 1
    return candidate


def _fsync_directory(path: Path) -> None:
    # Directory fsync is unsupported on some platforms/filesystems.
    if os.name == "nt":
        return

    flags = os.O_RDONLY
    if hasattr(os, "O_DIRECTORY"):
        flags |= os.O_DIRECTORY

    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return

    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)
