"""
dod-gate — hashing utilities

Purpose
- Deterministic SHA-256 helpers for bytes, text, files and ordered text parts.
- Verify a directory against a path→digest manifest.

Functional requirements
- Part hashing separates every part with a NUL byte so ("ab", "c") and
  ("a", "bc") never collide.
- Verification reports missing and corrupted entries in sorted order.
"""

from __future__ import annotations

import hashlib
import os
import stat
import string
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

PathLike = str | os.PathLike[str]

_SHA256_HEX_LENGTH = 64
_FILE_READ_CHUNK_BYTES = 1024 * 1024
_HEX_DIGITS = set(string.hexdigits)
_PART_SEPARATOR = b"\x00"

__all__ = [
    "is_sha256_hex",
    "sha256_bytes",
    "sha256_file",
    "sha256_parts",
    "sha256_text",
    "verify_manifest",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding))


def sha256_parts(parts: Iterable[str]) -> str:
    """Return SHA-256 over UTF-8 ``parts``, each terminated by a NUL byte."""

    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(_PART_SEPARATOR)
    return digest.hexdigest()


def sha256_file(path: PathLike, *, chunk_size: int = _FILE_READ_CHUNK_BYTES) -> str:
    """Return SHA-256 hex digest for a file read in chunks."""

    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    digest = hashlib.sha256()
    with Path(path).open("rb") as file_handle:
        while True:
            chunk = file_handle.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def is_sha256_hex(value: str) -> bool:
    return len(value) == _SHA256_HEX_LENGTH and set(value).issubset(_HEX_DIGITS)


def verify_manifest(
    directory: PathLike,
    manifest: Mapping[str, str],
) -> tuple[list[str], list[str]]:
    """
    Verify files under ``directory`` against ``manifest``.

    Returns:
    - missing_paths: expected paths that are absent
    - corrupted_paths: present-but-mismatched paths (or non-regular files)
    """

    root = Path(directory).resolve(strict=True)
    if not root.is_dir():
        raise NotADirectoryError(f"{root!s} is not a directory")

    missing_paths: list[str] = []
    corrupted_paths: list[str] = []

    for rel_path in sorted(manifest):
        expected_hash = manifest[rel_path]
        if not is_sha256_hex(expected_hash):
            raise ValueError(f"invalid SHA-256 hex digest for path {rel_path!r}")
        target = _manifest_path_to_local(root, rel_path)

        try:
            mode = target.lstat().st_mode
        except FileNotFoundError:
            missing_paths.append(rel_path)
            continue

        if not stat.S_ISREG(mode) or sha256_file(target) != expected_hash.lower():
            corrupted_paths.append(rel_path)

    return missing_paths, corrupted_paths


def _manifest_path_to_local(root: Path, relative_posix_path: str) -> Path:
    if not relative_posix_path:
        raise ValueError("manifest path cannot be empty")
    if "\\" in relative_posix_path:
        raise ValueError(f"manifest path must use POSIX separators: {relative_posix_path!r}")
    posix_path = PurePosixPath(relative_posix_path)
    if posix_path.is_absolute():
        raise ValueError(f"manifest path must be relative: {relative_posix_path!r}")
    if any(part in {"", ".", ".."} for part in posix_path.parts):
        raise ValueError(f"manifest path is not safe: {relative_posix_path!r}")
    return root.joinpath(*posix_path.parts)
