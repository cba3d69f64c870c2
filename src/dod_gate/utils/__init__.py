"""Utility exports for filesystem, hashing, and concurrency helpers."""

from dod_gate.utils.concurrency import (
    BoundedSemaphore,
    WorkerPool,
    run_in_daemon_thread,
    run_with_timeout,
)
from dod_gate.utils.fs import atomic_copy, atomic_write, free_disk_bytes, unique_path
from dod_gate.utils.hashing import (
    is_sha256_hex,
    sha256_bytes,
    sha256_file,
    sha256_parts,
    sha256_text,
    verify_manifest,
)

__all__ = [
    "BoundedSemaphore",
    "WorkerPool",
    "atomic_copy",
    "atomic_write",
    "free_disk_bytes",
    "is_sha256_hex",
    "run_in_daemon_thread",
    "run_with_timeout",
    "sha256_bytes",
    "sha256_file",
    "sha256_parts",
    "sha256_text",
    "unique_path",
    "verify_manifest",
]
