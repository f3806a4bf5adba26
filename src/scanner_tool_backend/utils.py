"""
Utility helpers for filesystem operations and lock handling.

This module provides helper functions for:
- Ensuring output directories exist
- Acquiring the registry/store locks with a bounded wait
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Iterator

from .errors import IOFailureError, LockFailureError

# Upper bound on how long any caller waits for the registry or job store lock
DEFAULT_LOCK_TIMEOUT = 5.0


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    This is a safe idempotent operation that won't fail if the directory
    already exists.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        IOFailureError: If directory creation fails due to permissions or other I/O errors
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise IOFailureError(f"Failed to create output directory: {exc}") from exc
    return path


@contextmanager
def locked(lock: Lock, resource: str, timeout: float = DEFAULT_LOCK_TIMEOUT) -> Iterator[None]:
    """
    Hold ``lock`` for the duration of the block.

    Args:
        lock: The lock guarding the shared state
        resource: Name used in the error message (e.g. "scanner registry")
        timeout: Seconds to wait before giving up

    Raises:
        LockFailureError: If the lock could not be acquired within ``timeout``
    """
    if not lock.acquire(timeout=timeout):
        raise LockFailureError(resource)
    try:
        yield
    finally:
        lock.release()
