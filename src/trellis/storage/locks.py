"""Advisory file locks shared across CLI and dashboard processes."""

from __future__ import annotations

import contextlib
from collections.abc import Callable, Generator
from contextlib import AbstractContextManager
from pathlib import Path

from filelock import FileLock, Timeout

GRAPH_LOCK_KEY = "graph"


class LockTimeout(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""


@contextlib.contextmanager
def trellis_lock(
    locks_dir: Path,
    key: str,
    timeout: float = 10,
) -> Generator[None, None, None]:
    """Acquire a single file lock at ``locks_dir/<key>.lock``.

    Raises:
        LockTimeout: If the lock cannot be acquired within *timeout* seconds.
    """
    lock = FileLock(locks_dir / f"{key}.lock", timeout=timeout)
    try:
        lock.acquire()
    except Timeout:
        raise LockTimeout(f"Could not acquire lock '{key}' within {timeout}s") from None
    try:
        yield
    finally:
        lock.release()


def graph_lock_factory(
    locks_dir: Path, timeout: float = 10
) -> Callable[[], AbstractContextManager[None]]:
    """Return a zero-argument factory for the directional-edge lock."""

    def _graph_lock() -> AbstractContextManager[None]:
        return trellis_lock(locks_dir, GRAPH_LOCK_KEY, timeout=timeout)

    return _graph_lock
