"""Atomic file writes, directory management, and root discovery."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

TRELLIS_DIR = ".trellis"
TRELLIS_ROOT_ENV = "TRELLIS_ROOT"
CONFIG_FILE = "config.json"


class TrellisRootError(Exception):
    """Raised when TRELLIS_ROOT env var is set but invalid."""


def atomic_write(path: Path, content: str | bytes) -> None:
    """Write content to path atomically via temp file + fsync + rename.

    Raises:
        FileNotFoundError: If the parent directory does not exist.
    """
    parent = path.parent
    if not parent.is_dir():
        raise FileNotFoundError(f"Parent directory does not exist: {parent}")

    data = content.encode("utf-8") if isinstance(content, str) else content
    fd, tmp_path = tempfile.mkstemp(dir=parent, prefix=".tmp.")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def ensure_trellis_dirs(root: Path) -> Path:
    """Create ``.trellis/`` and its ``locks/`` directory under *root*.

    Returns the ``.trellis/`` path.
    """
    trellis_dir = root / TRELLIS_DIR
    (trellis_dir / "locks").mkdir(parents=True, exist_ok=True)
    return trellis_dir


def find_root(start: Path | None = None) -> Path | None:
    """Find the project root containing .trellis/.

    Checks TRELLIS_ROOT first.  If set, validates it and returns the path
    or raises (no fallback to walk-up).  Otherwise walks up from *start*
    (defaults to cwd).

    Raises:
        TrellisRootError: If TRELLIS_ROOT is set but invalid.
    """
    env_root = os.environ.get(TRELLIS_ROOT_ENV)
    if env_root is not None:
        if not env_root:
            raise TrellisRootError(f"{TRELLIS_ROOT_ENV} is set but empty")
        env_path = Path(env_root)
        if not env_path.is_dir():
            raise TrellisRootError(
                f"{TRELLIS_ROOT_ENV} points to a path that does not exist: {env_root}"
            )
        if not (env_path / TRELLIS_DIR).is_dir():
            raise TrellisRootError(
                f"{TRELLIS_ROOT_ENV} points to a directory with no {TRELLIS_DIR}/ "
                f"inside: {env_root}"
            )
        return env_path

    current = (start or Path.cwd()).resolve()
    while True:
        if (current / TRELLIS_DIR).is_dir():
            return current
        parent = current.parent
        if parent == current:
            return None
        current = parent
