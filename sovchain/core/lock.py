"""
Advisory per-stage lock.

A stage run holds an exclusive, non-blocking flock on ``.<stage>.lock`` in
the working root. The lock file is left on disk after release; only the
flock itself signals ownership.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .errors import StageLocked

try:
    import fcntl
except ImportError:  # Windows or unsupported platform
    fcntl = None

logger = logging.getLogger(__name__)


def lock_path(workdir: str, stage: str) -> Path:
    return Path(workdir) / f".{stage}.lock"


class StageLock:
    """
    Exclusive lock guarding one stage in one working root.

    Usage:
        with StageLock(workdir, "download-host"):
            ...
    """

    def __init__(self, workdir: str, stage: str) -> None:
        self.stage = stage
        self.path = lock_path(workdir, stage)
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """
        Take the lock without waiting.

        Raises:
            StageLocked: Another process holds the lock
        """
        if self._fd is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
        if fcntl is not None:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except (BlockingIOError, PermissionError) as ex:
                os.close(fd)
                raise StageLocked(
                    f"another run holds {self.path.name}", stage=self.stage
                ) from ex
        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode("ascii"))
        self._fd = fd
        logger.debug("Acquired lock %s", self.path)

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            if fcntl is not None:
                fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug("Released lock %s", self.path)

    def __enter__(self) -> "StageLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def is_locked(workdir: str, stage: str) -> bool:
    """True when some process currently holds the stage lock."""
    path = lock_path(workdir, stage)
    if fcntl is None or not path.exists():
        return False
    fd = os.open(str(path), os.O_RDONLY)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except (BlockingIOError, PermissionError):
        return True
    else:
        fcntl.flock(fd, fcntl.LOCK_UN)
        return False
    finally:
        os.close(fd)
