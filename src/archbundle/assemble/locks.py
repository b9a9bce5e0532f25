"""Named locks serializing assembly per destination path."""

from __future__ import annotations

import fcntl
import threading
import time
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from archbundle.errors import AssemblyLockTimeout

_REGISTRY_GUARD = threading.Lock()
# Entries vanish once no assembly holds or waits on the lock.
_NAMED_LOCKS: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()


def lock_key(destination: Path) -> str:
    return str(destination.absolute())


def _named_lock(key: str) -> threading.Lock:
    with _REGISTRY_GUARD:
        lock = _NAMED_LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _NAMED_LOCKS[key] = lock
        return lock


def lock_file_path(destination: Path) -> Path:
    """Advisory lock file kept beside the destination."""

    return destination.parent / f".{destination.name}.lock"


@contextmanager
def destination_lock(destination: Path, timeout: float, poll_interval: float = 0.05) -> Iterator[None]:
    """Hold the in-process and cross-process lock for ``destination``."""

    deadline = time.monotonic() + timeout
    thread_lock = _named_lock(lock_key(destination))
    if not thread_lock.acquire(timeout=timeout):
        raise AssemblyLockTimeout(destination, timeout)
    try:
        lock_path = lock_file_path(destination)
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with lock_path.open("a+b") as handle:
            while True:
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise AssemblyLockTimeout(destination, timeout) from None
                    time.sleep(poll_interval)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    finally:
        thread_lock.release()
