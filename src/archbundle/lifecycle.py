"""Caller-owned start/stop lifecycle for the native discovery peer.

The bundled library exposes ``peer_start(const char *identifier) -> bool`` and
``peer_stop()``. ``PeerLifecycle`` tracks whether the peer is running behind a
lock, and talks to the library only through a ``PeerCapability``, so hosts
can swap the native adapter for anything else that can start and stop a peer.
"""

from __future__ import annotations

import ctypes
import logging
import threading
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class LifecycleError(RuntimeError):
    """The capability refused to start the peer."""


class PeerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class PeerCapability(Protocol):
    def start(self, identifier: str) -> bool:
        """Start the peer, returning False on failure."""

    def stop(self) -> None:
        """Stop the peer."""


class NativePeerAdapter:
    """ctypes adapter over a shared library exporting ``peer_start``/``peer_stop``."""

    def __init__(self, library_path: Path) -> None:
        self.library_path = library_path
        self._library = ctypes.CDLL(str(library_path))
        self._start = self._library.peer_start
        self._start.argtypes = [ctypes.c_char_p]
        self._start.restype = ctypes.c_bool
        self._stop = self._library.peer_stop
        self._stop.argtypes = []
        self._stop.restype = None

    def start(self, identifier: str) -> bool:
        return bool(self._start(identifier.encode("utf-8")))

    def stop(self) -> None:
        self._stop()


class PeerLifecycle:
    """Explicit running/stopped state for one peer."""

    def __init__(self, capability: PeerCapability, identifier: str, logger: logging.Logger | None = None) -> None:
        if not identifier:
            raise ValueError("identifier must not be empty")
        self.capability = capability
        self.identifier = identifier
        self.logger = logger or LOGGER
        self._lock = threading.Lock()
        self._state = PeerState.STOPPED

    @property
    def state(self) -> PeerState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is PeerState.RUNNING

    def start(self) -> None:
        """Start the peer. Starting a running peer is a no-op."""

        with self._lock:
            if self._state is PeerState.RUNNING:
                self.logger.warning("lifecycle.already_running identifier=%s", self.identifier)
                return
            self.logger.info("lifecycle.starting identifier=%s", self.identifier)
            if not self.capability.start(self.identifier):
                self.logger.error("lifecycle.start_failed identifier=%s", self.identifier)
                raise LifecycleError(f"peer {self.identifier!r} failed to start")
            self._state = PeerState.RUNNING
            self.logger.info("lifecycle.started identifier=%s", self.identifier)

    def stop(self) -> None:
        """Stop the peer. Stopping a stopped peer is a no-op."""

        with self._lock:
            if self._state is PeerState.STOPPED:
                self.logger.warning("lifecycle.not_running identifier=%s", self.identifier)
                return
            self.capability.stop()
            self._state = PeerState.STOPPED
            self.logger.info("lifecycle.stopped identifier=%s", self.identifier)

    def __enter__(self) -> "PeerLifecycle":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
