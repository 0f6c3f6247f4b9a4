"""
Cooperative cancellation for long-running fetches.

A :class:`CancellationToken` travels with the fetch that owns it. The
:class:`CancellationRegistry` keeps a lookup reference so a cancel request
from elsewhere (a CLI signal handler, another task) can reach it without
holding the session lock. Cancelling only looks up and signals; it never
owns the token.
"""

from __future__ import annotations

import logging
import threading

from exactpilot.errors import FetchInProgressError

logger = logging.getLogger("exactpilot.cancellation")


class CancellationToken:
    """A thread-safe flag, set once by a cancel request."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class CancellationRegistry:
    """Holds the token of the one fetch that may currently be cancelled."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: CancellationToken | None = None

    @property
    def active(self) -> CancellationToken | None:
        with self._lock:
            return self._active

    def register(self, token: CancellationToken) -> None:
        """Make ``token`` the target of :meth:`cancel`.

        Raises:
            FetchInProgressError: If another token is still registered.
        """
        with self._lock:
            if self._active is not None and self._active is not token:
                raise FetchInProgressError("Another fetch is already in progress")
            self._active = token

    def release(self, token: CancellationToken) -> None:
        """Drop the reference to ``token`` if it is the registered one."""
        with self._lock:
            if self._active is token:
                self._active = None

    def cancel(self) -> bool:
        """Signal the registered token, if any. Never fails.

        Returns:
            True if a running fetch was signalled.
        """
        with self._lock:
            token = self._active
        if token is None:
            return False
        token.cancel()
        logger.info("Cancellation requested")
        return True
