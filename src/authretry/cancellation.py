"""Cooperative cancellation shared by every suspension point of a logical call."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from .exceptions import Cancelled

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class CancellationRegistration:
    """Handle returned by `CancellationToken.register`; exit to unregister."""

    def __init__(self, token: CancellationToken | None, callback: Callback | None) -> None:
        self._token = token
        self._callback = callback

    def unregister(self) -> None:
        if self._token is not None and self._callback is not None:
            self._token._remove(self._callback)
        self._token = None
        self._callback = None

    def __enter__(self) -> CancellationRegistration:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unregister()


class CancellationToken:
    """One-shot, thread-safe cancellation signal.

    Callbacks registered before cancellation run once, on the thread that
    calls `cancel`. Callbacks registered afterwards run immediately.
    """

    def __init__(self, *, can_be_cancelled: bool = True) -> None:
        self._can_be_cancelled = can_be_cancelled
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callback] = []

    @classmethod
    def none(cls) -> CancellationToken:
        """Return a token that can never be cancelled."""
        return cls(can_be_cancelled=False)

    @classmethod
    def linked(cls, *parents: CancellationToken) -> CancellationToken:
        """Return a token cancelled as soon as any of ``parents`` is."""
        child = cls()
        for parent in parents:
            if parent.can_be_cancelled:
                parent.register(child.cancel)
        return child

    @property
    def can_be_cancelled(self) -> bool:
        return self._can_be_cancelled

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if not self._can_be_cancelled:
            raise ValueError("This token cannot be cancelled")
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        logger.debug("Cancellation requested; running %d callback(s)", len(callbacks))
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def register(self, callback: Callback) -> CancellationRegistration:
        if not self._can_be_cancelled:
            return CancellationRegistration(None, None)
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return CancellationRegistration(self, callback)
        callback()
        return CancellationRegistration(None, None)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled("The operation was cancelled")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; return `cancelled`."""
        if not self._can_be_cancelled:
            if timeout is not None:
                self._event.wait(timeout)
            return False
        return self._event.wait(timeout)

    def _remove(self, callback: Callback) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        state = "cancelled" if self.cancelled else "active"
        if not self._can_be_cancelled:
            state = "uncancellable"
        return f"<CancellationToken {state}>"


__all__ = ["CancellationRegistration", "CancellationToken"]
