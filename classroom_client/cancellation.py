from __future__ import annotations

import threading
import time
from typing import Callable


class CancelledError(RuntimeError):
    pass


class CancellationToken:
    """Thread-safe, one-way cancellation signal.

    Waiting on the token doubles as a cancellable sleep: ``wait(delay)``
    returns early, and truthy, as soon as ``cancel()`` is called from any
    thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError("Operation cancelled")


def cancellable_sleep(delay: float, cancel_token: CancellationToken | None = None) -> None:
    if cancel_token is None:
        time.sleep(delay)
        return
    if cancel_token.wait(delay):
        raise CancelledError("Operation cancelled while waiting to retry")
