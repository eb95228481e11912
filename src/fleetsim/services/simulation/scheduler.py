"""Periodic tick sources for simulation sessions.

A scheduler runs one logical timer per key. The callback returns ``True`` to
keep ticking and ``False`` to stop; cancelling a key prevents any further
call but lets a callback that is already running finish.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

TickCallback = Callable[[], bool]


class Scheduler(Protocol):
    def schedule(self, key: str, callback: TickCallback) -> None:
        ...

    def cancel(self, key: str) -> None:
        ...

    def is_scheduled(self, key: str) -> bool:
        ...

    def shutdown(self) -> None:
        ...


class ThreadScheduler:
    """One daemon thread per key, waking every ``interval`` seconds."""

    def __init__(self, interval: float) -> None:
        if interval <= 0:
            raise ValueError("Tick interval must be positive.")
        self.interval = interval
        self._tokens: dict[str, threading.Event] = {}
        self._threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def schedule(self, key: str, callback: TickCallback) -> None:
        with self._lock:
            token = self._tokens.get(key)
            if token is not None and not token.is_set():
                return
            token = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(key, callback, token),
                name=f"tick-{key}",
                daemon=True,
            )
            self._tokens[key] = token
            self._threads[key] = thread
        thread.start()

    def _run(self, key: str, callback: TickCallback, token: threading.Event) -> None:
        # The wait doubles as the cancellation check between ticks.
        while not token.wait(self.interval):
            try:
                keep_going = callback()
            except Exception:
                logger.exception(f"Tick for '{key}' raised; cancelling its timer")
                keep_going = False
            if not keep_going:
                break
        token.set()
        with self._lock:
            if self._tokens.get(key) is token:
                del self._tokens[key]
                self._threads.pop(key, None)

    def cancel(self, key: str) -> None:
        with self._lock:
            token = self._tokens.pop(key, None)
            self._threads.pop(key, None)
        if token is not None:
            token.set()

    def is_scheduled(self, key: str) -> bool:
        with self._lock:
            token = self._tokens.get(key)
            return token is not None and not token.is_set()

    def shutdown(self, timeout: float | None = 1.0) -> None:
        with self._lock:
            tokens = list(self._tokens.values())
            threads = list(self._threads.values())
            self._tokens.clear()
            self._threads.clear()
        for token in tokens:
            token.set()
        for thread in threads:
            if thread is not threading.current_thread():
                thread.join(timeout)


class ManualScheduler:
    """Deterministic scheduler driven by explicit ``run_pending`` calls."""

    def __init__(self) -> None:
        self._callbacks: dict[str, TickCallback] = {}

    def schedule(self, key: str, callback: TickCallback) -> None:
        self._callbacks.setdefault(key, callback)

    def cancel(self, key: str) -> None:
        self._callbacks.pop(key, None)

    def is_scheduled(self, key: str) -> bool:
        return key in self._callbacks

    def run_pending(self, rounds: int = 1) -> int:
        """Fire every scheduled callback ``rounds`` times; returns calls made."""

        calls = 0
        for _ in range(rounds):
            for key, callback in list(self._callbacks.items()):
                if self._callbacks.get(key) is not callback:
                    continue
                calls += 1
                if not callback():
                    # A stop/start inside the callback may have re-registered the key.
                    if self._callbacks.get(key) is callback:
                        del self._callbacks[key]
        return calls

    def shutdown(self) -> None:
        self._callbacks.clear()
