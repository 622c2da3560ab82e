"""Throttled change notifications for the asset database.

Observers are told *that* something changed, never *what* changed. Bursts of
writes inside one interval are coalesced: the first change after a quiet period
is delivered immediately and everything that follows inside the interval is
folded into a single trailing delivery when the interval ends. Delivery is best
effort; an observer attached after an emission never sees it.

Immediate deliveries run on the thread that called ``notify``. Trailing
deliveries run on a timer thread, so an asyncio subscriber must hand the event
to its loop with ``loop.call_soon_threadsafe``.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Any], None]


class ChangeNotifier:
    def __init__(self, source: Any = None, interval: float = 0.3, clock: Callable[[], float] = time.monotonic):
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self.source = source
        self.interval = interval
        self._clock = clock
        self._lock = threading.Lock()
        self._subscribers: dict[int, ChangeCallback] = {}
        self._next_token = 0
        self._last_emit: float | None = None
        self._pending: threading.Timer | None = None
        self._generation = 0
        self._closed = False

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def notify(self) -> None:
        with self._lock:
            if self._closed:
                return
            now = self._clock()
            if self._last_emit is None or now - self._last_emit >= self.interval:
                self._last_emit = now
                emit_now = True
                self._cancel_pending()
            else:
                emit_now = False
                if self._pending is None:
                    delay = self.interval - (now - self._last_emit)
                    self._pending = threading.Timer(delay, self._flush, args=(self._generation,))
                    self._pending.daemon = True
                    self._pending.start()
        if emit_now:
            self._emit()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._cancel_pending()
            self._subscribers.clear()

    def _cancel_pending(self) -> None:
        # a timer already past cancel() is dropped by the generation check in _flush
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _flush(self, generation: int) -> None:
        with self._lock:
            if self._closed or generation != self._generation:
                return
            self._pending = None
            self._last_emit = self._clock()
        self._emit()

    def _emit(self) -> None:
        with self._lock:
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(self.source)
            except Exception:
                logger.exception("Change subscriber %r failed", callback)
