"""debounced_saver.py — write-behind coalescing for the player record file.

Movement events arrive several times a second per player; writing the JSON
document on each one would make storage latency part of the real-time path.
``DebouncedSaver`` arms a single background waiter and pushes the deadline
out on every ``debounce()``; the save runs once activity settles.

- debounce(): schedule a save ``interval_ms`` from now, resetting any pending deadline.
- flush(): save immediately (shutdown, tests).

Failures of the save function are logged, never raised: durability is best-effort.
"""

from __future__ import annotations

import atexit
import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class DebouncedSaver:
    def __init__(self, save_fn: Callable[[], None], *, interval_ms: int = 300) -> None:
        self._save_fn = save_fn
        self._interval_s = max(0.0, float(interval_ms) / 1000.0)
        self._next_deadline: Optional[float] = None
        self._armed = False
        self._guard = threading.Lock()
        atexit.register(self.flush)

    @property
    def pending(self) -> bool:
        return self._armed

    def debounce(self) -> None:
        with self._guard:
            self._next_deadline = time.time() + self._interval_s
            if self._armed:
                return
            self._armed = True
        try:
            t = threading.Thread(target=self._wait_and_flush, name='debounced-saver', daemon=True)
            t.start()
        except RuntimeError:
            # Interpreter shutting down; write synchronously instead
            self.flush()

    def _wait_and_flush(self) -> None:
        while True:
            nd = self._next_deadline
            if nd is None:
                return
            dt = nd - time.time()
            if dt <= 0:
                break
            # Short naps so a reset deadline is noticed quickly
            time.sleep(min(0.05, dt))
        self.flush()

    def flush(self) -> None:
        with self._guard:
            self._next_deadline = None
            self._armed = False
        try:
            self._save_fn()
        except Exception:
            logger.exception("Debounced save failed")
