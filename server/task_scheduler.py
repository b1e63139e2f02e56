"""Delayed callbacks keyed by entity.

Respawns and post-defeat health restores run a few seconds after the event
that triggered them. Each pending task is addressed by a key such as
``npc:<id>`` or ``player:<sid>``:

    scheduler.schedule('npc:npc_frost_warden', 60.0, combat.respawn_npc, 'npc_frost_warden')

Scheduling a key that is already pending replaces the earlier task (the old
one wakes up, sees it was superseded and does nothing). ``schedule_if_absent``
leaves a pending task alone instead, so its deadline stays put. ``cancel``
drops a pending task.

The scheduler does not own threads itself; it is handed the Socket.IO
server's ``start_background_task`` and ``sleep`` so it cooperates with either
eventlet or threading mode.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict

from safe_utils import safe_call

logger = logging.getLogger(__name__)


class TaskScheduler:
    def __init__(self, start_background_task: Callable[..., Any], sleep: Callable[[float], Any]) -> None:
        self._start = start_background_task
        self._sleep = sleep
        self._pending: Dict[str, object] = {}
        self._guard = threading.Lock()

    def schedule(self, key: str, delay_s: float, fn: Callable[..., Any], *args: Any) -> None:
        token = object()
        with self._guard:
            replaced = key in self._pending
            self._pending[key] = token
        if replaced:
            logger.debug("Replacing pending task %s", key)
        self._start(self._run, key, token, max(0.0, float(delay_s)), fn, args)

    def schedule_if_absent(self, key: str, delay_s: float, fn: Callable[..., Any], *args: Any) -> bool:
        """Schedule only when nothing is pending for ``key``; returns whether it did."""
        token = object()
        with self._guard:
            if key in self._pending:
                return False
            self._pending[key] = token
        self._start(self._run, key, token, max(0.0, float(delay_s)), fn, args)
        return True

    def cancel(self, key: str) -> bool:
        """Drop the pending task for ``key``; returns whether one existed."""
        with self._guard:
            return self._pending.pop(key, None) is not None

    def is_pending(self, key: str) -> bool:
        with self._guard:
            return key in self._pending

    def _run(self, key: str, token: object, delay_s: float, fn: Callable[..., Any], args: tuple) -> None:
        self._sleep(delay_s)
        with self._guard:
            if self._pending.get(key) is not token:
                return
            del self._pending[key]
        safe_call(fn, *args)
