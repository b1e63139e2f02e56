"""
Named locks for the authoritative world state.

Flask-SocketIO in threading mode runs every inbound event on its own thread,
and under eventlet greenlets can interleave at I/O boundaries. Two attacks on
the same defender must not both read the old health and write back their own
result, so each entity gets a lock addressed by name:

    with atomic('player:' + sid):
        player.health = max(0, player.health - damage)

Locks are plain ``threading.RLock`` objects. ``eventlet.monkey_patch()`` (done
first thing in server.py) turns them into green locks, so the same code is
correct in both async modes.
"""

from __future__ import annotations

from contextlib import contextmanager
from threading import RLock
from typing import Dict, Iterator

_LOCKS: Dict[str, RLock] = {}
_LOCKS_GUARD = RLock()


def get_lock(name: str) -> RLock:
    """Return the process-wide lock registered under ``name``, creating it on first use."""
    lk = _LOCKS.get(name)
    if lk is not None:
        return lk
    with _LOCKS_GUARD:
        lk = _LOCKS.get(name)
        if lk is None:
            lk = RLock()
            _LOCKS[name] = lk
        return lk


def drop_lock(name: str) -> None:
    """Forget a per-entity lock once the entity is gone (e.g. a closed session)."""
    with _LOCKS_GUARD:
        _LOCKS.pop(name, None)


@contextmanager
def atomic(name: str) -> Iterator[None]:
    lk = get_lock(name)
    with lk:
        yield

