"""
Best-effort execution helpers for side channels that must never break gameplay.

Emits to a socket that just closed, a persistence write that fails, or a
respawn callback for a player who already left should not take a handler down
with them. ``safe_call`` runs the callable, logs the first failure of each
(function, exception type) pair at WARNING and stays quiet about repeats so a
flapping store cannot flood the log.

Set DEBUG_RAISE_EXCEPTIONS to '1', 'true', 'yes' or 'on' to re-raise after the
first log line. The variable is read on every call, so tests can flip it with
monkeypatch.setenv.

Usage:
    safe_call(socketio.emit, 'player:left', {'id': sid})
    record = safe_call_with_default(store.load_player_record, None, persistent_id)
"""

import logging
import os
from typing import Callable, Optional, Set, TypeVar

# Keys are "<function name>:<exception type>"
_seen_exceptions: Set[str] = set()

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _debug_raise_enabled() -> bool:
    val = os.getenv('DEBUG_RAISE_EXCEPTIONS', '').strip().lower()
    return val in ('1', 'true', 'yes', 'on')


def _fn_name(fn: Callable) -> str:
    return getattr(fn, '__qualname__', None) or getattr(fn, '__name__', None) or repr(fn)


def _log_once(fn: Callable, exc: Exception, suffix: str) -> None:
    exc_type = type(exc).__name__
    key = f"{_fn_name(fn)}:{exc_type}"
    if key in _seen_exceptions:
        return
    _seen_exceptions.add(key)
    logger.warning("%s failed with %s: %s (%s)", _fn_name(fn), exc_type, exc, suffix)


def safe_call(fn: Callable[..., T], *args, **kwargs) -> Optional[T]:
    """Call ``fn``; on any exception log it once and return None."""
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        _log_once(fn, e, "further failures of this kind are silent")
        if _debug_raise_enabled():
            raise
        return None


def safe_call_with_default(fn: Callable[..., T], default: T, *args, **kwargs) -> T:
    """Like ``safe_call`` but return ``default`` on failure."""
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        _log_once(fn, e, f"returning default {default!r}")
        if _debug_raise_enabled():
            raise
        return default


def reset_seen_exceptions() -> None:
    """Forget which failures were already logged (test helper)."""
    _seen_exceptions.clear()
