"""Delivery primitives over Socket.IO.

Every service that needs to tell clients something goes through a
``SocketTransport`` so the game logic never touches socketio directly and
tests can swap in a recorder. Four delivery shapes exist:

- unicast: one connection
- broadcast_except: everyone but one connection
- multicast: an explicit list of connections
- broadcast: everyone

Emits are best-effort: a socket that vanished mid-send is logged once by
safe_call and otherwise ignored.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from safe_utils import safe_call

logger = logging.getLogger(__name__)


class SocketTransport:
    """Thin wrapper around a Flask-SocketIO server instance."""

    def __init__(self, socketio: Any):
        self.socketio = socketio

    def unicast(self, sid: str, event: str, payload: Any) -> None:
        safe_call(self.socketio.emit, event, payload, to=sid)

    def broadcast_except(self, sid: str | None, event: str, payload: Any) -> None:
        safe_call(self.socketio.emit, event, payload, skip_sid=sid)

    def multicast(self, sids: Iterable[str], event: str, payload: Any) -> None:
        for sid in list(sids):
            safe_call(self.socketio.emit, event, payload, to=sid)

    def broadcast(self, event: str, payload: Any) -> None:
        safe_call(self.socketio.emit, event, payload)

    def disconnect(self, sid: str) -> None:
        """Force a connection closed (used when a session is taken over)."""
        logger.info("Disconnecting session %s", sid)
        safe_call(self.socketio.server.disconnect, sid)


__all__ = ['SocketTransport']
