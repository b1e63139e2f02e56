"""Chat message construction and recipient routing.

Global messages go to every live player; local messages go to every live
player within LOCAL_CHAT_RADIUS_M of the message position, the sender
included when in range. Text is truncated before it is escaped, so the
length cap applies to what the player typed.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from constants import CHAT_MAX_LENGTH, CHAT_TYPES, LOCAL_CHAT_RADIUS_M
from geo_utils import Position
from world import World


_ESCAPES = (
    ('<', '&lt;'),
    ('>', '&gt;'),
    ('"', '&quot;'),
    ("'", '&#39;'),
)


def sanitize_message(text: str) -> str:
    out = text[:CHAT_MAX_LENGTH]
    for raw, escaped in _ESCAPES:
        out = out.replace(raw, escaped)
    return out


def _message_id() -> str:
    return f"msg_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


@dataclass(frozen=True)
class ChatMessage:
    id: str
    sender_name: str
    sender_sid: str
    message: str
    type: str
    position: Optional[Position]
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'from': self.sender_name,
            'fromId': self.sender_sid,
            'message': self.message,
            'type': self.type,
            'position': self.position.to_dict() if self.position else None,
            'timestamp': self.timestamp.isoformat().replace('+00:00', 'Z'),
        }


class ChatRouter:
    def __init__(self, world: World, local_radius_m: float = LOCAL_CHAT_RADIUS_M):
        self.world = world
        self.local_radius_m = local_radius_m

    def create_message(self, sender_sid: str, sender_name: str, raw_text: str,
                       msg_type: str, position: Optional[Position] = None) -> ChatMessage:
        if msg_type not in CHAT_TYPES:
            raise ValueError(f"unknown chat type: {msg_type!r}")
        return ChatMessage(
            id=_message_id(),
            sender_name=sender_name,
            sender_sid=sender_sid,
            message=sanitize_message(raw_text),
            type=msg_type,
            position=position,
            timestamp=datetime.now(timezone.utc),
        )

    def recipients(self, message: ChatMessage) -> List[str]:
        if message.type == 'global':
            return [p.sid for p in self.world.all_players()]
        if message.position is None:
            return []
        return [p.sid for p in self.world.get_players_nearby(message.position, self.local_radius_m)]
