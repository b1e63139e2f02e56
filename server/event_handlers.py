"""Socket.IO event handlers: the session gateway.

This module is the only place that knows the wire protocol. Each inbound
event is decoded and validated here, handed to the world / chat / combat
services, and the resulting deltas are delivered through the transport:

- connect: nothing happens until the client authenticates
- player:authenticate: bind the connection to a player (taking over any
  older connection of the same account), reply auth:success and world:state,
  announce player:joined to everyone else
- movement, cosmetic updates, home, combat stats, chat, attacks
- disconnect: remove the player and announce player:left

Events from connections that have not authenticated, and payloads that do not
validate, are dropped without a reply.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Callable, Optional

from auth_service import AuthError, TokenVerifier, normalize_name, resolve_identity
from chat_service import ChatRouter
from combat_service import CombatResolver
from concurrency_utils import atomic, drop_lock
from constants import (
    AUTH_ERROR,
    AUTH_SUCCESS,
    CHAT_MESSAGE,
    CHAT_TYPES,
    EV_AUTHENTICATE,
    EV_CHAT_SEND,
    EV_COMBAT_ATTACK,
    EV_MOVE,
    EV_NPC_ATTACK,
    EV_PVP_ATTACK,
    EV_SET_HOME,
    EV_UPDATE_AVATAR,
    EV_UPDATE_COMBAT_STATS,
    EV_UPDATE_EQUIPMENT,
    EV_UPDATE_FLAG,
    EV_UPDATE_NAME,
    PLAYER_AVATAR_UPDATED,
    PLAYER_EQUIPMENT_UPDATED,
    PLAYER_FLAG_UPDATED,
    PLAYER_HEALTH_UPDATED,
    PLAYER_HOME_UPDATED,
    PLAYER_JOINED,
    PLAYER_LEFT,
    PLAYER_MOVED,
    PLAYER_NAME_UPDATED,
    WORLD_STATE,
)
from geo_utils import Position
from message_service import SocketTransport
from rate_limiter import OperationType, RateLimiter
from security_utils import redact_sensitive
from world import Avatar, Equipment, Player, World

logger = logging.getLogger(__name__)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def _text(value: Any, limit: int = 64) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value[:limit] if value else None


class SessionGateway:
    def __init__(self, world: World, chat: ChatRouter, combat: CombatResolver,
                 transport: SocketTransport, rate_limiter: Optional[RateLimiter] = None,
                 verify_token: Optional[TokenVerifier] = None):
        self.world = world
        self.chat = chat
        self.combat = combat
        self.transport = transport
        self.rate_limiter = rate_limiter or RateLimiter(enabled=False)
        self.verify_token = verify_token

    # --- helpers ---

    def _allow(self, sid: str, op: OperationType, name: str) -> bool:
        return self.rate_limiter.check_and_consume(sid, op, name)

    def _player(self, sid: str, data: Any, op: OperationType, name: str) -> Optional[Player]:
        """The authenticated player for ``sid`` if the event should be processed."""
        player = self.world.get_player(sid)
        if player is None:
            logger.debug("Dropping %s from unauthenticated session %s", name, sid)
            return None
        if not isinstance(data, dict):
            logger.debug("Dropping %s from %s: payload is not an object", name, sid)
            return None
        if not self._allow(sid, op, name):
            return None
        return player

    # --- connection lifecycle ---

    def handle_connect(self, sid: str) -> None:
        logger.info("Client connected: %s", sid)

    def handle_authenticate(self, sid: str, data: Any) -> None:
        if not self._allow(sid, OperationType.HEAVY, 'authenticate'):
            return
        try:
            identity = resolve_identity(data, self.verify_token)
        except AuthError as e:
            safe_payload = redact_sensitive(data) if isinstance(data, dict) else type(data).__name__
            logger.warning("Authentication failed for %s: %s (payload: %s)", sid, e, safe_payload)
            self.transport.unicast(sid, AUTH_ERROR, {'message': str(e)})
            return

        avatar = None
        if data.get('avatar') is not None:
            try:
                avatar = Avatar.from_dict(data['avatar'])
            except ValueError:
                logger.debug("Ignoring invalid avatar in login from %s", sid)
        flag = _text(data.get('flag'), 16)

        try:
            with atomic(f'account:{identity.persistent_id}'):
                old_sid = self.world.find_existing_session(identity.persistent_id, sid)
                if old_sid:
                    self._take_over(old_sid, identity.persistent_id)
                player = self.world.add_player(sid, identity.persistent_id, identity.display_name,
                                               avatar=avatar, flag=flag)
        except Exception:
            logger.exception("Failed to admit session %s", sid)
            self._release_account(identity.persistent_id)
            self.transport.unicast(sid, AUTH_ERROR, {'message': 'Authentication failed'})
            return

        logger.info("Player authenticated: %s (%s via %s)", player.username,
                    identity.persistent_id, identity.method)
        payload = player.to_dict()
        self.transport.unicast(sid, AUTH_SUCCESS, {'player': payload})
        self.transport.unicast(sid, WORLD_STATE, self.world.snapshot().to_dict())
        self.transport.broadcast_except(sid, PLAYER_JOINED, payload)

    def _take_over(self, old_sid: str, persistent_id: str) -> None:
        """Evict an older connection of the same account before admitting the new one."""
        logger.info("Session takeover for %s: evicting %s", persistent_id, old_sid)
        self._forget(old_sid, release_account=False)
        self.transport.broadcast_except(old_sid, PLAYER_LEFT, {'id': old_sid})
        self.transport.disconnect(old_sid)

    def _forget(self, sid: str, release_account: bool = True) -> Optional[Player]:
        player = self.world.remove_player(sid)
        self.rate_limiter.reset_bucket(sid)
        if player is None:
            return None
        self.combat.cancel_pending(sid)
        if release_account:
            self._release_account(player.persistent_id)
        return player

    def _release_account(self, persistent_id: str) -> None:
        """Drop the account lock once no live session uses it."""
        name = f'account:{persistent_id}'
        with atomic(name):
            if self.world.find_existing_session(persistent_id) is None:
                drop_lock(name)

    def handle_disconnect(self, sid: str) -> None:
        player = self._forget(sid)
        if player is None:
            logger.info("Client disconnected: %s", sid)
            return
        logger.info("Player disconnected: %s (%s)", player.username, sid)
        self.transport.broadcast_except(sid, PLAYER_LEFT, {'id': sid})

    # --- movement and cosmetics ---

    def handle_move(self, sid: str, data: Any) -> None:
        if self._player(sid, data, OperationType.BASIC, 'move') is None:
            return
        try:
            position = Position.from_dict(data)
        except ValueError:
            return
        player = self.world.update_position(sid, position)
        if player:
            self.transport.broadcast_except(sid, PLAYER_MOVED, {'id': sid, 'position': position.to_dict()})

    def handle_update_avatar(self, sid: str, data: Any) -> None:
        if self._player(sid, data, OperationType.BASIC, 'update_avatar') is None:
            return
        try:
            avatar = Avatar.from_dict(data.get('avatar'))
        except ValueError:
            return
        if self.world.update_avatar(sid, avatar):
            self.transport.broadcast_except(sid, PLAYER_AVATAR_UPDATED, {'id': sid, 'avatar': avatar.to_dict()})

    def handle_update_name(self, sid: str, data: Any) -> None:
        if self._player(sid, data, OperationType.BASIC, 'update_name') is None:
            return
        username = normalize_name(data.get('username'))
        if username is None:
            return
        if self.world.update_username(sid, username):
            self.transport.broadcast_except(sid, PLAYER_NAME_UPDATED, {'id': sid, 'username': username})

    def handle_update_flag(self, sid: str, data: Any) -> None:
        if self._player(sid, data, OperationType.BASIC, 'update_flag') is None:
            return
        flag = _text(data.get('flag'), 16)
        if flag is None:
            return
        if self.world.update_flag(sid, flag):
            self.transport.broadcast_except(sid, PLAYER_FLAG_UPDATED, {'id': sid, 'flag': flag})

    def handle_update_equipment(self, sid: str, data: Any) -> None:
        if self._player(sid, data, OperationType.BASIC, 'update_equipment') is None:
            return
        try:
            equipment = Equipment.from_dict(data.get('equipment'))
        except ValueError:
            return
        if self.world.update_equipment(sid, equipment):
            self.transport.broadcast_except(sid, PLAYER_EQUIPMENT_UPDATED,
                                            {'id': sid, 'equipment': equipment.to_dict()})

    def handle_set_home(self, sid: str, data: Any) -> None:
        if self._player(sid, data, OperationType.BASIC, 'set_home') is None:
            return
        try:
            position = Position.from_dict(data.get('position'))
        except ValueError:
            return
        if self.world.update_home(sid, position):
            self.transport.unicast(sid, PLAYER_HOME_UPDATED, {'position': position.to_dict()})

    def handle_update_combat_stats(self, sid: str, data: Any) -> None:
        if self._player(sid, data, OperationType.BASIC, 'update_combat_stats') is None:
            return
        health = _number(data.get('health'))
        max_health = _number(data.get('maxHealth'))
        level = _number(data.get('combatLevel'))
        if health is None or max_health is None or level is None:
            return
        player = self.world.update_combat_stats(sid, int(health), int(max_health), int(level))
        if player:
            self.transport.broadcast_except(sid, PLAYER_HEALTH_UPDATED, {
                'id': sid,
                'health': player.health,
                'maxHealth': player.max_health,
            })

    # --- chat ---

    def handle_chat(self, sid: str, data: Any) -> None:
        player = self._player(sid, data, OperationType.BASIC, 'chat')
        if player is None:
            return
        text = data.get('message')
        msg_type = data.get('type', 'global')
        if not isinstance(text, str) or msg_type not in CHAT_TYPES:
            return
        message = self.chat.create_message(sid, player.username, text, msg_type, player.position)
        self.transport.multicast(self.chat.recipients(message), CHAT_MESSAGE, message.to_dict())

    # --- combat ---

    def handle_combat_attack(self, sid: str, data: Any) -> None:
        if self._player(sid, data, OperationType.MODERATE, 'combat_attack') is None:
            return
        target_id = _text(data.get('targetId'), 128)
        damage = _number(data.get('damage'))
        if target_id is None or damage is None:
            return
        self.combat.legacy_attack(sid, target_id, _text(data.get('itemKey')) or '', damage)

    def handle_pvp_attack(self, sid: str, data: Any) -> None:
        if self._player(sid, data, OperationType.MODERATE, 'pvp_attack') is None:
            return
        target_id = _text(data.get('targetId'), 128)
        accuracy = _number(data.get('accuracy'))
        max_hit = _number(data.get('maxHit'))
        if target_id is None or accuracy is None or max_hit is None:
            return
        self.combat.attack_player(sid, target_id, _text(data.get('itemKey')) or '', accuracy, max_hit)

    def handle_npc_attack(self, sid: str, data: Any) -> None:
        if self._player(sid, data, OperationType.MODERATE, 'npc_attack') is None:
            return
        npc_id = _text(data.get('npcId'), 128)
        accuracy = _number(data.get('accuracy'))
        max_hit = _number(data.get('maxHit'))
        if npc_id is None or accuracy is None or max_hit is None:
            return
        self.combat.attack_npc(sid, npc_id, _text(data.get('itemKey')) or '', accuracy, max_hit)


def _bind(name: str, handler: Callable[[str, Any], None], get_sid: Callable[[], str]) -> Callable:
    def _on_event(data=None, *_extra):
        sid = get_sid()
        try:
            handler(sid, data)
        except Exception:
            logger.exception("Unhandled error in %s handler for %s", name, sid)
    _on_event.__name__ = f"on_{name.replace(':', '_')}"
    return _on_event


def register_handlers(socketio: Any, gateway: SessionGateway, get_sid: Callable[[], str]) -> None:
    """Register every gateway handler on the Flask-SocketIO instance."""

    def _on_connect(auth=None):
        gateway.handle_connect(get_sid())

    def _on_disconnect(reason=None):
        sid = get_sid()
        try:
            gateway.handle_disconnect(sid)
        except Exception:
            logger.exception("Unhandled error in disconnect handler for %s", sid)

    socketio.on_event('connect', _on_connect)
    socketio.on_event('disconnect', _on_disconnect)

    routes = {
        EV_AUTHENTICATE: gateway.handle_authenticate,
        EV_MOVE: gateway.handle_move,
        EV_UPDATE_AVATAR: gateway.handle_update_avatar,
        EV_UPDATE_NAME: gateway.handle_update_name,
        EV_UPDATE_FLAG: gateway.handle_update_flag,
        EV_UPDATE_EQUIPMENT: gateway.handle_update_equipment,
        EV_SET_HOME: gateway.handle_set_home,
        EV_UPDATE_COMBAT_STATS: gateway.handle_update_combat_stats,
        EV_CHAT_SEND: gateway.handle_chat,
        EV_COMBAT_ATTACK: gateway.handle_combat_attack,
        EV_PVP_ATTACK: gateway.handle_pvp_attack,
        EV_NPC_ATTACK: gateway.handle_npc_attack,
    }
    for event, handler in routes.items():
        socketio.on_event(event, _bind(event, handler, get_sid))


__all__ = [
    'SessionGateway',
    'register_handlers',
]
