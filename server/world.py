"""World model: the authoritative in-memory registry of players and NPCs.

Concepts:
- Player: one live, authenticated connection. Keyed by the Socket.IO session id
  (``sid``), which changes on every reconnect. ``persistent_id`` is the stable
  account id (token subject or wallet address) used as the storage key.
- NPC: one of a fixed set of non-player characters spawned at process start
  from npc_templates. NPCs are never removed, only depleted and restored.
- World: owns both maps and the accessors that mutate them. It does no
  networking; the gateway and services decide who hears about each change.

Persistence is a side channel: every mutation that touches a persisted field
hands the merged record to the store through safe_call, and a failing store
never changes what the registry returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from concurrency_utils import atomic, drop_lock
from constants import (
    DEFAULT_AVATAR,
    DEFAULT_FLAG,
    DEFAULT_PLAYER_HEALTH,
    DEFAULT_POSITION,
)
from geo_utils import Position, distance_meters
from persistence_utils import PlayerRecordStore
from safe_utils import safe_call, safe_call_with_default


def _iso(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _short_str(value: Any, limit: int) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value[:limit] if value else None


@dataclass
class Avatar:
    text: str
    color: str

    def to_dict(self) -> dict:
        return {'text': self.text, 'color': self.color}

    @staticmethod
    def from_dict(data: Any) -> "Avatar":
        """Validate an untrusted avatar payload; raises ValueError when unusable."""
        if not isinstance(data, dict):
            raise ValueError("avatar must be an object")
        text = _short_str(data.get('text'), 16)
        color = _short_str(data.get('color'), 32)
        if text is None or color is None:
            raise ValueError("avatar needs text and color")
        return Avatar(text=text, color=color)

    @staticmethod
    def default() -> "Avatar":
        return Avatar(**DEFAULT_AVATAR)


EQUIPMENT_SLOTS = ('skin', 'hat', 'held', 'aura')


@dataclass
class Equipment:
    """Cosmetic set; each slot holds an item key or None when empty."""
    skin: Optional[str] = None
    hat: Optional[str] = None
    held: Optional[str] = None
    aura: Optional[str] = None

    def to_dict(self) -> dict:
        return {slot: getattr(self, slot) for slot in EQUIPMENT_SLOTS}

    @staticmethod
    def from_dict(data: Any) -> "Equipment":
        if not isinstance(data, dict):
            raise ValueError("equipment must be an object")
        return Equipment(**{slot: _short_str(data.get(slot), 64) for slot in EQUIPMENT_SLOTS})


@dataclass
class Player:
    sid: str
    persistent_id: str
    username: str
    position: Position
    avatar: Avatar
    flag: str = DEFAULT_FLAG
    equipment: Optional[Equipment] = None
    home_position: Optional[Position] = None
    health: Optional[int] = None
    max_health: Optional[int] = None
    combat_level: Optional[int] = None
    last_seen: datetime = field(default_factory=_now)

    @property
    def current_health(self) -> int:
        return DEFAULT_PLAYER_HEALTH if self.health is None else self.health

    @property
    def current_max_health(self) -> int:
        return DEFAULT_PLAYER_HEALTH if self.max_health is None else self.max_health

    def to_dict(self) -> dict:
        """Wire shape sent to clients (auth:success, player:joined, world:state)."""
        out: Dict[str, Any] = {
            'id': self.sid,
            'odId': self.persistent_id,
            'username': self.username,
            'position': self.position.to_dict(),
            'flag': self.flag,
            'avatar': self.avatar.to_dict(),
            'lastSeen': _iso(self.last_seen),
        }
        if self.home_position is not None:
            out['homePosition'] = self.home_position.to_dict()
        if self.equipment is not None:
            out['equipment'] = self.equipment.to_dict()
        if self.health is not None:
            out['health'] = self.health
        if self.max_health is not None:
            out['maxHealth'] = self.max_health
        if self.combat_level is not None:
            out['combatLevel'] = self.combat_level
        return out

    def to_record(self) -> dict:
        """Fields merged into the persisted record for ``persistent_id``."""
        rec: Dict[str, Any] = {
            'username': self.username,
            'position': self.position.to_dict(),
            'flag': self.flag,
            'avatar': self.avatar.to_dict(),
        }
        if self.equipment is not None:
            rec['equipment'] = self.equipment.to_dict()
        if self.home_position is not None:
            rec['homePosition'] = self.home_position.to_dict()
        if self.combat_level is not None:
            rec['combatLevel'] = self.combat_level
        return rec


@dataclass
class NPC:
    id: str
    name: str
    title: str
    icon: str
    tier: str
    base_city: str
    position: Position
    health: int
    max_health: int
    damage: int
    attack_items: List[str] = field(default_factory=list)
    drops: List[str] = field(default_factory=list)
    drop_chance: float = 0.0
    color: str = '#ffffff'
    particle: str = 'none'
    equipment: Optional[str] = None
    sells_equipment: Optional[str] = None
    equipped_aura: Optional[str] = None

    @staticmethod
    def from_spec(spec: dict) -> "NPC":
        max_health = int(spec['maxHealth'])
        return NPC(
            id=spec['id'],
            name=spec['name'],
            title=spec.get('title', ''),
            icon=spec.get('icon', ''),
            tier=spec.get('tier', 'battle'),
            base_city=spec.get('baseCity', ''),
            position=Position.from_dict(spec['position']),
            health=max_health,
            max_health=max_health,
            damage=int(spec.get('damage', 0)),
            attack_items=list(spec.get('attackItems', [])),
            drops=list(spec.get('drops', [])),
            drop_chance=float(spec.get('dropChance', 0.0)),
            color=spec.get('color', '#ffffff'),
            particle=spec.get('particle', 'none'),
            equipment=spec.get('equipment'),
            sells_equipment=spec.get('sellsEquipment'),
            equipped_aura=spec.get('equippedAura'),
        )

    def to_dict(self) -> dict:
        out: Dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'title': self.title,
            'icon': self.icon,
            'tier': self.tier,
            'baseCity': self.base_city,
            'position': self.position.to_dict(),
            'health': self.health,
            'maxHealth': self.max_health,
            'damage': self.damage,
            'attackItems': list(self.attack_items),
            'color': self.color,
            'particle': self.particle,
            'isBattleOnly': self.tier != 'boss',
            'isTraining': self.tier == 'training',
            'drops': list(self.drops),
            'dropChance': self.drop_chance,
        }
        if self.equipment:
            out['equipment'] = self.equipment
        if self.sells_equipment:
            out['sellsEquipment'] = self.sells_equipment
        if self.equipped_aura:
            out['equippedAura'] = self.equipped_aura
        return out


@dataclass(frozen=True)
class WorldSnapshot:
    """Read-only composite handed to a freshly authenticated connection."""
    players: tuple
    npcs: tuple

    def to_dict(self) -> dict:
        return {'players': list(self.players), 'npcs': list(self.npcs)}


def _position_or_none(data: Any) -> Optional[Position]:
    if data is None:
        return None
    return safe_call_with_default(Position.from_dict, None, data)


class World:
    def __init__(self, store: Optional[PlayerRecordStore] = None,
                 npc_specs: Optional[Iterable[dict]] = None) -> None:
        # Live players by session id
        self.players: Dict[str, Player] = {}
        # Fixed NPC set by npc id
        self.npcs: Dict[str, NPC] = {}
        self.store = store
        for spec in (npc_specs or ()):
            npc = NPC.from_spec(spec)
            self.npcs[npc.id] = npc

    # --- persistence side channel ---

    def _persist(self, player: Player) -> None:
        if self.store is None:
            return
        safe_call(self.store.save_player_record, player.persistent_id, player.to_record())

    def _load_record(self, persistent_id: str) -> Optional[dict]:
        if self.store is None:
            return None
        rec = safe_call_with_default(self.store.load_player_record, None, persistent_id)
        return rec if isinstance(rec, dict) else None

    # --- players ---

    def add_player(self, sid: str, persistent_id: str, username: str,
                   avatar: Optional[Avatar] = None,
                   position: Optional[Position] = None,
                   flag: Optional[str] = None) -> Player:
        """Register a live player, merging in any persisted record.

        Precedence: values passed by the caller win over the stored record,
        except the username: a stored username always wins over the one
        derived by the login transport. Missing values fall back to defaults.
        """
        if not isinstance(sid, str) or not sid:
            raise ValueError("sid must be a non-empty string")
        if not isinstance(persistent_id, str) or not persistent_id:
            raise ValueError("persistent_id is required")
        rec = self._load_record(persistent_id) or {}

        stored_name = _short_str(rec.get('username'), 64)
        stored_avatar = safe_call_with_default(Avatar.from_dict, None, rec['avatar']) if 'avatar' in rec else None
        stored_equipment = safe_call_with_default(Equipment.from_dict, None, rec['equipment']) if 'equipment' in rec else None
        stored_level = rec.get('combatLevel')

        player = Player(
            sid=sid,
            persistent_id=persistent_id,
            username=stored_name or username,
            position=position or _position_or_none(rec.get('position')) or Position.from_dict(DEFAULT_POSITION),
            avatar=avatar or stored_avatar or Avatar.default(),
            flag=flag or _short_str(rec.get('flag'), 16) or DEFAULT_FLAG,
            equipment=stored_equipment,
            home_position=_position_or_none(rec.get('homePosition')),
            combat_level=stored_level if isinstance(stored_level, int) and not isinstance(stored_level, bool) else None,
        )
        with atomic('registry'):
            self.players[sid] = player
        self._persist(player)
        return player

    def find_existing_session(self, persistent_id: str, excluding_sid: str | None = None) -> Optional[str]:
        """Return another live sid already bound to ``persistent_id``, if any."""
        with atomic('registry'):
            for sid, player in self.players.items():
                if sid != excluding_sid and player.persistent_id == persistent_id:
                    return sid
        return None

    def get_player(self, sid: str | None) -> Optional[Player]:
        if not sid:
            return None
        return self.players.get(sid)

    def all_players(self) -> List[Player]:
        with atomic('registry'):
            return list(self.players.values())

    def remove_player(self, sid: str) -> Optional[Player]:
        with atomic('registry'):
            player = self.players.pop(sid, None)
        if player is None:
            return None
        drop_lock(f'player:{sid}')
        if self.store is not None:
            safe_call(self.store.touch_last_seen, player.persistent_id)
        return player

    def _mutate(self, sid: str, fn) -> Optional[Player]:
        player = self.players.get(sid)
        if player is None:
            return None
        with atomic(f'player:{sid}'):
            fn(player)
            player.last_seen = _now()
        self._persist(player)
        return player

    def update_position(self, sid: str, position: Position) -> Optional[Player]:
        return self._mutate(sid, lambda p: setattr(p, 'position', position))

    def update_avatar(self, sid: str, avatar: Avatar) -> Optional[Player]:
        return self._mutate(sid, lambda p: setattr(p, 'avatar', avatar))

    def update_username(self, sid: str, username: str) -> Optional[Player]:
        return self._mutate(sid, lambda p: setattr(p, 'username', username))

    def update_flag(self, sid: str, flag: str) -> Optional[Player]:
        return self._mutate(sid, lambda p: setattr(p, 'flag', flag))

    def update_equipment(self, sid: str, equipment: Equipment) -> Optional[Player]:
        return self._mutate(sid, lambda p: setattr(p, 'equipment', equipment))

    def update_home(self, sid: str, position: Position) -> Optional[Player]:
        return self._mutate(sid, lambda p: setattr(p, 'home_position', position))

    def update_combat_stats(self, sid: str, health: int, max_health: int, combat_level: int) -> Optional[Player]:
        """Overwrite combat stats as reported by the client, clamped to keep 0 <= health <= max."""
        max_health = max(1, int(max_health))

        def _apply(p: Player) -> None:
            p.max_health = max_health
            p.health = min(max_health, max(0, int(health)))
            p.combat_level = max(1, int(combat_level))
        return self._mutate(sid, _apply)

    def apply_player_damage(self, sid: str, damage: int) -> Optional[Tuple[Player, int]]:
        """health = max(0, health - damage) under the player's lock; unset stats default to 100.

        Returns the player and the health it had before the hit.
        """
        player = self.players.get(sid)
        if player is None:
            return None
        with atomic(f'player:{sid}'):
            before = player.current_health
            player.max_health = player.current_max_health
            player.health = max(0, before - max(0, int(damage)))
        return player, before

    def restore_player_health(self, sid: str) -> Optional[Player]:
        player = self.players.get(sid)
        if player is None:
            return None
        with atomic(f'player:{sid}'):
            player.max_health = player.current_max_health
            player.health = player.max_health
        return player

    def get_players_nearby(self, position: Position, radius_m: float) -> List[Player]:
        return [p for p in self.all_players() if distance_meters(position, p.position) <= radius_m]

    def snapshot(self) -> WorldSnapshot:
        return WorldSnapshot(
            players=tuple(p.to_dict() for p in self.all_players()),
            npcs=tuple(n.to_dict() for n in self.npcs.values()),
        )

    # --- NPCs ---

    def get_npc(self, npc_id: str) -> Optional[NPC]:
        return self.npcs.get(npc_id)

    def get_all_npcs(self) -> List[NPC]:
        return list(self.npcs.values())

    def damage_npc(self, npc_id: str, amount: int) -> int:
        """Subtract ``amount`` (negative treated as 0) and return the new health, never below 0."""
        npc = self.npcs.get(npc_id)
        if npc is None:
            return 0
        with atomic(f'npc:{npc_id}'):
            npc.health = max(0, npc.health - max(0, int(amount)))
            return npc.health

    def reset_npc_health(self, npc_id: str) -> None:
        npc = self.npcs.get(npc_id)
        if npc is None:
            return
        with atomic(f'npc:{npc_id}'):
            npc.health = npc.max_health

    def is_defeated(self, npc_id: str) -> bool:
        npc = self.npcs.get(npc_id)
        return npc.health <= 0 if npc else True
