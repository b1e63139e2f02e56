"""Combat resolution for player-vs-NPC and player-vs-player attacks.

Every attack has the same shape: roll accuracy, roll damage on a hit, apply
it to the defender, tell the people who need to know, and on defeat schedule
the restore.

- Accuracy: draw uniform in [0, 100); hit iff draw < accuracy.
- Damage: uniform integer in [0, max_hit] on a hit, 0 on a miss.
- Where accuracy and max_hit come from is decided by the CombatInputSource.

PvP (and the legacy pre-computed-damage path) is refused when either side
stands inside a safe zone; the attacker gets combat:blocked with the reason
and nothing changes. Defeated NPCs come back at full health after a delay
that depends on their tier; defeated players are restored after
PLAYER_RESPAWN_SECONDS. Nothing here is persisted.

Unknown attackers, targets and NPC ids are dropped without a reply: they are
races with a disconnect, not errors.
"""
from __future__ import annotations

import logging
import random
from typing import List, Optional, Tuple

from combat_inputs import AttackInputs, CombatInputSource, TrustClientInputSource
from constants import (
    ACCURACY_CEILING,
    COMBAT_ATTACKED,
    COMBAT_BLOCKED,
    COMBAT_DIED,
    COMBAT_HIT,
    NPC_ATTACK_RESULT,
    NPC_DEFEATED,
    NPC_HEALTH_UPDATE,
    NPC_RESPAWN_SECONDS,
    NPC_RESPAWNED,
    PLAYER_HEALTH_UPDATED,
    PLAYER_RESPAWN_SECONDS,
    PVP_ATTACK_RESULT,
    PVP_COMBAT_EFFECT,
    PVP_DAMAGED,
    PVP_DEFEATED,
)
from geo_utils import safe_zone_name
from message_service import SocketTransport
from task_scheduler import TaskScheduler
from world import NPC, Player, World

logger = logging.getLogger(__name__)


class CombatResolver:
    def __init__(self, world: World, transport: SocketTransport, scheduler: TaskScheduler,
                 rng: Optional[random.Random] = None,
                 input_source: Optional[CombatInputSource] = None):
        self.world = world
        self.transport = transport
        self.scheduler = scheduler
        self.rng = rng or random.Random()
        self.inputs = input_source or TrustClientInputSource()

    # --- rolls ---

    def roll(self, inputs: AttackInputs) -> Tuple[bool, int]:
        """(did_hit, damage) for one attack."""
        did_hit = self.rng.random() * ACCURACY_CEILING < inputs.accuracy
        if not did_hit:
            return False, 0
        return True, self.rng.randint(0, max(0, inputs.max_hit))

    def roll_drops(self, npc: NPC) -> List[str]:
        if npc.drops and self.rng.random() < npc.drop_chance:
            return [self.rng.choice(npc.drops)]
        return []

    # --- PvE ---

    def attack_npc(self, attacker_sid: str, npc_id: str, item_key: str,
                   accuracy: float, max_hit: float) -> bool:
        """Resolve one attack on an NPC. Returns False when it was dropped."""
        attacker = self.world.get_player(attacker_sid)
        npc = self.world.get_npc(npc_id)
        if attacker is None or npc is None:
            return False

        inputs = self.inputs.attack_inputs(attacker, item_key, accuracy, max_hit)
        did_hit, damage = self.roll(inputs)
        health = self.world.damage_npc(npc_id, damage)

        self.transport.unicast(attacker_sid, NPC_ATTACK_RESULT, {
            'npcId': npc_id,
            'damage': damage,
            'didHit': did_hit,
            'npcHealth': health,
            'npcMaxHealth': npc.max_health,
        })
        self.transport.broadcast(NPC_HEALTH_UPDATE, {
            'npcId': npc_id,
            'health': health,
            'maxHealth': npc.max_health,
        })

        if health == 0:
            # Only the hit that arms the respawn timer counts as the kill
            delay = NPC_RESPAWN_SECONDS.get(npc.tier, NPC_RESPAWN_SECONDS['battle'])
            if not self.scheduler.schedule_if_absent(f'npc:{npc_id}', delay, self.respawn_npc, npc_id):
                return True
            drops = self.roll_drops(npc)
            logger.info("NPC %s defeated by %s (drops: %s)", npc_id, attacker.username, drops)
            self.transport.unicast(attacker_sid, NPC_DEFEATED, {
                'npcId': npc_id,
                'npcName': npc.name,
                'drops': drops,
            })
        return True

    def respawn_npc(self, npc_id: str) -> None:
        npc = self.world.get_npc(npc_id)
        if npc is None:
            return
        self.world.reset_npc_health(npc_id)
        logger.info("NPC %s respawned", npc_id)
        self.transport.broadcast(NPC_RESPAWNED, {'npcId': npc_id})
        self.transport.broadcast(NPC_HEALTH_UPDATE, {
            'npcId': npc_id,
            'health': npc.health,
            'maxHealth': npc.max_health,
        })

    # --- PvP ---

    def _players(self, attacker_sid: str, target_sid: str) -> Optional[Tuple[Player, Player]]:
        if not target_sid or attacker_sid == target_sid:
            return None
        attacker = self.world.get_player(attacker_sid)
        target = self.world.get_player(target_sid)
        if attacker is None or target is None:
            return None
        return attacker, target

    def blocked_reason(self, attacker: Player, target: Player) -> Optional[str]:
        """Human-readable reason the attack is refused, or None when PvP is allowed."""
        zone = safe_zone_name(attacker.position)
        if zone:
            return f"You cannot attack from inside the {zone} safe zone."
        zone = safe_zone_name(target.position)
        if zone:
            return f"{target.username} is protected by the {zone} safe zone."
        return None

    def _check_blocked(self, attacker: Player, target: Player) -> bool:
        reason = self.blocked_reason(attacker, target)
        if reason is None:
            return False
        logger.debug("Attack %s -> %s blocked: %s", attacker.sid, target.sid, reason)
        self.transport.unicast(attacker.sid, COMBAT_BLOCKED, {'reason': reason})
        return True

    def _broadcast_health(self, player: Player) -> None:
        self.transport.broadcast(PLAYER_HEALTH_UPDATED, {
            'id': player.sid,
            'health': player.current_health,
            'maxHealth': player.current_max_health,
        })

    def attack_player(self, attacker_sid: str, target_sid: str, item_key: str,
                      accuracy: float, max_hit: float) -> bool:
        """Resolve one server-rolled PvP attack. Returns False when it was dropped."""
        pair = self._players(attacker_sid, target_sid)
        if pair is None:
            return False
        attacker, target = pair
        if self._check_blocked(attacker, target):
            return True

        inputs = self.inputs.attack_inputs(attacker, item_key, accuracy, max_hit)
        did_hit, damage = self.roll(inputs)
        applied = self.world.apply_player_damage(target_sid, damage)
        if applied is None:
            return False
        target, before = applied

        self.transport.unicast(attacker_sid, PVP_ATTACK_RESULT, {
            'targetId': target_sid,
            'damage': damage,
            'didHit': did_hit,
            'targetHealth': target.current_health,
            'targetMaxHealth': target.current_max_health,
        })
        self.transport.unicast(target_sid, PVP_DAMAGED, {
            'attackerId': attacker_sid,
            'attackerName': attacker.username,
            'damage': damage,
            'health': target.current_health,
            'maxHealth': target.current_max_health,
        })
        self.transport.broadcast(PVP_COMBAT_EFFECT, {
            'attackerId': attacker_sid,
            'attackerName': attacker.username,
            'targetId': target_sid,
            'targetName': target.username,
            'itemKey': item_key,
            'damage': damage,
            'didHit': did_hit,
        })
        self._broadcast_health(target)

        if before > 0 and target.current_health == 0:
            logger.info("%s defeated %s in PvP", attacker.username, target.username)
            self.transport.unicast(target_sid, PVP_DEFEATED, {
                'killerId': attacker_sid,
                'killerName': attacker.username,
            })
            self._schedule_restore(target_sid)
        return True

    def legacy_attack(self, attacker_sid: str, target_sid: str, item_key: str, damage: float) -> bool:
        """Apply client-computed damage (combat:attack). Returns False when it was dropped."""
        pair = self._players(attacker_sid, target_sid)
        if pair is None:
            return False
        attacker, target = pair
        if self._check_blocked(attacker, target):
            return True

        amount = self.inputs.legacy_damage(attacker, item_key, damage)
        applied = self.world.apply_player_damage(target_sid, amount)
        if applied is None:
            return False
        target, before = applied

        self.transport.unicast(attacker_sid, COMBAT_HIT, {
            'targetId': target_sid,
            'damage': amount,
            'targetHealth': target.current_health,
        })
        self.transport.unicast(target_sid, COMBAT_ATTACKED, {
            'attackerId': attacker_sid,
            'attackerName': attacker.username,
            'damage': amount,
            'itemKey': item_key,
        })
        self._broadcast_health(target)

        if before > 0 and target.current_health == 0:
            logger.info("%s killed %s (legacy combat)", attacker.username, target.username)
            self.transport.broadcast(COMBAT_DIED, {
                'playerId': target_sid,
                'killerName': attacker.username,
            })
            self._schedule_restore(target_sid)
        return True

    def _schedule_restore(self, sid: str) -> None:
        self.scheduler.schedule(f'player:{sid}', PLAYER_RESPAWN_SECONDS, self.restore_player, sid)

    def restore_player(self, sid: str) -> None:
        """Bring a defeated player back to full health; no-op if they left meanwhile."""
        player = self.world.restore_player_health(sid)
        if player is None:
            return
        self._broadcast_health(player)

    def cancel_pending(self, sid: str) -> None:
        self.scheduler.cancel(f'player:{sid}')
