"""Where the numbers behind an attack come from.

Clients compute accuracy and max hit from their own skill levels, items and
equipment and send the results with every attack. Whether the server believes
them is a deployment decision, made explicit here:

- TrustClientInputSource: use the client's numbers as sent (default, matches
  what existing clients expect).
- ServerSkillInputSource: ignore the client's numbers and recompute from the
  attacker's stored combat level and the server's ITEM_POWER table. Legacy
  pre-computed damage is capped at the recomputed max hit.

Select with GEOMMO_COMBAT_INPUT=client|server.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from constants import (
    ACCURACY_CEILING,
    DEFAULT_ITEM_POWER,
    HARDENED_ACCURACY_CAP,
    HARDENED_ACCURACY_PER_LEVEL,
    HARDENED_BASE_ACCURACY,
    ITEM_POWER,
    LEVELS_PER_BONUS_HIT,
    MAX_COMBAT_LEVEL,
)
from world import Player

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttackInputs:
    accuracy: float
    max_hit: int


class CombatInputSource(Protocol):
    name: str

    def attack_inputs(self, attacker: Player, item_key: str,
                      accuracy: float, max_hit: float) -> AttackInputs: ...

    def legacy_damage(self, attacker: Player, item_key: str, damage: float) -> int: ...


class TrustClientInputSource:
    name = 'client'

    def attack_inputs(self, attacker: Player, item_key: str,
                      accuracy: float, max_hit: float) -> AttackInputs:
        return AttackInputs(accuracy=float(accuracy), max_hit=max(0, int(max_hit)))

    def legacy_damage(self, attacker: Player, item_key: str, damage: float) -> int:
        return max(0, int(damage))


class ServerSkillInputSource:
    name = 'server'

    @staticmethod
    def _level(attacker: Player) -> int:
        level = attacker.combat_level or 1
        return min(MAX_COMBAT_LEVEL, max(1, level))

    def attack_inputs(self, attacker: Player, item_key: str,
                      accuracy: float, max_hit: float) -> AttackInputs:
        level = self._level(attacker)
        acc = min(HARDENED_ACCURACY_CAP, HARDENED_BASE_ACCURACY + level * HARDENED_ACCURACY_PER_LEVEL)
        hit = ITEM_POWER.get(item_key, DEFAULT_ITEM_POWER) + level // LEVELS_PER_BONUS_HIT
        if accuracy > acc or max_hit > hit:
            logger.debug("Client combat numbers for %s exceed server values (acc %.1f > %.1f or max %s > %s)",
                         attacker.sid, accuracy, acc, max_hit, hit)
        return AttackInputs(accuracy=min(acc, ACCURACY_CEILING), max_hit=hit)

    def legacy_damage(self, attacker: Player, item_key: str, damage: float) -> int:
        cap = self.attack_inputs(attacker, item_key, 0.0, 0).max_hit
        return min(cap, max(0, int(damage)))


def make_input_source(kind: Optional[str]) -> CombatInputSource:
    """Build the input source named by ``kind`` ('client' or 'server')."""
    value = (kind or 'client').strip().lower()
    if value == 'server':
        source: CombatInputSource = ServerSkillInputSource()
    else:
        if value != 'client':
            logger.warning("Unknown combat input source %r; trusting client values", kind)
        source = TrustClientInputSource()
    if source.name == 'client':
        logger.warning("Combat input source: client (accuracy, maxHit and damage are taken from clients as sent)")
    else:
        logger.info("Combat input source: server (recomputed from stored combat level)")
    return source
