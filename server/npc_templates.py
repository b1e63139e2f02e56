"""Fixed NPC tables.

Three tiers are spawned once at process start:
- boss: four legendary NPCs, one per boss city, tradeable, no drop table
- battle: mid-strength mobs spread over several cities with rare drops
- training: weak mobs for beginners, only in cities without a boss

``iter_npc_specs()`` expands the tables into flat spec dicts that
``world.NPC.from_spec`` turns into live NPCs.
"""

from __future__ import annotations

import logging
from typing import Iterator

from geo_utils import city_position

logger = logging.getLogger(__name__)


BOSS_TEMPLATES = {
    'glacius': {
        'id': 'npc_frost_warden',
        'name': 'Glacius',
        'title': 'Frost Warden',
        'icon': '🧊',
        'equipment': 'skin_snowball',
        'sellsEquipment': 'aura_frost',
        'baseCity': 'Sydney',
        'offsetLat': 0.018,
        'offsetLng': 0.0,
        'baseHealth': 8000,
        'baseDamage': 75,
        'attackItems': ['lightningshard', 'mistessence'],
        'color': '#88ddff',
        'particle': 'frost',
        'equippedAura': 'aura_frost',
    },
    'voltarus': {
        'id': 'npc_storm_herald',
        'name': 'Voltarus',
        'title': 'Storm Herald',
        'icon': '⛈️',
        'equipment': 'skin_lightning',
        'sellsEquipment': 'aura_lightning',
        'baseCity': 'Tokyo',
        'offsetLat': 0.0,
        'offsetLng': 0.022,
        'baseHealth': 10000,
        'baseDamage': 90,
        'attackItems': ['lightningshard', 'mistessence'],
        'color': '#ffff00',
        'particle': 'lightning',
        'equippedAura': 'aura_lightning',
    },
    'nyx': {
        'id': 'npc_void_walker',
        'name': 'Nyx',
        'title': 'Void Walker',
        'icon': '🌀',
        'equipment': 'skin_void',
        'sellsEquipment': 'aura_void',
        'baseCity': 'London',
        'offsetLat': 0.018,
        'offsetLng': 0.0,
        'baseHealth': 12000,
        'baseDamage': 110,
        'attackItems': ['mistessence', 'lightningshard'],
        'color': '#660099',
        'particle': 'void',
        'equippedAura': 'aura_void',
    },
    'solara': {
        'id': 'npc_light_bringer',
        'name': 'Solara',
        'title': 'Light Bringer',
        'icon': '🌟',
        'equipment': 'skin_flame',
        'sellsEquipment': 'aura_holy',
        'baseCity': 'New York',
        'offsetLat': 0.0,
        'offsetLng': -0.022,
        'baseHealth': 15000,
        'baseDamage': 130,
        'attackItems': ['lightningshard', 'mistessence'],
        'color': '#ffffaa',
        'particle': 'holy',
        'equippedAura': 'aura_holy',
    },
}

BATTLE_TEMPLATES = {
    'shadow_imp': {
        'name': 'Shadow Imp', 'title': 'Dark Minion', 'icon': '🦇',
        'baseHealth': 1500, 'baseDamage': 25, 'attackItems': ['mistessence'],
        'color': '#4a0080', 'particle': 'void',
        'drops': ['shadow_essence', 'dark_fragment'], 'dropChance': 0.15,
    },
    'ember_sprite': {
        'name': 'Ember Sprite', 'title': 'Fire Spirit', 'icon': '🔥',
        'baseHealth': 1800, 'baseDamage': 30, 'attackItems': ['lightningshard'],
        'color': '#ff4400', 'particle': 'fire',
        'drops': ['ember_shard', 'flame_core'], 'dropChance': 0.15,
    },
    'moss_golem': {
        'name': 'Moss Golem', 'title': 'Ancient Guardian', 'icon': '🌿',
        'baseHealth': 2500, 'baseDamage': 20, 'attackItems': ['mistessence'],
        'color': '#228b22', 'particle': 'nature',
        'drops': ['ancient_bark', 'living_vine'], 'dropChance': 0.12,
    },
    'crystal_wisp': {
        'name': 'Crystal Wisp', 'title': 'Gem Spirit', 'icon': '💎',
        'baseHealth': 1200, 'baseDamage': 35, 'attackItems': ['lightningshard'],
        'color': '#00ffff', 'particle': 'crystal',
        'drops': ['crystal_shard', 'prismatic_gem'], 'dropChance': 0.10,
    },
    'dust_devil': {
        'name': 'Dust Devil', 'title': 'Wind Elemental', 'icon': '🌪️',
        'baseHealth': 1600, 'baseDamage': 28, 'attackItems': ['mistessence', 'lightningshard'],
        'color': '#c2b280', 'particle': 'wind',
        'drops': ['wind_fragment', 'storm_dust'], 'dropChance': 0.15,
    },
    'frost_minion': {
        'name': 'Frost Minion', 'title': 'Ice Servant', 'icon': '❄️',
        'baseHealth': 2000, 'baseDamage': 32, 'attackItems': ['mistessence'],
        'color': '#b0e0e6', 'particle': 'frost',
        'drops': ['frost_shard', 'frozen_heart'], 'dropChance': 0.12,
    },
}

TRAINING_TEMPLATES = {
    'slime': {
        'name': 'Slime', 'title': 'Weak Creature', 'icon': '🟢',
        'baseHealth': 200, 'baseDamage': 5, 'attackItems': ['cloudwisp'],
        'color': '#44ff44', 'particle': 'none',
        'drops': ['cloudwisp'], 'dropChance': 0.25,
    },
    'rat': {
        'name': 'Giant Rat', 'title': 'Pest', 'icon': '🐀',
        'baseHealth': 300, 'baseDamage': 8, 'attackItems': ['cloudwisp'],
        'color': '#888888', 'particle': 'none',
        'drops': ['raindrop'], 'dropChance': 0.20,
    },
    'beetle': {
        'name': 'Fire Beetle', 'title': 'Insect', 'icon': '🪲',
        'baseHealth': 400, 'baseDamage': 10, 'attackItems': ['sunstone'],
        'color': '#ff6600', 'particle': 'fire',
        'drops': ['sunstone', 'ember_shard'], 'dropChance': 0.18,
    },
    'bat': {
        'name': 'Cave Bat', 'title': 'Flying Pest', 'icon': '🦇',
        'baseHealth': 350, 'baseDamage': 12, 'attackItems': ['mistessence'],
        'color': '#553366', 'particle': 'void',
        'drops': ['mistessence', 'shadow_essence'], 'dropChance': 0.15,
    },
    'spider': {
        'name': 'Giant Spider', 'title': 'Arachnid', 'icon': '🕷️',
        'baseHealth': 500, 'baseDamage': 15, 'attackItems': ['mistessence'],
        'color': '#222222', 'particle': 'none',
        'drops': ['ancient_bark', 'living_vine'], 'dropChance': 0.12,
    },
}

# (kind, city, offset_lat, offset_lng)
BATTLE_SPAWNS = [
    ('shadow_imp', 'London', -0.015, 0.012),
    ('shadow_imp', 'Berlin', 0.012, -0.010),
    ('shadow_imp', 'Cairo', -0.010, 0.015),
    ('ember_sprite', 'Dubai', 0.015, 0.010),
    ('ember_sprite', 'Rio de Janeiro', -0.012, 0.015),
    ('ember_sprite', 'Mumbai', 0.010, -0.012),
    ('moss_golem', 'Singapore', -0.010, 0.012),
    ('moss_golem', 'Sydney', -0.015, -0.010),
    ('moss_golem', 'Rio de Janeiro', 0.015, -0.012),
    ('crystal_wisp', 'Tokyo', -0.015, -0.012),
    ('crystal_wisp', 'Singapore', 0.012, -0.010),
    ('crystal_wisp', 'Dubai', -0.012, -0.015),
    ('dust_devil', 'Cairo', 0.015, -0.010),
    ('dust_devil', 'Los Angeles', -0.012, 0.015),
    ('dust_devil', 'Mumbai', -0.015, 0.010),
    ('frost_minion', 'Berlin', -0.012, 0.015),
    ('frost_minion', 'London', 0.010, -0.015),
    ('frost_minion', 'New York', 0.018, 0.015),
]

# Training mobs only spawn in cities without a boss
TRAINING_SPAWNS = [
    ('slime', 'Paris', 0.006, 0.008),
    ('slime', 'Paris', -0.008, 0.006),
    ('slime', 'Paris', 0.004, -0.007),
    ('rat', 'Paris', 0.010, -0.006),
    ('rat', 'Paris', -0.005, -0.009),
    ('beetle', 'Paris', 0.007, 0.010),
    ('slime', 'Los Angeles', 0.008, 0.008),
    ('slime', 'Los Angeles', -0.007, 0.006),
    ('rat', 'Los Angeles', 0.010, -0.008),
    ('beetle', 'Los Angeles', -0.006, 0.010),
    ('spider', 'Los Angeles', 0.005, -0.010),
    ('slime', 'Berlin', 0.006, 0.007),
    ('rat', 'Berlin', -0.007, 0.008),
    ('rat', 'Berlin', 0.009, -0.005),
    ('bat', 'Berlin', -0.005, -0.008),
    ('spider', 'Berlin', 0.008, 0.010),
    ('slime', 'Singapore', 0.005, 0.006),
    ('slime', 'Singapore', -0.006, 0.005),
    ('beetle', 'Singapore', 0.008, -0.006),
    ('beetle', 'Singapore', -0.004, -0.008),
    ('spider', 'Singapore', 0.007, 0.009),
    ('slime', 'Dubai', 0.007, 0.006),
    ('rat', 'Dubai', -0.006, 0.008),
    ('beetle', 'Dubai', 0.009, -0.007),
    ('bat', 'Dubai', -0.008, -0.005),
    ('slime', 'Rio de Janeiro', 0.006, 0.007),
    ('slime', 'Rio de Janeiro', -0.007, 0.005),
    ('rat', 'Rio de Janeiro', 0.008, -0.006),
    ('beetle', 'Rio de Janeiro', -0.005, -0.009),
    ('spider', 'Rio de Janeiro', 0.010, 0.008),
    ('slime', 'Mumbai', 0.005, 0.007),
    ('rat', 'Mumbai', -0.006, 0.006),
    ('rat', 'Mumbai', 0.008, -0.005),
    ('bat', 'Mumbai', -0.007, -0.008),
    ('spider', 'Mumbai', 0.009, 0.006),
    ('slime', 'Cairo', 0.006, 0.006),
    ('slime', 'Cairo', -0.005, 0.007),
    ('beetle', 'Cairo', 0.008, -0.006),
    ('beetle', 'Cairo', -0.007, -0.005),
    ('bat', 'Cairo', 0.009, 0.008),
]


def _spec(npc_id: str, tier: str, template: dict, city: str, lat: float, lng: float) -> dict:
    return {
        'id': npc_id,
        'tier': tier,
        'name': template['name'],
        'title': template['title'],
        'icon': template['icon'],
        'baseCity': city,
        'position': {'lat': lat, 'lng': lng},
        'maxHealth': template['baseHealth'],
        'damage': template['baseDamage'],
        'attackItems': list(template['attackItems']),
        'color': template['color'],
        'particle': template['particle'],
        'drops': list(template.get('drops', [])),
        'dropChance': float(template.get('dropChance', 0.0)),
        'equipment': template.get('equipment'),
        'sellsEquipment': template.get('sellsEquipment'),
        'equippedAura': template.get('equippedAura'),
    }


def iter_npc_specs() -> Iterator[dict]:
    """Yield one spec per NPC, bosses first, skipping spawns with an unknown city."""
    for template in BOSS_TEMPLATES.values():
        city = city_position(template['baseCity'])
        if city is None:
            logger.warning("Unknown city %s for boss %s", template['baseCity'], template['name'])
            continue
        yield _spec(template['id'], 'boss', template, template['baseCity'],
                    city.lat + template['offsetLat'], city.lng + template['offsetLng'])

    for tier, spawns, templates in (('battle', BATTLE_SPAWNS, BATTLE_TEMPLATES),
                                    ('training', TRAINING_SPAWNS, TRAINING_TEMPLATES)):
        for i, (kind, city_name, d_lat, d_lng) in enumerate(spawns):
            city = city_position(city_name)
            if city is None:
                logger.warning("Unknown city %s for %s NPC %s", city_name, tier, kind)
                continue
            # e.g. battle_shadow_imp_0, training_slime_12
            yield _spec(f"{tier}_{kind}_{i}", tier, templates[kind], city_name,
                        city.lat + d_lat, city.lng + d_lng)
