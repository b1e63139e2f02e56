"""
GeoMMO Server Constants

Central location for event names, world defaults and combat tuning values.
Keeping them in one place avoids magic strings in the handlers and makes it
obvious which numbers the client has to agree with.
"""

# =============================================================================
# Socket.IO Event Names (client -> server)
# =============================================================================

EV_AUTHENTICATE = 'player:authenticate'
EV_MOVE = 'player:move'
EV_UPDATE_AVATAR = 'player:updateAvatar'
EV_UPDATE_NAME = 'player:updateName'
EV_UPDATE_FLAG = 'player:updateFlag'
EV_UPDATE_EQUIPMENT = 'player:updateEquipment'
EV_SET_HOME = 'player:setHome'
EV_UPDATE_COMBAT_STATS = 'player:updateCombatStats'
EV_COMBAT_ATTACK = 'combat:attack'      # legacy: damage computed by the client
EV_PVP_ATTACK = 'pvp:attack'
EV_NPC_ATTACK = 'npc:attack'
EV_CHAT_SEND = 'chat:send'

# =============================================================================
# Socket.IO Event Names (server -> client)
# =============================================================================

AUTH_SUCCESS = 'auth:success'
AUTH_ERROR = 'auth:error'
WORLD_STATE = 'world:state'

PLAYER_JOINED = 'player:joined'
PLAYER_LEFT = 'player:left'
PLAYER_MOVED = 'player:moved'
PLAYER_AVATAR_UPDATED = 'player:avatarUpdated'
PLAYER_NAME_UPDATED = 'player:nameUpdated'
PLAYER_FLAG_UPDATED = 'player:flagUpdated'
PLAYER_EQUIPMENT_UPDATED = 'player:equipmentUpdated'
PLAYER_HOME_UPDATED = 'player:homeUpdated'
PLAYER_HEALTH_UPDATED = 'player:healthUpdated'

CHAT_MESSAGE = 'chat:message'

COMBAT_ATTACKED = 'combat:attacked'
COMBAT_HIT = 'combat:hit'
COMBAT_DIED = 'combat:died'
COMBAT_BLOCKED = 'combat:blocked'

PVP_ATTACK_RESULT = 'pvp:attackResult'
PVP_DAMAGED = 'pvp:damaged'
PVP_DEFEATED = 'pvp:defeated'
PVP_COMBAT_EFFECT = 'pvp:combatEffect'

NPC_ATTACK_RESULT = 'npc:attackResult'
NPC_HEALTH_UPDATE = 'npc:healthUpdate'
NPC_DEFEATED = 'npc:defeated'
NPC_RESPAWNED = 'npc:respawned'

# =============================================================================
# Player Defaults
# =============================================================================

# Where a brand-new player appears when neither the client nor storage has a position (NYC)
DEFAULT_POSITION = {'lat': 40.7128, 'lng': -74.0060}

DEFAULT_AVATAR = {'text': '🙂', 'color': '#4a90d9'}

DEFAULT_FLAG = '🏳️'

# Health used for players that never reported combat stats
DEFAULT_PLAYER_HEALTH = 100

MAX_NAME_LENGTH = 32

# =============================================================================
# Geography
# =============================================================================

EARTH_RADIUS_M = 6371000.0

# PvP is disabled within this distance of any safe-zone city center
SAFE_ZONE_RADIUS_M = 1000.0

# Local chat reaches everyone within this distance of the sender
LOCAL_CHAT_RADIUS_M = 100.0

# =============================================================================
# Chat
# =============================================================================

CHAT_MAX_LENGTH = 200
CHAT_TYPES = ('global', 'local')

# =============================================================================
# Combat
# =============================================================================

# Accuracy draw is uniform in [0, ACCURACY_CEILING)
ACCURACY_CEILING = 100.0

# Seconds before a defeated player is restored to full health
PLAYER_RESPAWN_SECONDS = 5.0

# Seconds before a defeated NPC is restored, by tier
NPC_RESPAWN_SECONDS = {
    'training': 10.0,
    'battle': 30.0,
    'boss': 60.0,
}

# Server-side item power table used only by the hardened combat input source.
# Values are the base max hit of an attack made with that item.
ITEM_POWER = {
    'cloudwisp': 4,
    'raindrop': 4,
    'sunstone': 6,
    'snowflake': 6,
    'mistessence': 9,
    'lightningshard': 9,
}
DEFAULT_ITEM_POWER = 2

# Hardened source: accuracy = min(cap, base + level * per_level),
# max hit = item power + level // LEVELS_PER_BONUS_HIT
HARDENED_BASE_ACCURACY = 50.0
HARDENED_ACCURACY_PER_LEVEL = 0.5
HARDENED_ACCURACY_CAP = 95.0
LEVELS_PER_BONUS_HIT = 10
MAX_COMBAT_LEVEL = 99
