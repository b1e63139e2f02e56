import threading
import time

import pytest

from combat_service import CombatResolver
from constants import NPC_RESPAWN_SECONDS, PLAYER_RESPAWN_SECONDS
from geo_utils import city_position
from task_scheduler import TaskScheduler


@pytest.fixture
def arena(world, transport, scheduler, open_field):
    world.add_player('A', 'acct-a', 'Attacker', position=open_field)
    world.add_player('B', 'acct-b', 'Defender', position=open_field)
    return world


def make_resolver(world, transport, scheduler, rng):
    return CombatResolver(world, transport, scheduler, rng=rng)


# --- PvE ---

def test_npc_hit_reports_to_attacker_and_broadcasts_health(arena, transport, scheduler, scripted_rng):
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.1], ints=[7]))
    assert combat.attack_npc('A', 'npc_test_boss', 'raindrop', 50, 10)

    kind, target, _, payload = transport.of('npc:attackResult')[0]
    assert (kind, target) == ('unicast', 'A')
    assert payload == {'npcId': 'npc_test_boss', 'damage': 7, 'didHit': True,
                       'npcHealth': 43, 'npcMaxHealth': 50}
    kind, _, _, payload = transport.of('npc:healthUpdate')[0]
    assert kind == 'broadcast'
    assert payload['health'] == 43
    assert not transport.of('npc:defeated')


def test_npc_miss_does_no_damage(arena, transport, scheduler, scripted_rng):
    # draw 0.6 * 100 = 60 >= accuracy 50
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.6], ints=[9]))
    combat.attack_npc('A', 'npc_test_boss', 'raindrop', 50, 10)
    payload = transport.of('npc:attackResult')[0][3]
    assert payload['didHit'] is False
    assert payload['damage'] == 0
    assert arena.get_npc('npc_test_boss').health == 50


def test_accuracy_100_always_hits(arena, transport, scheduler, scripted_rng):
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.999999], ints=[0]))
    combat.attack_npc('A', 'npc_test_boss', 'raindrop', 100, 5)
    assert transport.of('npc:attackResult')[0][3]['didHit'] is True


def test_npc_defeat_rolls_drop_and_schedules_respawn(arena, transport, scheduler, background, scripted_rng):
    # hit, damage 50, drop roll 0.2 < dropChance 0.5
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.0, 0.2], ints=[50]))
    combat.attack_npc('A', 'npc_test_boss', 'raindrop', 100, 60)

    kind, target, _, payload = transport.of('npc:defeated')[0]
    assert (kind, target) == ('unicast', 'A')
    assert payload == {'npcId': 'npc_test_boss', 'npcName': 'Testus', 'drops': ['sunstone']}
    assert scheduler.is_pending('npc:npc_test_boss')
    assert arena.is_defeated('npc_test_boss')

    transport.clear()
    background.run_all()
    assert background.sleeps == [NPC_RESPAWN_SECONDS['boss']]
    assert arena.get_npc('npc_test_boss').health == 50
    assert transport.events() == ['npc:respawned', 'npc:healthUpdate']
    assert transport.of('npc:healthUpdate')[0][3]['health'] == 50


def test_npc_defeat_without_drop(arena, transport, scheduler, scripted_rng):
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.0, 0.9], ints=[50]))
    combat.attack_npc('A', 'npc_test_boss', 'raindrop', 100, 60)
    assert transport.of('npc:defeated')[0][3]['drops'] == []


def test_hitting_defeated_npc_keeps_original_respawn(arena, transport, scheduler, background, scripted_rng):
    arena.damage_npc('training_slime_0', 100)
    combat = make_resolver(arena, transport, scheduler,
                           scripted_rng(randoms=[0.0] * 6, ints=[3, 3, 3]))
    for _ in range(3):
        combat.attack_npc('A', 'training_slime_0', 'raindrop', 100, 5)
    assert arena.get_npc('training_slime_0').health == 0
    # One kill, one drop roll, one timer
    assert len(transport.of('npc:defeated')) == 1
    assert len(background.tasks) == 1

    transport.clear()
    background.run_all()
    assert background.sleeps == [NPC_RESPAWN_SECONDS['training']]
    assert transport.events().count('npc:respawned') == 1
    assert arena.get_npc('training_slime_0').health == 10


def test_respawn_is_not_postponed_by_later_hits(arena, transport, scripted_rng, monkeypatch):
    monkeypatch.setitem(NPC_RESPAWN_SECONDS, 'training', 0.3)

    def start(fn, *args):
        t = threading.Thread(target=fn, args=args, daemon=True)
        t.start()
        return t

    respawned = threading.Event()
    sched = TaskScheduler(start, time.sleep)
    combat = make_resolver(arena, transport, sched, scripted_rng(randoms=[0.0] * 40, ints=[10] * 20))
    original = combat.respawn_npc

    def respawn(npc_id):
        original(npc_id)
        respawned.set()

    combat.respawn_npc = respawn
    arena.damage_npc('training_slime_0', 100)
    combat.attack_npc('A', 'training_slime_0', 'raindrop', 100, 5)
    deadline = time.monotonic() + 2.0
    # Keep hitting the corpse; the first timer must still fire on schedule
    while not respawned.is_set() and time.monotonic() < deadline:
        combat.attack_npc('A', 'training_slime_0', 'raindrop', 100, 5)
        respawned.wait(0.1)
    assert respawned.is_set()


def test_unknown_npc_or_attacker_is_dropped(arena, transport, scheduler, scripted_rng):
    combat = make_resolver(arena, transport, scheduler, scripted_rng())
    assert combat.attack_npc('A', 'npc_missing', 'raindrop', 100, 5) is False
    assert combat.attack_npc('ghost', 'npc_test_boss', 'raindrop', 100, 5) is False
    assert transport.sent == []


# --- PvP ---

def test_pvp_scenario_guaranteed_hit(arena, transport, scheduler, background, scripted_rng):
    arena.update_combat_stats('B', 30, 100, 5)
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.5], ints=[35]))
    assert combat.attack_player('A', 'B', 'sunstone', 100, 50)

    assert transport.of('pvp:attackResult')[0][1] == 'A'
    assert transport.of('pvp:attackResult')[0][3] == {
        'targetId': 'B', 'damage': 35, 'didHit': True, 'targetHealth': 0, 'targetMaxHealth': 100}
    damaged = transport.of('pvp:damaged')[0]
    assert damaged[1] == 'B'
    assert damaged[3]['attackerName'] == 'Attacker'
    effect = transport.of('pvp:combatEffect')[0]
    assert effect[0] == 'broadcast'
    assert effect[3]['targetName'] == 'Defender'
    assert transport.of('player:healthUpdated')[0][3] == {'id': 'B', 'health': 0, 'maxHealth': 100}
    defeated = transport.of('pvp:defeated')[0]
    assert defeated[1] == 'B'
    assert defeated[3] == {'killerId': 'A', 'killerName': 'Attacker'}

    transport.clear()
    background.run_all()
    assert background.sleeps == [PLAYER_RESPAWN_SECONDS]
    assert arena.get_player('B').health == 100
    assert transport.of('player:healthUpdated')[0][3] == {'id': 'B', 'health': 100, 'maxHealth': 100}


def test_pvp_default_health_is_100(arena, transport, scheduler, scripted_rng):
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.0], ints=[10]))
    combat.attack_player('A', 'B', 'sunstone', 100, 50)
    assert arena.get_player('B').health == 90
    assert not transport.of('pvp:defeated')


def test_pvp_blocked_when_defender_in_safe_zone(arena, transport, scheduler, scripted_rng):
    paris = city_position('Paris')
    arena.update_position('B', paris)
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.0], ints=[99]))
    assert combat.attack_player('A', 'B', 'sunstone', 100, 99)
    assert transport.events() == ['combat:blocked']
    kind, target, _, payload = transport.sent[0]
    assert (kind, target) == ('unicast', 'A')
    assert 'Paris' in payload['reason']
    assert arena.get_player('B').health is None


def test_pvp_blocked_when_attacker_in_safe_zone(arena, transport, scheduler, scripted_rng):
    arena.update_position('A', city_position('Tokyo'))
    combat = make_resolver(arena, transport, scheduler, scripted_rng())
    combat.attack_player('A', 'B', 'sunstone', 100, 99)
    assert transport.events() == ['combat:blocked']
    assert 'Tokyo' in transport.sent[0][3]['reason']


def test_pvp_self_and_unknown_targets_dropped(arena, transport, scheduler, scripted_rng):
    combat = make_resolver(arena, transport, scheduler, scripted_rng())
    assert combat.attack_player('A', 'A', 'x', 100, 10) is False
    assert combat.attack_player('A', 'ghost', 'x', 100, 10) is False
    assert combat.attack_player('ghost', 'B', 'x', 100, 10) is False
    assert transport.sent == []


def test_defeat_only_on_transition_to_zero(arena, transport, scheduler, scripted_rng):
    arena.update_combat_stats('B', 0, 100, 1)
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.0], ints=[5]))
    combat.attack_player('A', 'B', 'x', 100, 10)
    assert not transport.of('pvp:defeated')
    assert not scheduler.is_pending('player:B')


def test_restore_for_departed_player_is_noop(arena, transport, scheduler, background, scripted_rng):
    arena.update_combat_stats('B', 5, 100, 1)
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.0], ints=[5]))
    combat.attack_player('A', 'B', 'x', 100, 10)
    arena.remove_player('B')
    transport.clear()
    background.run_all()
    assert transport.sent == []


def test_cancel_pending_restore(arena, transport, scheduler, background, scripted_rng):
    arena.update_combat_stats('B', 5, 100, 1)
    combat = make_resolver(arena, transport, scheduler, scripted_rng(randoms=[0.0], ints=[5]))
    combat.attack_player('A', 'B', 'x', 100, 10)
    combat.cancel_pending('B')
    background.run_all()
    assert arena.get_player('B').health == 0


# --- legacy combat:attack ---

def test_legacy_attack_applies_client_damage(arena, transport, scheduler, background, scripted_rng):
    arena.update_combat_stats('B', 20, 100, 1)
    combat = make_resolver(arena, transport, scheduler, scripted_rng())
    combat.legacy_attack('A', 'B', 'lightningshard', 25)

    assert transport.of('combat:hit')[0][1:] == ('A', 'combat:hit', {'targetId': 'B', 'damage': 25, 'targetHealth': 0})
    assert transport.of('combat:attacked')[0][1:] == ('B', 'combat:attacked', {
        'attackerId': 'A', 'attackerName': 'Attacker', 'damage': 25, 'itemKey': 'lightningshard'})
    assert transport.of('player:healthUpdated')[0][0] == 'broadcast'
    died = transport.of('combat:died')[0]
    assert died[0] == 'broadcast'
    assert died[3] == {'playerId': 'B', 'killerName': 'Attacker'}
    assert scheduler.is_pending('player:B')


def test_legacy_attack_negative_damage_clamped(arena, transport, scheduler, scripted_rng):
    combat = make_resolver(arena, transport, scheduler, scripted_rng())
    combat.legacy_attack('A', 'B', 'x', -40)
    assert arena.get_player('B').health == 100


def test_legacy_attack_respects_safe_zone(arena, transport, scheduler, scripted_rng):
    arena.update_position('B', city_position('Cairo'))
    combat = make_resolver(arena, transport, scheduler, scripted_rng())
    combat.legacy_attack('A', 'B', 'x', 40)
    assert transport.events() == ['combat:blocked']
    assert arena.get_player('B').health is None
