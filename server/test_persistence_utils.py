import json
import os
import time

import pytest

from persistence_utils import PlayerStore


def test_memory_store_merges_fields():
    s = PlayerStore(None)
    s.save_player_record('p1', {'username': 'A', 'flag': 'x'})
    s.save_player_record('p1', {'position': {'lat': 1.0, 'lng': 2.0}})
    rec = s.load_player_record('p1')
    assert rec['username'] == 'A'
    assert rec['flag'] == 'x'
    assert rec['position'] == {'lat': 1.0, 'lng': 2.0}


def test_created_at_only_set_once():
    s = PlayerStore(None)
    s.save_player_record('p1', {'username': 'A'})
    created = s.load_player_record('p1')['createdAt']
    time.sleep(0.01)
    s.save_player_record('p1', {'username': 'B'})
    rec = s.load_player_record('p1')
    assert rec['createdAt'] == created
    assert rec['lastSeen'] >= created


def test_load_returns_copy():
    s = PlayerStore(None)
    s.save_player_record('p1', {'position': {'lat': 1.0, 'lng': 2.0}})
    rec = s.load_player_record('p1')
    rec['position']['lat'] = 99.0
    assert s.load_player_record('p1')['position']['lat'] == 1.0


def test_unknown_record_is_none():
    s = PlayerStore(None)
    assert s.load_player_record('nobody') is None
    s.touch_last_seen('nobody')
    assert s.load_player_record('nobody') is None


def test_empty_id_rejected():
    s = PlayerStore(None)
    with pytest.raises(ValueError):
        s.save_player_record('', {'username': 'A'})


def test_file_round_trip(tmp_path):
    path = str(tmp_path / 'players.json')
    s = PlayerStore(path, debounce_ms=10)
    s.save_player_record('p1', {'username': 'A'})
    s.flush()
    with open(path, encoding='utf-8') as f:
        data = json.load(f)
    assert data['players']['p1']['username'] == 'A'

    reloaded = PlayerStore(path)
    assert reloaded.load_player_record('p1')['username'] == 'A'
    assert reloaded.get_save_stats()['records'] == 1


def test_debounced_write_happens_in_background(tmp_path):
    path = str(tmp_path / 'players.json')
    s = PlayerStore(path, debounce_ms=20)
    s.save_player_record('p1', {'username': 'A'})
    deadline = time.time() + 2.0
    while not os.path.exists(path) and time.time() < deadline:
        time.sleep(0.02)
    assert os.path.exists(path)
    assert s.get_save_stats()['last_write_time'] is not None


def test_corrupt_file_is_counted_not_raised(tmp_path):
    path = tmp_path / 'players.json'
    path.write_text('{not json', encoding='utf-8')
    s = PlayerStore(str(path))
    assert s.load_player_record('p1') is None
    assert s.get_save_stats()['errors'] == 1


def test_write_failure_is_counted(tmp_path):
    # A directory where the file should be makes the final replace fail
    path = tmp_path / 'players.json'
    path.mkdir()
    s = PlayerStore(None)
    s._path = str(path)
    s.save_player_record('p1', {'username': 'A'})
    s._write_file()
    stats = s.get_save_stats()
    assert stats['errors'] == 1
    assert stats['saves'] == 1
