from __future__ import annotations
"""Pytest shared fixtures.

Environment defaults are set before anything imports ``server`` so the
module-level app comes up in threading mode, with rate limiting off and
player records kept in memory.

The fakes here stand in for the Socket.IO side of the services:
- RecordingTransport records every delivery instead of emitting it
- BackgroundRecorder captures background tasks so a test can fire them on demand
- ScriptedRandom returns queued rolls so combat outcomes are deterministic
"""
import os
import random
import sys

import pytest

os.environ.setdefault('GEOMMO_ASYNC_MODE', 'threading')
os.environ['GEOMMO_RATE_ENABLE'] = '0'
os.environ.setdefault('GEOMMO_STATE_PATH', '')
os.environ.setdefault('GEOMMO_FIREBASE_ENABLE', '0')
os.environ.setdefault('SECRET_KEY', 'test-secret')

sys.path.insert(0, os.path.dirname(__file__))

from geo_utils import Position  # noqa: E402
from persistence_utils import PlayerStore  # noqa: E402
from safe_utils import reset_seen_exceptions  # noqa: E402
from task_scheduler import TaskScheduler  # noqa: E402
from world import World  # noqa: E402


class RecordingTransport:
    def __init__(self):
        self.sent = []  # (kind, target, event, payload)

    def unicast(self, sid, event, payload):
        self.sent.append(('unicast', sid, event, payload))

    def broadcast_except(self, sid, event, payload):
        self.sent.append(('except', sid, event, payload))

    def multicast(self, sids, event, payload):
        self.sent.append(('multicast', list(sids), event, payload))

    def broadcast(self, event, payload):
        self.sent.append(('broadcast', None, event, payload))

    def disconnect(self, sid):
        self.sent.append(('disconnect', sid, None, None))

    def of(self, event):
        return [s for s in self.sent if s[2] == event]

    def events(self):
        return [s[2] for s in self.sent]

    def clear(self):
        self.sent.clear()


class BackgroundRecorder:
    def __init__(self):
        self.tasks = []
        self.sleeps = []

    def start(self, fn, *args):
        self.tasks.append((fn, args))

    def sleep(self, seconds):
        self.sleeps.append(seconds)

    def run_all(self):
        tasks, self.tasks = self.tasks, []
        for fn, args in tasks:
            fn(*args)


class ScriptedRandom(random.Random):
    """random() and randint() pop from queues; choice() takes the first element."""

    def __init__(self, randoms=(), ints=()):
        super().__init__(0)
        self.randoms = list(randoms)
        self.ints = list(ints)

    def random(self):
        return self.randoms.pop(0) if self.randoms else 0.0

    def randint(self, a, b):
        value = self.ints.pop(0) if self.ints else b
        return max(a, min(b, value))

    def choice(self, seq):
        return seq[0]


# Open ground well away from every safe zone
OPEN_FIELD = Position(0.0, 0.0)


@pytest.fixture(autouse=True)
def _reset_logged_failures():
    reset_seen_exceptions()
    yield


@pytest.fixture
def store():
    return PlayerStore(None)


@pytest.fixture
def npc_specs():
    return [
        {
            'id': 'npc_test_boss', 'tier': 'boss', 'name': 'Testus', 'title': 'Dummy',
            'icon': 'T', 'baseCity': 'Nowhere', 'position': {'lat': 1.0, 'lng': 1.0},
            'maxHealth': 50, 'damage': 5, 'attackItems': ['raindrop'],
            'drops': ['sunstone', 'snowflake'], 'dropChance': 0.5,
        },
        {
            'id': 'training_slime_0', 'tier': 'training', 'name': 'Slime', 'title': 'Goo',
            'icon': 'S', 'baseCity': 'Nowhere', 'position': {'lat': 2.0, 'lng': 2.0},
            'maxHealth': 10, 'damage': 1, 'attackItems': [],
        },
    ]


@pytest.fixture
def world(store, npc_specs):
    return World(store=store, npc_specs=npc_specs)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def background():
    return BackgroundRecorder()


@pytest.fixture
def scheduler(background):
    return TaskScheduler(background.start, background.sleep)


@pytest.fixture
def scripted_rng():
    return ScriptedRandom


@pytest.fixture
def open_field():
    return OPEN_FIELD
