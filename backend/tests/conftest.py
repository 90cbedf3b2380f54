import copy
import os
import sys
from collections import deque

import pytest

# Ensure the backend root (containing the `sketchturn` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from sketchturn import create_app, db, socketio
from sketchturn.client import GameCoordinator
from sketchturn.client.transport import HttpSessionApi


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:5173']
    WORD_OPTIONS_COUNT = 3
    DEFAULT_DRAWING_TIME_SEC = 60
    ROOM_MAX_PLAYERS = 22
    ROOM_STALE_AFTER_SEC = 7200
    ROOM_EXPIRES_IN_SEC = 300
    # Room-fatal checks run inline so tests see their effect immediately
    FORCED_END_GRACE_SEC = 0
    WORDBANK_DIR = ''


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import sketchturn.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


class FlaskSessionApi(HttpSessionApi):
    """Session API that goes through the Flask test client instead of the network."""

    def __init__(self, test_client):
        super().__init__()
        self.test_client = test_client
        self.calls = []

    def _send(self, name, body):
        self.calls.append((name, body))
        res = self.test_client.post(f'/api/session/{name}', json=body)
        return res.status_code, res.get_json() or {}


class LocalBus:
    """In-memory room channel with the relay's contract: the sender is excluded.

    Published events wait in a queue until `flush`. `drop(event, payload,
    recipient)` and `duplicate(event, payload, recipient)` let a test lose or
    repeat individual deliveries.
    """

    def __init__(self):
        self.queue = deque()
        self.listeners = {}
        self.log = []
        self.drop = None
        self.duplicate = None

    def channel(self, player_id):
        return LocalChannel(self, player_id)

    def flush(self, max_deliveries=10000):
        delivered = 0
        while self.queue:
            sender, event, payload = self.queue.popleft()
            self.log.append((sender, event, payload))
            for recipient, listener in list(self.listeners.items()):
                if recipient == sender:
                    continue
                if self.drop and self.drop(event, payload, recipient):
                    continue
                listener(event, copy.deepcopy(payload))
                if self.duplicate and self.duplicate(event, payload, recipient):
                    listener(event, copy.deepcopy(payload))
                delivered += 1
                assert delivered < max_deliveries, 'event storm'
        return delivered

    def published(self, event, sender=None):
        return [p for s, e, p in self.log if e == event and (sender is None or s == sender)]


class LocalChannel:
    def __init__(self, bus, player_id):
        self.bus = bus
        self.player_id = player_id

    def subscribe(self, listener):
        self.bus.listeners[self.player_id] = listener

    def publish(self, event, payload):
        self.bus.queue.append((self.player_id, event, copy.deepcopy(payload)))


@pytest.fixture()
def api(client):
    return FlaskSessionApi(client)


@pytest.fixture()
def party(api):
    """Factory: a room with the given players, one coordinator each, wired to a LocalBus."""

    def make(player_ids=('alice', 'bob', 'cara'), settings=None, teams=None):
        bus = LocalBus()
        host = player_ids[0]
        profiles = {
            pid: {'id': pid, 'displayName': pid.title(), 'team': (teams or {}).get(pid)}
            for pid in player_ids
        }
        created = api.create_room(host, settings or {'rounds': 1}, profiles[host])
        room_id = created['roomId']
        for pid in player_ids[1:]:
            api.join_room(room_id, pid, profiles[pid])
        snapshot = api.join_room(room_id, host, action='get-state')['room']
        coordinators = {}
        for pid in player_ids:
            coordinator = GameCoordinator(room_id, profiles[pid], api, bus.channel(pid))
            coordinator.load_room(snapshot)
            coordinators[pid] = coordinator
        return bus, coordinators

    return make
