import json
import os
import random
import sys

import pytest

# Ensure the backend root (containing the `hub` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from hub import create_app, socketio
from hub.services.hub import RelayHub


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    LOG_LEVEL = 'DEBUG'
    SOCKETIO_NAMESPACE = '/ws'
    CORS_ORIGINS = ['http://localhost:5173']
    RESEED_INTERVAL_SEC = 90
    ADMIN_EVENT_UNIT_SEC = 60
    CHAT_ECHO_TO_SENDER = False
    ENABLE_SCHEDULER_IN_TESTS = False


class FakeTransport:
    """Records every delivery; connections can be marked dead or failing."""

    def __init__(self):
        self.sent = []
        self.dead = set()
        self.failing = set()

    def is_live(self, connection_id):
        return connection_id not in self.dead

    def send(self, connection_id, text):
        if connection_id in self.failing:
            raise ConnectionError('socket closed')
        self.sent.append((connection_id, json.loads(text)))

    def received(self, connection_id, message_type=None):
        return [
            msg for cid, msg in self.sent
            if cid == connection_id and (message_type is None or msg['type'] == message_type)
        ]

    def clear(self):
        self.sent.clear()


class ManualSpawner:
    """Collects background tasks instead of starting them."""

    def __init__(self):
        self.tasks = []

    def __call__(self, target, *args):
        self.tasks.append((target, args))

    def run_all(self):
        tasks, self.tasks = self.tasks, []
        for target, args in tasks:
            target(*args)


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def spawner():
    return ManualSpawner()


@pytest.fixture()
def relay(transport, spawner):
    config = {'ADMIN_EVENT_UNIT_SEC': 60, 'RESEED_INTERVAL_SEC': 90}
    return RelayHub(transport, config, spawn=spawner, rng=random.Random(7))


@pytest.fixture()
def join(relay):
    def _join(connection_id, identity, room_code, **extra):
        relay.connect(connection_id)
        payload = {'type': 'player_join', 'identity': identity, 'roomCode': room_code}
        payload.update(extra)
        assert relay.handle_message(connection_id, payload)
    return _join


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass


def received_messages(sio_client, message_type=None):
    """Decode the JSON records a Socket.IO test client has received."""
    out = []
    for pkt in sio_client.get_received('/ws'):
        if pkt['name'] != 'message':
            continue
        args = pkt['args']
        if isinstance(args, (list, tuple)):
            args = args[0]
        msg = json.loads(args) if isinstance(args, str) else args
        if message_type is None or msg.get('type') == message_type:
            out.append(msg)
    return out
