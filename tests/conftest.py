import os
import sys
import pytest

# Ensure the project root (containing server.py) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from config import Config
from models import Connection
from registry import RoomRegistry
from router import MessageRouter
from server import create_app, socketio


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    ROOM_SWEEP_INTERVAL_SEC = 0
    SOCKETIO_LOGGER = False


class FakeSocket:
    """Collects everything the server pushes to one connection."""

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail
        self.closed = False

    def emit(self, payload, sid):
        if self.fail:
            raise RuntimeError('socket write failed')
        self.sent.append(payload)

    def disconnect(self, sid):
        self.closed = True

    def types(self):
        return [m['type'] for m in self.sent]

    def of_type(self, msg_type):
        return [m for m in self.sent if m['type'] == msg_type]

    def flush(self):
        sent, self.sent = self.sent, []
        return sent


def make_connection(sid='sid', fail=False, router=None):
    sock = FakeSocket(fail=fail)
    conn = Connection(sid, sock.emit, sock.disconnect,
                      on_message=router.dispatch if router else None)
    conn.socket = sock
    return conn


@pytest.fixture()
def registry():
    return RoomRegistry()


@pytest.fixture()
def router(registry):
    return MessageRouter(registry)


@pytest.fixture()
def connect(router):
    counter = {'n': 0}

    def _connect(fail=False):
        counter['n'] += 1
        return make_connection(f"sid-{counter['n']}", fail=fail, router=router)

    return _connect


@pytest.fixture()
def flask_app():
    return create_app(TestConfig)


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        if test_client.is_connected():
            test_client.disconnect()
