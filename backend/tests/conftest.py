import heapq
import itertools
import os
import sys
from collections import defaultdict

import pytest

# Ensure the backend root (containing the `capyrace` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from capyrace.config import Config, RoomSettings
from capyrace.game.service import GameService
from capyrace.game.timers import TimerHandle, run_callback
from capyrace.server import create_app


AVATAR = 'Capy-face-happy.png'
COLOR = '#a1b2c3'


class RecordingBroadcaster:
    """Keeps channel membership in memory and records every delivered message."""

    def __init__(self):
        self.channels = defaultdict(set)
        self.sent = []

    def subscribe(self, connection_id, room_id):
        self.channels[room_id].add(connection_id)

    def unsubscribe(self, connection_id, room_id):
        self.channels.get(room_id, set()).discard(connection_id)

    def close_channel(self, room_id):
        self.channels.pop(room_id, None)

    def to_room(self, room_id, event, payload=None):
        for connection_id in sorted(self.channels.get(room_id, ())):
            self.sent.append((connection_id, event, payload))

    def to_connection(self, connection_id, event, payload=None):
        self.sent.append((connection_id, event, payload))

    def received(self, connection_id, event=None):
        return [
            (name, payload) for cid, name, payload in self.sent
            if cid == connection_id and (event is None or name == event)
        ]

    def payloads(self, connection_id, event):
        return [payload for _, payload in self.received(connection_id, event)]

    def clear(self):
        self.sent.clear()


class ManualScheduler:
    """Timers that only fire when the test moves the clock forward."""

    def __init__(self, start=1000.0):
        self._now = start
        self._queue = []
        self._seq = itertools.count()

    def now(self):
        return self._now

    def call_later(self, delay, fn, *args):
        handle = TimerHandle(getattr(fn, '__name__', ''))
        heapq.heappush(self._queue, (self._now + delay, next(self._seq), handle, fn, args))
        return handle

    def advance(self, seconds):
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle, fn, args = heapq.heappop(self._queue)
            self._now = max(self._now, when)
            run_callback(handle, fn, *args)
        self._now = target

    def pending(self, name=None):
        return [
            handle for _, _, handle, _, _ in self._queue
            if handle.pending and (name is None or handle.name == name)
        ]


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SOCKETIO_ASYNC_MODE = 'threading'
    TRUST_PROXY_HEADERS = False
    CORS_ORIGINS = '*'
    ROOM_CODE_SECRET = 'test-room-secret'


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def settings():
    return RoomSettings(room_code_secret='test-room-secret')


@pytest.fixture()
def game(broadcaster, scheduler, settings):
    return GameService(broadcaster, scheduler, settings)


@pytest.fixture()
def make_room(game):
    """Room hosted by sid-1 ("host"), joined by sid-2.. ("player2"..)."""

    def _make(players=1):
        room = game.sessions.create_room('sid-1', 'host', AVATAR, COLOR)
        for i in range(2, players + 1):
            game.sessions.join_room(f'sid-{i}', room.id, f'player{i}', AVATAR, COLOR)
        return room

    return _make


@pytest.fixture()
def playing_room(game, scheduler, make_room, broadcaster):
    room = make_room(2)
    game.race.start_game('sid-1', room.id, text='The quick brown fox jumps over the lazy dog.')
    scheduler.advance(3)
    broadcaster.clear()
    return room


@pytest.fixture()
def server(scheduler):
    return create_app(TestConfig, scheduler=scheduler)


@pytest.fixture()
def flask_app(server):
    return server[0]


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(server):
    flask_app, socketio = server
    clients = []

    def _connect():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(test_client)
        return test_client

    yield _connect

    for test_client in clients:
        if test_client.is_connected():
            test_client.disconnect()
