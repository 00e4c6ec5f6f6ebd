import json

import fakeredis
import pytest
from fastapi.testclient import TestClient

from backend import RedisBackend, redis_backend
from redis_keys import REDIS_ROOM_CHANNEL
from services.access import AccessGate
from services.events import EventDispatcher
from services.messages import MessageLog
from services.rooms import AdmissionController, RoomRegistry


@pytest.fixture(autouse=True)
def fake_redis():
    """Point the shared backend at an in-memory Redis for every test."""
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    pubsub_client = fakeredis.FakeRedis(server=server, decode_responses=True)

    original = (redis_backend.redis_client, redis_backend.pubsub_client)
    redis_backend.redis_client = client
    redis_backend.pubsub_client = pubsub_client
    try:
        yield client
    finally:
        redis_backend.redis_client, redis_backend.pubsub_client = original
        client.flushall()


@pytest.fixture
def backend(fake_redis):
    return RedisBackend(redis_client=fake_redis, pubsub_client=fake_redis)


@pytest.fixture
def dispatcher(backend):
    return EventDispatcher(backend)


@pytest.fixture
def registry(backend, dispatcher):
    return RoomRegistry(backend, dispatcher)


@pytest.fixture
def admission(backend):
    return AdmissionController(backend)


@pytest.fixture
def gate(backend):
    return AccessGate(backend)


@pytest.fixture
def message_log(backend):
    return MessageLog(backend)


@pytest.fixture
def subscribe(fake_redis):
    """Subscribe to a room channel; returns a pubsub handle for drain_events."""
    handles = []

    def _subscribe(room_id):
        pubsub = fake_redis.pubsub()
        pubsub.subscribe(REDIS_ROOM_CHANNEL.format(slug=room_id))
        handles.append(pubsub)
        return pubsub

    yield _subscribe
    for pubsub in handles:
        pubsub.close()


def drain_events(pubsub):
    events = []
    while True:
        message = pubsub.get_message(timeout=0.2)
        if message is None:
            return events
        if message["type"] == "message":
            events.append(json.loads(message["data"]))


@pytest.fixture
def make_client():
    """Each TestClient keeps its own cookie jar, i.e. acts as one participant."""
    from app import app

    clients = []

    def _make():
        client = TestClient(app)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def drain():
    return drain_events
