import hashlib

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from restopos.api import websocket as ws_module
from restopos.main import app
from restopos.services.realtime import RealtimeHub
from restopos.services.redis import redis_client

from conftest import RESTAURANT_ID


class SnapshotFeed:
    def __init__(self, restaurant_id):
        self.restaurant_id = restaurant_id
        self.stopped = False
        self.ready = True

    async def start(self):
        pass

    async def stop(self):
        self.stopped = True

    def snapshot(self):
        return {"orders": [{"id": "o-1", "status": "pending"}], "tables": []}


@pytest.fixture
def hub(monkeypatch):
    test_hub = RealtimeHub(SnapshotFeed)
    monkeypatch.setattr(ws_module, "hub", test_hub)
    return test_hub


def _cache_profile(token, profile):
    key = f"profile:{hashlib.sha256(token.encode()).hexdigest()}"
    redis_client.set(key, profile, 300)


def test_staff_socket_receives_snapshot(db, hub, cashier):
    _cache_profile("staff-token", cashier)
    client = TestClient(app)

    with client.websocket_connect("/ws/orders?token=staff-token") as websocket:
        message = websocket.receive_json()

    assert message["event"] == "snapshot"
    assert message["data"]["orders"][0]["id"] == "o-1"


def test_socket_without_token_is_closed(db, hub):
    client = TestClient(app)

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/orders") as websocket:
            websocket.receive_json()

    assert exc.value.code == 1008


@pytest.mark.anyio
async def test_notifications_reach_only_the_same_restaurant():
    manager = ws_module.ConnectionManager()

    class Socket:
        def __init__(self):
            self.sent = []

        async def accept(self):
            pass

        async def send_json(self, message):
            self.sent.append(message)

    ours, theirs = Socket(), Socket()
    await manager.connect(ours, RESTAURANT_ID)
    await manager.connect(theirs, "rest-2")

    await manager.notify(RESTAURANT_ID, "order_ready", {"id": "o-1"})

    assert ours.sent[0]["event"] == "order_ready"
    assert theirs.sent == []
