import logging
from functools import partial
from typing import Dict, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from starlette.websockets import WebSocketState

from ..core.errors import Unauthorized
from ..core.permissions import resolve_profile
from ..services.realtime import RealtimeHub, TenantFeed
from ..utils.clock import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["WebSocket"])


class ConnectionManager:
    """Staff sockets grouped by restaurant"""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, restaurant_id: str):
        await websocket.accept()
        self.active_connections.setdefault(restaurant_id, set()).add(websocket)

    def disconnect(self, websocket: WebSocket, restaurant_id: str):
        connections = self.active_connections.get(restaurant_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self.active_connections.pop(restaurant_id, None)

    async def send_to_restaurant(self, message: dict, restaurant_id: str):
        dead_connections = set()
        for connection in list(self.active_connections.get(restaurant_id, ())):
            try:
                await connection.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                dead_connections.add(connection)

        for conn in dead_connections:
            self.disconnect(conn, restaurant_id)

    async def notify(self, restaurant_id: str, event_type: str, data: dict):
        message = {
            "event": event_type,
            "data": data,
            "timestamp": utc_now().isoformat(),
        }
        await self.send_to_restaurant(message, restaurant_id)


manager = ConnectionManager()
hub = RealtimeHub(lambda restaurant_id: TenantFeed(restaurant_id, notify=partial(manager.notify, restaurant_id)))


@router.websocket("/orders")
async def websocket_endpoint(websocket: WebSocket, token: str = Query(None)):
    """Live orders and tables for the caller's restaurant.

    Sends a ``snapshot`` first, then ``change``, ``new_order`` and
    ``order_ready`` events as they arrive.
    """
    if not token:
        await websocket.close(code=1008, reason="Token required")
        return

    try:
        profile = resolve_profile(token)
    except Unauthorized as e:
        await websocket.close(code=1008, reason=e.message)
        return

    restaurant_id = profile.get("restaurant_id")
    if not restaurant_id:
        await websocket.close(code=1008, reason="User is not assigned to a restaurant")
        return

    await manager.connect(websocket, restaurant_id)
    try:
        async with hub.subscription(restaurant_id) as feed:
            # A feed still fetching broadcasts its snapshot when ready
            if feed.ready:
                await websocket.send_json({
                    "event": "snapshot",
                    "data": feed.snapshot(),
                    "timestamp": utc_now().isoformat(),
                })
            while True:
                await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("realtime feed failed", extra={"restaurant_id": restaurant_id})
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close(code=1011, reason="Realtime feed unavailable")
    finally:
        manager.disconnect(websocket, restaurant_id)
