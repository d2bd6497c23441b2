"""Tenant-scoped materialized views of orders and tables.

A ``TenantFeed`` holds one Supabase realtime channel per entity for one
restaurant and keeps an in-memory list in step with the change feed. Feeds
are acquired and released through the ``RealtimeHub``; the channel is torn
down when the last consumer for a restaurant leaves.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..core.errors import SyncError
from ..database import create_realtime_client, supabase_admin
from ..models.order import OrderStatus

logger = logging.getLogger(__name__)

Notify = Callable[[str, Dict[str, Any]], Awaitable[None]]

SUBSCRIBED = "SUBSCRIBED"
FAILED_STATES = {"CHANNEL_ERROR", "TIMED_OUT", "CLOSED"}


def parse_change(payload: Dict[str, Any]) -> Tuple[str, Dict[str, Any], Dict[str, Any]]:
    """Normalise a postgres_changes payload to (event_type, new_row, old_row)."""
    data = payload.get("data", payload)
    event_type = data.get("type") or data.get("eventType") or ""
    event_type = getattr(event_type, "value", event_type)
    new = data.get("record") or data.get("new") or {}
    old = data.get("old_record") or data.get("old") or {}
    return str(event_type).upper(), new, old


class LiveCollection:
    """In-memory rows for one entity, rebuilt from fetches and patched by deltas."""

    def __init__(self, entity: str, prepend: bool = False, keep: Optional[Callable[[dict], bool]] = None):
        self.entity = entity
        self.prepend = prepend
        self.keep = keep or (lambda row: True)
        self.rows: List[Dict[str, Any]] = []
        self.stale = True

    def replace(self, rows: List[Dict[str, Any]]):
        self.rows = [row for row in rows if self.keep(row)]
        self.stale = False

    def get(self, row_id: str) -> Optional[Dict[str, Any]]:
        for row in self.rows:
            if row.get("id") == row_id:
                return row
        return None

    def apply(self, event_type: str, new: Dict[str, Any], old: Dict[str, Any]) -> List[Tuple[str, Dict[str, Any]]]:
        """Apply one change and return the notifications it produces."""
        notifications: List[Tuple[str, Dict[str, Any]]] = []

        if event_type == "INSERT":
            if not self.keep(new):
                return notifications
            self.rows = [row for row in self.rows if row.get("id") != new.get("id")]
            if self.prepend:
                self.rows.insert(0, new)
            else:
                self.rows.append(new)
            if self.entity == "orders":
                notifications.append(("new_order", new))

        elif event_type == "UPDATE":
            previous = self.get(new.get("id"))
            if not self.keep(new):
                self.rows = [row for row in self.rows if row.get("id") != new.get("id")]
            elif previous is None:
                if self.prepend:
                    self.rows.insert(0, new)
                else:
                    self.rows.append(new)
            else:
                self.rows = [new if row.get("id") == new.get("id") else row for row in self.rows]

            if (
                self.entity == "orders"
                and new.get("status") == OrderStatus.READY.value
                and (previous is None or previous.get("status") != OrderStatus.READY.value)
            ):
                notifications.append(("order_ready", new))

        elif event_type == "DELETE":
            row_id = old.get("id") or new.get("id")
            self.rows = [row for row in self.rows if row.get("id") != row_id]

        return notifications


def fetch_orders(restaurant_id: str) -> List[Dict[str, Any]]:
    result = supabase_admin.table("orders").select("*") \
        .eq("restaurant_id", restaurant_id) \
        .order("created_at", desc=True) \
        .execute()
    return result.data or []


def fetch_tables(restaurant_id: str) -> List[Dict[str, Any]]:
    result = supabase_admin.table("tables").select("*") \
        .eq("restaurant_id", restaurant_id) \
        .eq("is_active", True) \
        .order("table_number") \
        .execute()
    return result.data or []


class TenantFeed:
    """Orders and tables of one restaurant, kept live from the change feed."""

    def __init__(self, restaurant_id: str, notify: Optional[Notify] = None):
        self.restaurant_id = restaurant_id
        self.notify = notify
        self.orders = LiveCollection("orders", prepend=True)
        self.tables = LiveCollection("tables", keep=lambda row: row.get("is_active", True))
        self._client = None
        self._channels: List[Any] = []
        self._tasks = set()

    def collection(self, entity: str) -> LiveCollection:
        return self.orders if entity == "orders" else self.tables

    def snapshot(self) -> Dict[str, Any]:
        return {"orders": self.orders.rows, "tables": self.tables.rows}

    @property
    def ready(self) -> bool:
        """Both collections hold a fetch taken after their channel subscribed."""
        return not self.orders.stale and not self.tables.stale

    async def handle_change(self, entity: str, payload: Dict[str, Any]):
        event_type, new, old = parse_change(payload)
        notifications = self.collection(entity).apply(event_type, new, old)

        if not self.notify:
            return
        await self.notify("change", {"entity": entity, "type": event_type, "record": new, "old_record": old})
        for event, row in notifications:
            await self.notify(event, row)

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("realtime handler failed: %s", exc, exc_info=exc,
                         extra={"restaurant_id": self.restaurant_id})

    def _on_change(self, entity: str) -> Callable[[Dict[str, Any]], None]:
        def callback(payload: Dict[str, Any]):
            self._spawn(self.handle_change(entity, payload))
        return callback

    def _on_status(self, entity: str) -> Callable[..., None]:
        def callback(status, error=None):
            status = str(getattr(status, "value", status))
            if status == SUBSCRIBED:
                if self.collection(entity).stale:
                    self._spawn(self._resync(entity))
            elif status in FAILED_STATES:
                self.collection(entity).stale = True
                err = SyncError(f"{entity} channel for {self.restaurant_id}: {status} {error or ''}".strip())
                logger.warning(err.message, extra={"restaurant_id": self.restaurant_id})
        return callback

    async def _resync(self, entity: str):
        rows = fetch_orders(self.restaurant_id) if entity == "orders" else fetch_tables(self.restaurant_id)
        self.collection(entity).replace(rows)
        if self.notify and self.ready:
            await self.notify("snapshot", self.snapshot())

    async def start(self):
        # Rows are fetched when each channel reports SUBSCRIBED
        self._client = await create_realtime_client()
        for entity in ("orders", "tables"):
            channel = self._client.channel(f"{entity}:{self.restaurant_id}")
            channel.on_postgres_changes(
                "*",
                schema="public",
                table=entity,
                filter=f"restaurant_id=eq.{self.restaurant_id}",
                callback=self._on_change(entity),
            )
            await channel.subscribe(self._on_status(entity))
            self._channels.append(channel)
        logger.info("realtime feed started", extra={"restaurant_id": self.restaurant_id})

    async def stop(self):
        for channel in self._channels:
            await self._client.remove_channel(channel)
        self._channels = []
        for task in list(self._tasks):
            task.cancel()
        logger.info("realtime feed stopped", extra={"restaurant_id": self.restaurant_id})

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()
        return False


class RealtimeHub:
    """Reference-counted feeds, one per restaurant."""

    def __init__(self, feed_factory: Callable[[str], TenantFeed] = None):
        self.feed_factory = feed_factory or TenantFeed
        self._feeds: Dict[str, TenantFeed] = {}
        self._refs: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def acquire(self, restaurant_id: str) -> TenantFeed:
        async with self._lock:
            feed = self._feeds.get(restaurant_id)
            if feed is None:
                feed = self.feed_factory(restaurant_id)
                await feed.start()
                self._feeds[restaurant_id] = feed
            self._refs[restaurant_id] = self._refs.get(restaurant_id, 0) + 1
            return feed

    async def release(self, restaurant_id: str):
        async with self._lock:
            remaining = self._refs.get(restaurant_id, 0) - 1
            if remaining > 0:
                self._refs[restaurant_id] = remaining
                return
            self._refs.pop(restaurant_id, None)
            feed = self._feeds.pop(restaurant_id, None)
            if feed:
                await feed.stop()

    @asynccontextmanager
    async def subscription(self, restaurant_id: str):
        feed = await self.acquire(restaurant_id)
        try:
            yield feed
        finally:
            await self.release(restaurant_id)

    async def close(self):
        for restaurant_id in list(self._feeds):
            self._refs[restaurant_id] = 1
            await self.release(restaurant_id)
