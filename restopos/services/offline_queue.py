import logging
import uuid
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List

import httpx
from postgrest.exceptions import APIError
from pydantic import ValidationError

from ..config import settings
from ..core.cache import CacheKeys
from ..core.errors import POSError
from ..database import supabase_admin
from ..utils.clock import parse_timestamp, utc_now
from .redis import redis_client

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Tracks whether the database backend is reachable from this process."""

    def __init__(self):
        self._online = True

    @property
    def is_online(self) -> bool:
        return self._online

    def mark_offline(self, reason: str = "") -> bool:
        """Returns True when this call flipped the state."""
        if not self._online:
            return False
        self._online = False
        logger.warning("backend unreachable, queueing new orders: %s", reason)
        return True

    def mark_online(self) -> bool:
        if self._online:
            return False
        self._online = True
        logger.info("backend reachable again")
        return True

    def probe(self) -> bool:
        """Cheap round trip to the backend. Any HTTP answer counts as reachable."""
        try:
            supabase_admin.table("restaurants").select("id").limit(1).execute()
        except APIError:
            return True
        except httpx.HTTPError as e:
            self.mark_offline(str(e))
            return False
        return True


connectivity = ConnectivityMonitor()

CreateOrder = Callable[[Dict[str, Any]], Awaitable[Any]]


class OfflineQueue:
    """Durable per-tenant, per-user buffer of order creations.

    Entries are pushed on the left and popped on the right, so draining
    replays them in arrival order.
    """

    @staticmethod
    def _key(restaurant_id: str, user_id: str) -> str:
        return CacheKeys.OFFLINE_ORDERS.format(restaurant_id=restaurant_id, user_id=user_id)

    @staticmethod
    def _failed_key(restaurant_id: str, user_id: str) -> str:
        return CacheKeys.OFFLINE_ORDERS_FAILED.format(restaurant_id=restaurant_id, user_id=user_id)

    @staticmethod
    def enqueue(restaurant_id: str, user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        entry = {
            "id": str(uuid.uuid4()),
            "payload": payload,
            "queued_at": utc_now().isoformat(),
            "attempts": 0,
            "next_attempt_at": None,
            "last_error": None,
        }
        redis_client.lpush(OfflineQueue._key(restaurant_id, user_id), entry)
        logger.info("order queued offline", extra={"restaurant_id": restaurant_id})
        return entry

    @staticmethod
    def pending(restaurant_id: str, user_id: str) -> List[Dict[str, Any]]:
        """Queued entries, oldest first."""
        return list(reversed(redis_client.lrange(OfflineQueue._key(restaurant_id, user_id), 0, -1)))

    @staticmethod
    def failed(restaurant_id: str, user_id: str) -> List[Dict[str, Any]]:
        return list(reversed(redis_client.lrange(OfflineQueue._failed_key(restaurant_id, user_id), 0, -1)))

    @staticmethod
    def _backoff(attempts: int) -> timedelta:
        return timedelta(seconds=settings.OFFLINE_RETRY_BASE_SECONDS * (2 ** (attempts - 1)))

    @staticmethod
    async def flush(restaurant_id: str, user_id: str, create: CreateOrder) -> Dict[str, int]:
        key = OfflineQueue._key(restaurant_id, user_id)
        now = utc_now()
        synced = failed = 0
        retry: List[Dict[str, Any]] = []
        # Popped entry whose outcome is not settled yet
        in_flight = None

        try:
            for _ in range(redis_client.llen(key)):
                entry = in_flight = redis_client.rpop(key)
                if entry is None:
                    break

                due = entry.get("next_attempt_at")
                if due and parse_timestamp(due) > now:
                    retry.append(entry)
                    in_flight = None
                    continue

                try:
                    await create(entry["payload"])
                    synced += 1
                except httpx.HTTPError as e:
                    # Backend went away again; keep this entry and everything behind it
                    connectivity.mark_offline(str(e))
                    retry.append(entry)
                    in_flight = None
                    break
                except (POSError, APIError, ValidationError, KeyError) as e:
                    entry["attempts"] += 1
                    entry["last_error"] = getattr(e, "message", None) or str(e)
                    logger.warning(
                        "offline order %s failed to sync (attempt %s): %s",
                        entry["id"], entry["attempts"], entry["last_error"],
                        extra={"restaurant_id": restaurant_id},
                    )
                    if entry["attempts"] >= settings.OFFLINE_MAX_ATTEMPTS:
                        redis_client.lpush(OfflineQueue._failed_key(restaurant_id, user_id), entry)
                        failed += 1
                    else:
                        entry["next_attempt_at"] = (now + OfflineQueue._backoff(entry["attempts"])).isoformat()
                        retry.append(entry)
                in_flight = None
        finally:
            if in_flight is not None:
                retry.append(in_flight)
            # Back on the pop end so retries keep their place ahead of newer entries
            for entry in reversed(retry):
                redis_client.rpush(key, entry)

        if synced or failed:
            logger.info("offline sync: %s synced, %s retrying, %s failed", synced, len(retry), failed,
                        extra={"restaurant_id": restaurant_id})
        return {"synced": synced, "retrying": len(retry), "failed": failed}

    @staticmethod
    async def flush_all(create: CreateOrder) -> Dict[str, int]:
        totals = {"synced": 0, "retrying": 0, "failed": 0}
        for key in redis_client.keys("offline_orders:*"):
            _, restaurant_id, user_id = key.split(":", 2)
            result = await OfflineQueue.flush(restaurant_id, user_id, create)
            for name, count in result.items():
                totals[name] += count
            if not connectivity.is_online:
                break
        return totals
