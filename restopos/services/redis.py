import redis
import json
from typing import Optional, Any, List
from ..config import settings


def _decode(value: Optional[str]) -> Optional[Any]:
    if value is None:
        return None
    try:
        return json.loads(value)
    except ValueError:
        return value


def _encode(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return value


class RedisClient:
    def __init__(self):
        self.client = redis.from_url(settings.REDIS_URL, decode_responses=True)

    # Basic operations
    def get(self, key: str) -> Optional[Any]:
        try:
            return _decode(self.client.get(key))
        except redis.ConnectionError:
            return None

    def set(self, key: str, value: Any, expire: Optional[int] = None):
        value = _encode(value)
        if expire:
            self.client.setex(key, expire, value)
        else:
            self.client.set(key, value)

    def delete(self, *keys: str):
        if keys:
            self.client.delete(*keys)

    def keys(self, pattern: str) -> List[str]:
        return list(self.client.keys(pattern))

    # List operations for queues: lpush + rpop is FIFO
    def lpush(self, key: str, value: Any):
        self.client.lpush(key, _encode(value))

    def rpush(self, key: str, value: Any):
        self.client.rpush(key, _encode(value))

    def rpop(self, key: str) -> Optional[Any]:
        return _decode(self.client.rpop(key))

    def llen(self, key: str) -> int:
        return self.client.llen(key)

    def lrange(self, key: str, start: int, stop: int) -> List:
        return [_decode(v) for v in self.client.lrange(key, start, stop)]

    # Hash operations
    def hset(self, name: str, mapping: dict):
        self.client.hset(name, mapping=mapping)

    def hget(self, name: str, key: str) -> Optional[str]:
        return self.client.hget(name, key)

    # Counters for rate limiting and order numbers
    def incr(self, key: str, amount: int = 1) -> int:
        return self.client.incr(key, amount)

    def expire(self, key: str, seconds: int):
        self.client.expire(key, seconds)

    def ttl(self, key: str) -> int:
        return self.client.ttl(key)

    def ping(self) -> bool:
        return self.client.ping()

redis_client = RedisClient()
