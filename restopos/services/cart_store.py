from ..config import settings
from ..core.cache import CacheKeys
from ..models.cart import Cart
from .redis import redis_client


class CartStore:
    """Carts live in Redis, one per staff member per restaurant."""

    @staticmethod
    def _key(restaurant_id: str, user_id: str) -> str:
        return CacheKeys.CART.format(restaurant_id=restaurant_id, user_id=user_id)

    @staticmethod
    def load(restaurant_id: str, user_id: str) -> Cart:
        data = redis_client.get(CartStore._key(restaurant_id, user_id))
        if isinstance(data, dict):
            return Cart(**data)
        return Cart()

    @staticmethod
    def save(restaurant_id: str, user_id: str, cart: Cart):
        key = CartStore._key(restaurant_id, user_id)
        if cart.is_empty():
            redis_client.delete(key)
            return
        redis_client.set(key, cart.model_dump(mode="json"), settings.CART_EXPIRE_SECONDS)

    @staticmethod
    def clear(restaurant_id: str, user_id: str):
        redis_client.delete(CartStore._key(restaurant_id, user_id))
