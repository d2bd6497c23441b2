from ..services.redis import redis_client

class CacheKeys:
    """Centralized cache key management"""

    # User/Auth
    USER_PROFILE = "profile:{token_hash}"
    USER_PERMISSIONS = "permissions:{user_id}"

    # Tenant configuration
    RESTAURANT = "restaurant:{restaurant_id}"
    MENU = "menu:{restaurant_id}"

    # Orders
    ORDER_SEQUENCE = "order_seq:{restaurant_id}:{day}"

    # Carts and offline buffers, one per staff member per tenant
    CART = "cart:{restaurant_id}:{user_id}"
    OFFLINE_ORDERS = "offline_orders:{restaurant_id}:{user_id}"
    OFFLINE_ORDERS_FAILED = "offline_orders_failed:{restaurant_id}:{user_id}"

    # Reports
    REPORT_SUMMARY = "reports:summary:{restaurant_id}"

    # Rate limiting
    RATE_LIMIT = "rate_limit:{identifier}:{endpoint}"

def invalidate_order_cache(restaurant_id: str):
    """Drop the revenue summary after an order write"""
    redis_client.delete(CacheKeys.REPORT_SUMMARY.format(restaurant_id=restaurant_id))

def invalidate_menu_cache(restaurant_id: str):
    redis_client.delete(CacheKeys.MENU.format(restaurant_id=restaurant_id))

def invalidate_restaurant_cache(restaurant_id: str):
    """Settings changes also move the summary's day boundaries"""
    redis_client.delete(CacheKeys.RESTAURANT.format(restaurant_id=restaurant_id))
    redis_client.delete(CacheKeys.REPORT_SUMMARY.format(restaurant_id=restaurant_id))
