from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError

from ..core.cache import CacheKeys, invalidate_restaurant_cache
from ..core.errors import InvalidRequest
from ..database import supabase_admin
from ..models.restaurant import MenuItem, Restaurant
from .redis import redis_client


class RestaurantService:
    """Tenant configuration and menu lookups"""

    @staticmethod
    def get_restaurant(restaurant_id: str) -> Restaurant:
        cache_key = CacheKeys.RESTAURANT.format(restaurant_id=restaurant_id)
        cached = redis_client.get(cache_key)
        if cached and isinstance(cached, dict):
            return Restaurant(**cached)

        try:
            result = supabase_admin.table("restaurants").select("*").eq("id", restaurant_id).execute()
        except APIError as e:
            raise InvalidRequest("Restaurant not found") from e
        if not result.data:
            raise InvalidRequest("Restaurant not found")

        restaurant = Restaurant(**result.data[0])
        redis_client.set(cache_key, restaurant.model_dump(mode="json"), 300)
        return restaurant

    @staticmethod
    def get_menu(restaurant_id: str, category: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        cache_key = CacheKeys.MENU.format(restaurant_id=restaurant_id)
        items = redis_client.get(cache_key)

        if not isinstance(items, list):
            result = supabase_admin.table("menu_items").select("*") \
                .eq("restaurant_id", restaurant_id) \
                .eq("is_available", True) \
                .order("category") \
                .order("sort_order") \
                .execute()
            items = result.data or []
            redis_client.set(cache_key, items, 300)

        if category and category != "All":
            items = [item for item in items if item.get("category") == category]
        if search:
            search_lower = search.lower()
            items = [
                item for item in items
                if search_lower in item["name"].lower()
                or search_lower in (item.get("description") or "").lower()
            ]
        return items

    @staticmethod
    def get_menu_item(restaurant_id: str, menu_item_id: str) -> MenuItem:
        for item in RestaurantService.get_menu(restaurant_id):
            if item["id"] == menu_item_id:
                return MenuItem(**item)
        raise InvalidRequest("Menu item not available")

    @staticmethod
    def update_settings(restaurant_id: str, updates: Dict[str, Any]) -> Restaurant:
        """Apply settings changes to the restaurant row and drop its cached copy."""
        if updates:
            supabase_admin.table("restaurants").update(updates).eq("id", restaurant_id).execute()
            invalidate_restaurant_cache(restaurant_id)
        return RestaurantService.get_restaurant(restaurant_id)
