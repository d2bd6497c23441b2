from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..core.cache import CacheKeys
from ..database import supabase_admin
from ..models.inventory import InventoryItem
from ..models.order import OrderStatus
from ..utils.clock import parse_timestamp, restaurant_now, restaurant_tz, start_of_day_utc
from .redis import redis_client
from .restaurants import RestaurantService


def low_stock(items: List[InventoryItem]) -> List[InventoryItem]:
    """Items at or below their minimum stock, in input order."""
    return [item for item in items if item.is_low_stock]


def inventory_value(items: List[InventoryItem]) -> Decimal:
    return sum((item.current_stock * item.unit_cost for item in items), Decimal("0"))


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01")))


class ReportService:
    """Inventory and revenue reports, scoped to one restaurant"""

    @staticmethod
    def get_inventory(restaurant_id: str) -> List[InventoryItem]:
        result = supabase_admin.table("inventory").select("*") \
            .eq("restaurant_id", restaurant_id) \
            .order("item_name") \
            .execute()
        return [InventoryItem(**row) for row in result.data or []]

    @staticmethod
    def low_stock_report(restaurant_id: str) -> Dict[str, Any]:
        items = low_stock(ReportService.get_inventory(restaurant_id))
        return {
            "count": len(items),
            "items": [item.model_dump(mode="json") for item in items],
        }

    @staticmethod
    def inventory_value_report(restaurant_id: str) -> Dict[str, Any]:
        items = ReportService.get_inventory(restaurant_id)
        by_category = defaultdict(lambda: Decimal("0"))
        for item in items:
            by_category[item.category or "Uncategorized"] += item.current_stock * item.unit_cost

        return {
            "total_value": _money(inventory_value(items)),
            "item_count": len(items),
            "categories": [
                {"category": name, "value": _money(value)}
                for name, value in sorted(by_category.items(), key=lambda x: x[1], reverse=True)
            ],
        }

    @staticmethod
    def _orders_since(restaurant_id: str, since_utc) -> List[Dict[str, Any]]:
        result = supabase_admin.table("orders").select("*") \
            .eq("restaurant_id", restaurant_id) \
            .gte("created_at", since_utc.isoformat()) \
            .execute()
        return result.data or []

    @staticmethod
    def revenue_between(orders: List[Dict[str, Any]], start, end) -> Decimal:
        """Revenue of served orders created in [start, end)."""
        total = Decimal("0")
        for order in orders:
            if order.get("status") != OrderStatus.SERVED.value:
                continue
            created = parse_timestamp(order["created_at"])
            if start <= created < end:
                total += Decimal(str(order.get("total_amount") or 0))
        return total

    @staticmethod
    def hourly_revenue(orders: List[Dict[str, Any]], tz_name: str) -> List[Dict[str, Any]]:
        tz = restaurant_tz(tz_name)
        buckets = [{"hour": hour, "orders": 0, "revenue": Decimal("0")} for hour in range(24)]
        for order in orders:
            if order.get("status") != OrderStatus.SERVED.value:
                continue
            hour = parse_timestamp(order["created_at"]).astimezone(tz).hour
            buckets[hour]["orders"] += 1
            buckets[hour]["revenue"] += Decimal(str(order.get("total_amount") or 0))
        return [{**bucket, "revenue": _money(bucket["revenue"])} for bucket in buckets]

    @staticmethod
    def daily_revenue(restaurant_id: str, start: date, end: date) -> List[Dict[str, Any]]:
        """Served revenue per local day, inclusive of both ends."""
        restaurant = RestaurantService.get_restaurant(restaurant_id)
        tz = restaurant_tz(restaurant.timezone)
        orders = ReportService._orders_since(restaurant_id, start_of_day_utc(start, restaurant.timezone))
        end_utc = start_of_day_utc(end + timedelta(days=1), restaurant.timezone)

        daily = {start + timedelta(days=i): {"orders": 0, "revenue": Decimal("0")}
                 for i in range((end - start).days + 1)}
        for order in orders:
            if order.get("status") != OrderStatus.SERVED.value:
                continue
            created = parse_timestamp(order["created_at"])
            if created >= end_utc:
                continue
            day = created.astimezone(tz).date()
            if day in daily:
                daily[day]["orders"] += 1
                daily[day]["revenue"] += Decimal(str(order.get("total_amount") or 0))

        return [
            {"date": day.isoformat(), "orders": data["orders"], "revenue": _money(data["revenue"])}
            for day, data in sorted(daily.items())
        ]

    @staticmethod
    def top_items(restaurant_id: str, order_ids: List[str], limit: int = 10) -> List[Dict[str, Any]]:
        if not order_ids:
            return []
        items = supabase_admin.table("order_items").select("menu_item_id, quantity, total_price") \
            .in_("order_id", order_ids) \
            .execute().data or []

        names = {item["id"]: item["name"] for item in RestaurantService.get_menu(restaurant_id)}
        totals = defaultdict(lambda: {"quantity": 0, "revenue": Decimal("0")})
        for item in items:
            entry = totals[item["menu_item_id"]]
            entry["quantity"] += item["quantity"]
            entry["revenue"] += Decimal(str(item.get("total_price") or 0))

        ranked = sorted(totals.items(), key=lambda x: x[1]["quantity"], reverse=True)[:limit]
        return [
            {
                "menu_item_id": menu_item_id,
                "name": names.get(menu_item_id, "Unknown"),
                "quantity": data["quantity"],
                "revenue": _money(data["revenue"]),
            }
            for menu_item_id, data in ranked
        ]

    @staticmethod
    def summary(restaurant_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        cache_key = CacheKeys.REPORT_SUMMARY.format(restaurant_id=restaurant_id)
        if today is None:
            cached = redis_client.get(cache_key)
            if isinstance(cached, dict):
                return cached

        restaurant = RestaurantService.get_restaurant(restaurant_id)
        tz_name = restaurant.timezone
        today = today or restaurant_now(tz_name).date()

        def day_start(offset: int):
            return start_of_day_utc(today - timedelta(days=offset), tz_name)

        tomorrow = start_of_day_utc(today + timedelta(days=1), tz_name)
        orders = ReportService._orders_since(restaurant_id, day_start(59))

        def revenue(start, end) -> float:
            return _money(ReportService.revenue_between(orders, start, end))

        today_start = day_start(0)
        todays_orders = [o for o in orders if parse_timestamp(o["created_at"]) >= today_start
                         and parse_timestamp(o["created_at"]) < tomorrow]
        by_status = {status.value: 0 for status in OrderStatus}
        for order in todays_orders:
            by_status[order["status"]] = by_status.get(order["status"], 0) + 1

        served_today = [o["id"] for o in todays_orders if o["status"] == OrderStatus.SERVED.value]

        data = {
            "date": today.isoformat(),
            "timezone": tz_name,
            "revenue": {
                "today": revenue(today_start, tomorrow),
                "yesterday": revenue(day_start(1), today_start),
                "last_7_days": revenue(day_start(6), tomorrow),
                "previous_7_days": revenue(day_start(13), day_start(6)),
                "last_30_days": revenue(day_start(29), tomorrow),
                "previous_30_days": revenue(day_start(59), day_start(29)),
            },
            "orders_today": {"total": len(todays_orders), "by_status": by_status},
            "hourly": ReportService.hourly_revenue(todays_orders, tz_name),
            "top_items": ReportService.top_items(restaurant_id, served_today),
        }

        redis_client.set(cache_key, data, 120)
        return data
