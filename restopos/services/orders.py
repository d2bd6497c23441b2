import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError

from ..core.cache import CacheKeys, invalidate_order_cache
from ..core.errors import (
    EmptyCartError,
    InvalidRequest,
    OrderItemsPersistenceError,
    OrderNotFound,
    OrderPersistenceError,
    POSError,
)
from ..database import supabase_admin
from ..models.cart import CartLine
from ..models.order import ORDER_TRANSITIONS, CustomerInfo, OrderStatus, PaymentMethod
from ..models.restaurant import Restaurant
from ..models.table import TableStatus
from ..utils.clock import restaurant_now, start_of_day_utc, utc_now
from .cart_store import CartStore
from .offline_queue import OfflineQueue, connectivity
from .payments import PaymentService
from .pricing import compute_totals, to_money
from .redis import redis_client
from .restaurants import RestaurantService

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
ORDER_NUMBER_ATTEMPTS = 3


class OrderService:
    """Order submission and status transitions"""

    @staticmethod
    def generate_order_number(restaurant: Restaurant) -> str:
        """Per-restaurant daily sequence: ORD-20250828-001.

        The counter lives in Redis; when a day's counter is created it is
        seeded from the orders already written that day.
        """
        now = restaurant_now(restaurant.timezone)
        day = now.strftime("%Y%m%d")
        key = CacheKeys.ORDER_SEQUENCE.format(restaurant_id=restaurant.id, day=day)

        sequence = redis_client.incr(key)
        if sequence == 1:
            redis_client.expire(key, int(timedelta(days=2).total_seconds()))
            start_of_day = start_of_day_utc(now.date(), restaurant.timezone)
            existing = supabase_admin.table("orders").select("id") \
                .eq("restaurant_id", restaurant.id) \
                .gte("created_at", start_of_day.isoformat()) \
                .execute()
            if existing.data:
                sequence = redis_client.incr(key, len(existing.data))

        return f"ORD-{day}-{sequence:03d}"

    @staticmethod
    def _check_table(restaurant_id: str, table_id: str):
        try:
            result = supabase_admin.table("tables").select("id, status") \
                .eq("id", table_id) \
                .eq("restaurant_id", restaurant_id) \
                .execute()
        except APIError as e:
            raise InvalidRequest("Table not found") from e
        if not result.data:
            raise InvalidRequest("Table not found")

    @staticmethod
    def occupy_table(restaurant_id: str, table_id: str):
        """Non-fatal: the order stands even if the table flag cannot be set."""
        try:
            supabase_admin.table("tables").update({"status": TableStatus.OCCUPIED.value}) \
                .eq("id", table_id) \
                .eq("restaurant_id", restaurant_id) \
                .execute()
        except (APIError, httpx.HTTPError) as e:
            logger.warning("could not mark table %s occupied: %s", table_id, e,
                           extra={"restaurant_id": restaurant_id})

    @staticmethod
    async def create_order_records(
        restaurant: Restaurant,
        created_by: str,
        lines: List[CartLine],
        table_id: Optional[str] = None,
        customer: Optional[CustomerInfo] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Write an order header and its items together.

        A failed item insert deletes the header again (items cascade), so an
        order never exists without its lines.
        """
        if not lines:
            raise EmptyCartError()

        customer = customer or CustomerInfo()
        totals = compute_totals(lines, restaurant.tax_fraction, restaurant.service_charge_fraction)

        order = None
        for attempt in range(ORDER_NUMBER_ATTEMPTS):
            order_data = {
                "restaurant_id": restaurant.id,
                "table_id": table_id,
                "order_number": OrderService.generate_order_number(restaurant),
                "customer_name": customer.name or None,
                "customer_phone": customer.phone or None,
                "status": OrderStatus.PENDING.value,
                "subtotal": float(totals.subtotal),
                "tax_amount": float(totals.tax_amount),
                "service_charge": float(totals.service_charge),
                "discount_amount": 0.0,
                "total_amount": float(totals.total),
                "notes": notes,
                "created_by": created_by,
            }
            try:
                result = supabase_admin.table("orders").insert(order_data).execute()
            except APIError as e:
                if e.code == UNIQUE_VIOLATION and attempt < ORDER_NUMBER_ATTEMPTS - 1:
                    logger.info("order number %s taken, drawing another", order_data["order_number"])
                    continue
                raise OrderPersistenceError() from e
            if not result.data:
                raise OrderPersistenceError()
            order = result.data[0]
            break

        items = [
            {
                "order_id": order["id"],
                "menu_item_id": line.menu_item_id,
                "quantity": line.quantity,
                "unit_price": float(line.unit_price),
                "total_price": float(to_money(line.unit_price * line.quantity)),
                "special_instructions": line.special_instructions or None,
            }
            for line in lines
        ]

        try:
            items_result = supabase_admin.table("order_items").insert(items).execute()
        except (APIError, httpx.HTTPError) as e:
            OrderService._discard_order(order["id"], restaurant.id)
            raise OrderItemsPersistenceError() from e

        order["items"] = items_result.data or items
        order["totals"] = totals.as_dict()
        return order

    @staticmethod
    def _discard_order(order_id: str, restaurant_id: str):
        try:
            supabase_admin.table("orders").delete().eq("id", order_id).execute()
        except (APIError, httpx.HTTPError) as e:
            logger.error("order %s left without items, manual cleanup needed: %s", order_id, e,
                         extra={"order_id": order_id, "restaurant_id": restaurant_id})

    @staticmethod
    def _queue_order(
        caller: dict,
        lines: List[CartLine],
        table_id: Optional[str],
        customer: CustomerInfo,
        notes: Optional[str],
    ) -> Dict[str, Any]:
        payload = {
            "restaurant_id": caller["restaurant_id"],
            "created_by": caller["id"],
            "table_id": table_id,
            "customer_name": customer.name,
            "customer_phone": customer.phone,
            "notes": notes,
            "lines": [line.model_dump(mode="json") for line in lines],
        }
        entry = OfflineQueue.enqueue(caller["restaurant_id"], caller["id"], payload)
        CartStore.clear(caller["restaurant_id"], caller["id"])
        return {
            "queued": True,
            "queue_id": entry["id"],
            "pending": len(OfflineQueue.pending(caller["restaurant_id"], caller["id"])),
            "message": "Order saved offline. Will sync when online.",
        }

    @staticmethod
    async def submit_order(
        caller: dict,
        payment_method: PaymentMethod,
        table_id: Optional[str] = None,
        customer: Optional[CustomerInfo] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        restaurant_id = caller["restaurant_id"]
        customer = customer or CustomerInfo()

        cart = CartStore.load(restaurant_id, caller["id"])
        if cart.is_empty():
            raise EmptyCartError()

        if not connectivity.is_online:
            return OrderService._queue_order(caller, cart.lines, table_id, customer, notes)

        try:
            restaurant = RestaurantService.get_restaurant(restaurant_id)
            if table_id:
                OrderService._check_table(restaurant_id, table_id)
            order = await OrderService.create_order_records(
                restaurant, caller["id"], cart.lines, table_id, customer, notes
            )
        except httpx.HTTPError as e:
            connectivity.mark_offline(str(e))
            return OrderService._queue_order(caller, cart.lines, table_id, customer, notes)

        if table_id:
            OrderService.occupy_table(restaurant_id, table_id)
        invalidate_order_cache(restaurant_id)

        try:
            payment = await PaymentService.initiate_payment(
                caller,
                order_id=order["id"],
                amount=order["totals"]["total"],
                method=payment_method,
                currency=restaurant.currency,
                customer_name=customer.name,
                customer_phone=customer.phone,
            )
        except POSError as e:
            # The order stays pending for reconciliation; the caller can retry payment on it
            e.order_id = order["id"]
            logger.warning("payment for order %s failed: %s", order["order_number"], e.message,
                           extra={"order_id": order["id"], "restaurant_id": restaurant_id})
            raise

        CartStore.clear(restaurant_id, caller["id"])

        return {
            "queued": False,
            "order_id": order["id"],
            "order_number": order["order_number"],
            "status": payment.get("order_status") or OrderStatus.PENDING.value,
            "totals": order["totals"],
            "payment": payment,
            "payment_status": payment["status"],
        }

    @staticmethod
    async def create_queued_order(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Replay one offline entry as an independent order creation (no payment)."""
        restaurant = RestaurantService.get_restaurant(payload["restaurant_id"])
        lines = [CartLine(**line) for line in payload.get("lines", [])]
        order = await OrderService.create_order_records(
            restaurant,
            payload["created_by"],
            lines,
            payload.get("table_id"),
            CustomerInfo(name=payload.get("customer_name"), phone=payload.get("customer_phone")),
            payload.get("notes"),
        )
        if payload.get("table_id"):
            OrderService.occupy_table(restaurant.id, payload["table_id"])
        invalidate_order_cache(restaurant.id)
        return order

    @staticmethod
    def list_orders(restaurant_id: str, status: Optional[OrderStatus] = None, limit: int = 50) -> List[Dict[str, Any]]:
        query = supabase_admin.table("orders").select("*").eq("restaurant_id", restaurant_id)
        if status:
            query = query.eq("status", status.value)
        result = query.order("created_at", desc=True).limit(limit).execute()
        return result.data or []

    @staticmethod
    def update_status(caller: dict, order_id: str, new_status: OrderStatus) -> Dict[str, Any]:
        restaurant_id = caller["restaurant_id"]
        try:
            result = supabase_admin.table("orders").select("*") \
                .eq("id", order_id) \
                .eq("restaurant_id", restaurant_id) \
                .execute()
        except APIError as e:
            raise OrderNotFound() from e
        if not result.data:
            raise OrderNotFound()

        order = result.data[0]
        current = OrderStatus(order["status"])
        if current == new_status:
            return order
        if new_status not in ORDER_TRANSITIONS[current]:
            raise InvalidRequest(f"Cannot move order from {current.value} to {new_status.value}")

        updates: Dict[str, Any] = {"status": new_status.value}
        if new_status == OrderStatus.SERVED:
            updates["served_by"] = caller["id"]
            updates["served_at"] = utc_now().isoformat()

        updated = supabase_admin.table("orders").update(updates).eq("id", order_id).execute()
        invalidate_order_cache(restaurant_id)
        return updated.data[0] if updated.data else {**order, **updates}
