from fastapi import APIRouter, Depends, Query, Request
from typing import Optional
from pydantic import BaseModel

from ..core.permissions import require_cashier_up, require_staff
from ..core.rate_limiter import default_limiter
from ..models.order import CustomerInfo, OrderStatus, PaymentMethod
from ..services.offline_queue import OfflineQueue, connectivity
from ..services.orders import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])


class OrderSubmit(BaseModel):
    payment_method: PaymentMethod
    table_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


@router.post("")
async def submit_order(
    order: OrderSubmit,
    request: Request,
    current_user: dict = Depends(require_cashier_up)
):
    """Turn the caller's cart into an order and start its payment.

    When the backend is unreachable the order is queued and ``queued`` is true.
    """
    await default_limiter.check_rate_limit(request, current_user["id"])

    return await OrderService.submit_order(
        current_user,
        payment_method=order.payment_method,
        table_id=order.table_id,
        customer=CustomerInfo(name=order.customer_name, phone=order.customer_phone),
        notes=order.notes,
    )


@router.get("")
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(require_staff)
):
    orders = OrderService.list_orders(current_user["restaurant_id"], status, limit)
    return {"orders": orders, "count": len(orders)}


@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: str,
    status_update: OrderStatusUpdate,
    current_user: dict = Depends(require_staff)
):
    order = OrderService.update_status(current_user, order_id, status_update.status)
    return {"message": f"Order status updated to {status_update.status.value}", "order": order}


@router.get("/offline")
async def get_offline_orders(current_user: dict = Depends(require_staff)):
    """Orders waiting to sync, and the ones that gave up after repeated failures"""
    restaurant_id, user_id = current_user["restaurant_id"], current_user["id"]
    return {
        "online": connectivity.is_online,
        "pending": OfflineQueue.pending(restaurant_id, user_id),
        "failed": OfflineQueue.failed(restaurant_id, user_id),
    }


@router.post("/offline/sync")
async def sync_offline_orders(current_user: dict = Depends(require_staff)):
    if not connectivity.is_online and connectivity.probe():
        connectivity.mark_online()

    if not connectivity.is_online:
        return {"online": False, "synced": 0, "retrying": 0, "failed": 0}

    result = await OfflineQueue.flush(
        current_user["restaurant_id"], current_user["id"], OrderService.create_queued_order
    )
    return {"online": connectivity.is_online, **result}
