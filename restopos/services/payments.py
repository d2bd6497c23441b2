import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import httpx
from postgrest.exceptions import APIError

from ..config import settings
from ..core.errors import (
    AccessDenied,
    InvalidRequest,
    OrderNotFound,
    PaymentPersistenceError,
    Unauthorized,
)
from ..database import supabase_admin
from ..models.order import OrderStatus, PaymentMethod, PaymentStatus, Settlement
from ..utils.clock import utc_now
from .razorpay import RazorpayService

logger = logging.getLogger(__name__)


class PaymentService:
    """Server-side payment initiation.

    This is the one place where tenant membership is checked in application
    code; the row-level policies in the database are the other layer.
    """

    @staticmethod
    def _parse_method(method: Any) -> PaymentMethod:
        try:
            return PaymentMethod(method)
        except ValueError:
            raise InvalidRequest("Invalid payment method")

    @staticmethod
    def _parse_amount(amount: Any) -> Decimal:
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, TypeError):
            raise InvalidRequest()
        if not value.is_finite() or value <= 0:
            raise InvalidRequest()
        return value

    @staticmethod
    def _optional_text(value: Any) -> Optional[str]:
        if value is not None and not isinstance(value, str):
            raise InvalidRequest()
        return value or None

    @staticmethod
    def _load_order(order_id: str) -> Dict[str, Any]:
        try:
            result = supabase_admin.table("orders").select("*").eq("id", order_id).execute()
        except APIError as e:
            # A malformed id is rejected by Postgres (22P02) rather than matching nothing
            raise OrderNotFound() from e
        if not result.data:
            raise OrderNotFound()
        return result.data[0]

    @staticmethod
    def _load_caller_tenant(user_id: str) -> Optional[str]:
        try:
            result = supabase_admin.table("user_profiles").select("restaurant_id, role").eq("id", user_id).execute()
        except APIError as e:
            raise AccessDenied() from e
        if not result.data:
            return None
        return result.data[0].get("restaurant_id")

    @staticmethod
    async def initiate_payment(
        caller: Optional[dict],
        order_id: Any,
        amount: Any,
        method: Any,
        currency: Any = None,
        customer_name: Any = None,
        customer_phone: Any = None,
    ) -> Dict[str, Any]:
        if not caller or not caller.get("id"):
            raise Unauthorized()

        if not order_id or not isinstance(order_id, str):
            raise InvalidRequest()
        value = PaymentService._parse_amount(amount)
        payment_method = PaymentService._parse_method(method)
        currency = PaymentService._optional_text(currency) or settings.DEFAULT_CURRENCY
        customer_name = PaymentService._optional_text(customer_name)
        customer_phone = PaymentService._optional_text(customer_phone)

        order = PaymentService._load_order(order_id)

        caller_tenant = PaymentService._load_caller_tenant(caller["id"])
        if not caller_tenant or caller_tenant != order["restaurant_id"]:
            logger.warning(
                "payment denied: user %s is not a member of restaurant %s",
                caller["id"], order["restaurant_id"],
                extra={"order_id": order_id},
            )
            raise AccessDenied()

        gateway_order: Dict[str, Any] = {}
        if payment_method.settlement is Settlement.GATEWAY:
            gateway_order = await RazorpayService.create_order(
                amount=value,
                currency=currency,
                receipt=f"order_{order_id}",
                notes={
                    "order_id": order_id,
                    "customer_name": customer_name or "",
                    "customer_phone": customer_phone or "",
                },
            )

        is_cash = payment_method.settlement is Settlement.CASH
        now = utc_now().isoformat()

        payment_data = {
            "restaurant_id": caller_tenant,
            "order_id": order_id,
            "amount": float(value),
            "payment_method": payment_method.value,
            "payment_status": (PaymentStatus.COMPLETED if is_cash else PaymentStatus.PENDING).value,
            "razorpay_order_id": gateway_order.get("id"),
            "processed_by": caller["id"],
            "processed_at": now if is_cash else None,
        }

        try:
            result = supabase_admin.table("payments").insert(payment_data).execute()
        except (APIError, httpx.HTTPError) as e:
            if gateway_order.get("id"):
                # Processor orders cannot be voided remotely; this needs manual reconciliation
                logger.error(
                    "orphaned razorpay order %s for order %s: payment record failed (%s)",
                    gateway_order["id"], order_id, e,
                    extra={"order_id": order_id, "restaurant_id": caller_tenant},
                )
            else:
                logger.error("payment record failed for order %s: %s", order_id, e,
                             extra={"order_id": order_id})
            raise PaymentPersistenceError() from e

        if not result.data:
            raise PaymentPersistenceError()
        payment = result.data[0]

        order_status = order.get("status")
        if is_cash:
            try:
                supabase_admin.table("orders").update({
                    "status": OrderStatus.SERVED.value,
                    "served_by": caller["id"],
                    "served_at": now,
                }).eq("id", order_id).execute()
                order_status = OrderStatus.SERVED.value
            except (APIError, httpx.HTTPError) as e:
                logger.error("cash payment %s recorded but order %s not marked served: %s",
                             payment["id"], order_id, e,
                             extra={"order_id": order_id, "payment_id": payment["id"]})

        logger.info("payment %s created via %s", payment["id"], payment_method.value,
                    extra={"order_id": order_id, "payment_id": payment["id"]})

        return {
            "success": True,
            "payment_id": payment["id"],
            "razorpay_order_id": gateway_order.get("id"),
            "razorpay_key_id": RazorpayService.get_public_key() if not is_cash else None,
            "amount": float(value),
            "currency": currency,
            "method": payment_method.value,
            "status": payment["payment_status"],
            "order_status": order_status,
        }
