from fastapi import APIRouter, Depends, Request
from typing import Any
from pydantic import BaseModel

from ..core.permissions import get_payment_caller
from ..core.rate_limiter import payment_limiter
from ..services.payments import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])


class PaymentCreate(BaseModel):
    # Checked by PaymentService, failures answer 400
    order_id: Any = None
    amount: Any = None
    currency: Any = None
    method: Any = None
    customer_name: Any = None
    customer_phone: Any = None


@router.post("/create")
async def create_payment(
    payment: PaymentCreate,
    request: Request,
    current_user: dict = Depends(get_payment_caller)
):
    """Initiate a payment for an order of the caller's restaurant"""
    await payment_limiter.check_rate_limit(request, current_user["id"])

    return await PaymentService.initiate_payment(
        current_user,
        order_id=payment.order_id,
        amount=payment.amount,
        method=payment.method,
        currency=payment.currency,
        customer_name=payment.customer_name,
        customer_phone=payment.customer_phone,
    )
