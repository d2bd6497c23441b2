from enum import Enum
from typing import Optional
from pydantic import BaseModel

class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"

# Staff-driven transitions; cancelled is reachable from any non-final state
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PREPARING, OrderStatus.SERVED, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.SERVED, OrderStatus.CANCELLED},
    OrderStatus.SERVED: set(),
    OrderStatus.CANCELLED: set(),
}

class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

class Settlement(str, Enum):
    CASH = "cash"
    GATEWAY = "gateway"

class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    RAZORPAY = "razorpay"

    @property
    def settlement(self) -> Settlement:
        """Cash settles at the counter, everything else goes through the processor."""
        if self is PaymentMethod.CASH:
            return Settlement.CASH
        return Settlement.GATEWAY

class CustomerInfo(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
