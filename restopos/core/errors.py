"""Error taxonomy for the POS workflows.

Every error carries a human-readable message that is safe to show to staff.
The HTTP layer turns any ``POSError`` into ``400 {"success": false, "error": ...}``.
"""

from fastapi import HTTPException


class POSError(Exception):
    default_message = "Request failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class EmptyCartError(POSError):
    default_message = "Cart is empty"


class OrderPersistenceError(POSError):
    default_message = "Failed to create order"


class OrderItemsPersistenceError(POSError):
    default_message = "Failed to add order items"


class Unauthorized(POSError):
    default_message = "Unauthorized"


class OrderNotFound(POSError):
    default_message = "Order not found"


class AccessDenied(POSError):
    default_message = "Access denied"


class InvalidRequest(POSError):
    default_message = "Invalid payment request"


class GatewayError(POSError):
    default_message = "Payment failed"


class PaymentPersistenceError(POSError):
    default_message = "Failed to create payment record"


class RequestTimeoutError(POSError):
    default_message = "Payment processor did not respond in time"


class SyncError(POSError):
    default_message = "Realtime channel dropped"


UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
INVALID_TEXT_REPRESENTATION = "22P02"


def write_error(e, not_found: str, duplicate: str = None, in_use: str = None) -> HTTPException:
    """HTTP error for a postgrest ``APIError`` raised by a management write."""
    if e.code == UNIQUE_VIOLATION and duplicate:
        return HTTPException(status_code=400, detail=duplicate)
    if e.code == FOREIGN_KEY_VIOLATION and in_use:
        return HTTPException(status_code=400, detail=in_use)
    if e.code == INVALID_TEXT_REPRESENTATION:
        return HTTPException(status_code=404, detail=not_found)
    return HTTPException(status_code=400, detail="Could not save changes")
