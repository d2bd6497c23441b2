import base64
import logging
import ssl
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import GatewayError, RequestTimeoutError

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Razorpay expects integer paise."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayService:

    @staticmethod
    def get_base_url() -> str:
        return settings.RAZORPAY_BASE_URL.rstrip("/")

    @staticmethod
    def get_public_key() -> str:
        return settings.RAZORPAY_KEY_ID

    @staticmethod
    def _auth_headers() -> Dict[str, str]:
        if not settings.RAZORPAY_KEY_ID or not settings.RAZORPAY_KEY_SECRET:
            raise GatewayError("Razorpay credentials not configured")

        credentials = f"{settings.RAZORPAY_KEY_ID}:{settings.RAZORPAY_KEY_SECRET}"
        encoded_credentials = base64.b64encode(credentials.encode()).decode()
        return {
            "Authorization": f"Basic {encoded_credentials}",
            "Content-Type": "application/json"
        }

    @staticmethod
    async def create_order(
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Create a processor-side order and return Razorpay's response body."""
        headers = RazorpayService._auth_headers()
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {}
        }

        ssl_context = ssl.create_default_context()
        ssl_context.minimum_version = ssl.TLSVersion.TLSv1_2

        try:
            async with httpx.AsyncClient(verify=ssl_context, timeout=settings.REQUEST_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    f"{RazorpayService.get_base_url()}/v1/orders",
                    headers=headers,
                    json=payload
                )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError() from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Razorpay error: {e}") from e

        if response.is_error:
            try:
                description = response.json().get("error", {}).get("description")
            except ValueError:
                description = None
            logger.warning("razorpay rejected order %s: %s", receipt, response.text)
            raise GatewayError(f"Razorpay error: {description or 'Payment failed'}")

        return response.json()
