from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel

class Restaurant(BaseModel):
    id: str
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    timezone: str = "UTC"
    currency: str = "INR"
    # Stored as percentages, e.g. 18.00 for 18%
    tax_rate: Decimal = Decimal("0")
    service_charge: Decimal = Decimal("0")
    is_active: bool = True
    created_at: Optional[datetime] = None

    @property
    def tax_fraction(self) -> Decimal:
        return self.tax_rate / Decimal("100")

    @property
    def service_charge_fraction(self) -> Decimal:
        return self.service_charge / Decimal("100")

class MenuItem(BaseModel):
    id: str
    restaurant_id: str
    name: str
    description: Optional[str] = None
    category: str
    price: Decimal
    image_url: Optional[str] = None
    is_available: bool = True
    is_vegetarian: bool = False
    preparation_time: int = 15
    sort_order: int = 0
