from datetime import datetime
from typing import Optional
from pydantic import BaseModel
from decimal import Decimal

class InventoryItem(BaseModel):
    id: Optional[str] = None
    restaurant_id: Optional[str] = None
    item_name: str
    category: Optional[str] = None
    unit: str = "pieces"  # kg, liters, pieces
    current_stock: Decimal = Decimal("0")
    minimum_stock: Decimal = Decimal("0")
    maximum_stock: Decimal = Decimal("0")
    unit_cost: Decimal = Decimal("0")
    supplier_name: Optional[str] = None
    last_restocked_at: Optional[datetime] = None

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.minimum_stock
