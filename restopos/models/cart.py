from typing import List, Optional
from decimal import Decimal
from pydantic import BaseModel, Field


class CartLine(BaseModel):
    menu_item_id: str
    name: Optional[str] = None
    unit_price: Decimal
    quantity: int = Field(default=1, ge=1)
    special_instructions: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Cart(BaseModel):
    """Lines waiting to be submitted by one staff member.

    A line never holds a quantity below one: setting it to zero or less drops
    the line instead.
    """

    lines: List[CartLine] = []

    def is_empty(self) -> bool:
        return not self.lines

    def find(self, menu_item_id: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.menu_item_id == menu_item_id:
                return line
        return None

    def add(self, line: CartLine) -> CartLine:
        existing = self.find(line.menu_item_id)
        if existing:
            existing.quantity += line.quantity
            if line.special_instructions:
                existing.special_instructions = line.special_instructions
            return existing
        self.lines.append(line)
        return line

    def set_quantity(self, menu_item_id: str, quantity: int) -> Optional[CartLine]:
        if quantity <= 0:
            self.remove(menu_item_id)
            return None
        line = self.find(menu_item_id)
        if line:
            line.quantity = quantity
        return line

    def remove(self, menu_item_id: str) -> bool:
        before = len(self.lines)
        self.lines = [line for line in self.lines if line.menu_item_id != menu_item_id]
        return len(self.lines) < before

    def clear(self):
        self.lines = []
