from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
from pydantic import BaseModel, Field

from ..core.permissions import require_staff
from ..models.cart import Cart, CartLine
from ..services.cart_store import CartStore
from ..services.pricing import compute_totals
from ..services.restaurants import RestaurantService

router = APIRouter(prefix="/cart", tags=["Cart"])


class CartItemAdd(BaseModel):
    menu_item_id: str
    quantity: int = Field(default=1, gt=0)
    special_instructions: Optional[str] = None


class CartItemUpdate(BaseModel):
    quantity: int


def _cart_response(restaurant_id: str, cart: Cart) -> dict:
    restaurant = RestaurantService.get_restaurant(restaurant_id)
    totals = compute_totals(cart.lines, restaurant.tax_fraction, restaurant.service_charge_fraction)
    return {
        "items": [
            {**line.model_dump(mode="json"), "line_total": float(line.line_total)}
            for line in cart.lines
        ],
        "item_count": sum(line.quantity for line in cart.lines),
        "totals": totals.as_dict(),
    }


@router.get("")
async def get_cart(current_user: dict = Depends(require_staff)):
    cart = CartStore.load(current_user["restaurant_id"], current_user["id"])
    return _cart_response(current_user["restaurant_id"], cart)


@router.post("/items")
async def add_to_cart(item: CartItemAdd, current_user: dict = Depends(require_staff)):
    """Add a menu item; adding an item already in the cart raises its quantity"""
    restaurant_id = current_user["restaurant_id"]
    menu_item = RestaurantService.get_menu_item(restaurant_id, item.menu_item_id)

    cart = CartStore.load(restaurant_id, current_user["id"])
    cart.add(CartLine(
        menu_item_id=menu_item.id,
        name=menu_item.name,
        unit_price=menu_item.price,
        quantity=item.quantity,
        special_instructions=item.special_instructions,
    ))
    CartStore.save(restaurant_id, current_user["id"], cart)
    return _cart_response(restaurant_id, cart)


@router.patch("/items/{menu_item_id}")
async def update_cart_item(menu_item_id: str, update: CartItemUpdate, current_user: dict = Depends(require_staff)):
    restaurant_id = current_user["restaurant_id"]
    cart = CartStore.load(restaurant_id, current_user["id"])
    if not cart.find(menu_item_id):
        raise HTTPException(status_code=404, detail="Item not in cart")

    cart.set_quantity(menu_item_id, update.quantity)
    CartStore.save(restaurant_id, current_user["id"], cart)
    return _cart_response(restaurant_id, cart)


@router.delete("/items/{menu_item_id}")
async def remove_cart_item(menu_item_id: str, current_user: dict = Depends(require_staff)):
    restaurant_id = current_user["restaurant_id"]
    cart = CartStore.load(restaurant_id, current_user["id"])
    if not cart.remove(menu_item_id):
        raise HTTPException(status_code=404, detail="Item not in cart")

    CartStore.save(restaurant_id, current_user["id"], cart)
    return _cart_response(restaurant_id, cart)


@router.delete("")
async def clear_cart(current_user: dict = Depends(require_staff)):
    CartStore.clear(current_user["restaurant_id"], current_user["id"])
    return {"message": "Cart cleared"}
