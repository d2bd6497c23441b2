from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from postgrest.exceptions import APIError

from ..core.cache import invalidate_menu_cache
from ..core.errors import write_error
from ..core.permissions import require_manager_up, require_staff
from ..database import supabase_admin
from ..services.restaurants import RestaurantService
from ..utils.clock import utc_now

router = APIRouter(prefix="/menu", tags=["Menu"])

IN_USE = "Menu item has orders; mark it unavailable instead"


class MenuItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: str = Field(..., min_length=1)
    price: Decimal = Field(ge=0)
    cost_price: Decimal = Field(default=Decimal("0"), ge=0)
    image_url: Optional[str] = None
    preparation_time: int = Field(default=15, ge=0)
    calories: Optional[int] = Field(default=None, ge=0)
    is_vegetarian: bool = False
    is_spicy: bool = False
    is_available: bool = True
    allergens: List[str] = []
    tags: List[str] = []
    sort_order: int = 0


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, min_length=1)
    price: Optional[Decimal] = Field(default=None, ge=0)
    cost_price: Optional[Decimal] = Field(default=None, ge=0)
    image_url: Optional[str] = None
    preparation_time: Optional[int] = Field(default=None, ge=0)
    calories: Optional[int] = Field(default=None, ge=0)
    is_vegetarian: Optional[bool] = None
    is_spicy: Optional[bool] = None
    is_available: Optional[bool] = None
    allergens: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    sort_order: Optional[int] = None


class MenuItemAvailability(BaseModel):
    is_available: bool


def _row(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: float(v) if isinstance(v, Decimal) else v for k, v in data.items()}


def _update_item(restaurant_id: str, item_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    updates["updated_at"] = utc_now().isoformat()
    try:
        result = supabase_admin.table("menu_items").update(updates) \
            .eq("id", item_id) \
            .eq("restaurant_id", restaurant_id) \
            .execute()
    except APIError as e:
        raise write_error(e, "Menu item not found")
    if not result.data:
        raise HTTPException(status_code=404, detail="Menu item not found")
    invalidate_menu_cache(restaurant_id)
    return result.data[0]


@router.get("")
async def get_menu(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    current_user: dict = Depends(require_staff)
):
    """Available menu items for the caller's restaurant, grouped by category"""
    items = RestaurantService.get_menu(current_user["restaurant_id"], category, search)
    categories = sorted({item["category"] for item in RestaurantService.get_menu(current_user["restaurant_id"])})
    return {"categories": ["All"] + categories, "items": items}


@router.get("/items")
async def list_menu_items(current_user: dict = Depends(require_manager_up)):
    """Every menu item, unavailable ones included"""
    result = supabase_admin.table("menu_items").select("*") \
        .eq("restaurant_id", current_user["restaurant_id"]) \
        .order("category") \
        .order("sort_order") \
        .execute()
    return {"items": result.data or []}


@router.post("/items", response_model=dict)
async def create_menu_item(item: MenuItemCreate, current_user: dict = Depends(require_manager_up)):
    data = _row(item.model_dump())
    data["restaurant_id"] = current_user["restaurant_id"]

    try:
        result = supabase_admin.table("menu_items").insert(data).execute()
    except APIError as e:
        raise write_error(e, "Menu item not found")

    invalidate_menu_cache(current_user["restaurant_id"])
    return {"message": "Menu item created", "item": result.data[0]}


@router.patch("/items/{item_id}")
async def update_menu_item(
    item_id: str,
    update: MenuItemUpdate,
    current_user: dict = Depends(require_manager_up)
):
    updates = _row(update.model_dump(exclude_none=True))
    if not updates:
        raise HTTPException(status_code=400, detail="Nothing to update")

    item = _update_item(current_user["restaurant_id"], item_id, updates)
    return {"message": "Menu item updated", "item": item}


@router.patch("/items/{item_id}/availability")
async def set_menu_item_availability(
    item_id: str,
    availability: MenuItemAvailability,
    current_user: dict = Depends(require_manager_up)
):
    item = _update_item(current_user["restaurant_id"], item_id, {"is_available": availability.is_available})
    state = "available" if availability.is_available else "unavailable"
    return {"message": f"Menu item marked {state}", "item": item}


@router.delete("/items/{item_id}")
async def delete_menu_item(item_id: str, current_user: dict = Depends(require_manager_up)):
    try:
        result = supabase_admin.table("menu_items").delete() \
            .eq("id", item_id) \
            .eq("restaurant_id", current_user["restaurant_id"]) \
            .execute()
    except APIError as e:
        raise write_error(e, "Menu item not found", in_use=IN_USE)
    if not result.data:
        raise HTTPException(status_code=404, detail="Menu item not found")

    invalidate_menu_cache(current_user["restaurant_id"])
    return {"message": "Menu item deleted"}
