from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
from pydantic import BaseModel, Field
from postgrest.exceptions import APIError

from ..core.errors import write_error
from ..core.permissions import require_manager_up
from ..database import supabase_admin
from ..services.reports import ReportService
from ..utils.clock import utc_now

router = APIRouter(prefix="/inventory", tags=["Inventory"])

DUPLICATE = "Item name already exists"


class InventoryItemCreate(BaseModel):
    item_name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = None
    unit: str = "pieces"
    current_stock: Decimal = Field(default=Decimal("0"), ge=0)
    minimum_stock: Decimal = Field(default=Decimal("0"), ge=0)
    maximum_stock: Decimal = Field(default=Decimal("0"), ge=0)
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0)
    supplier_name: Optional[str] = None
    supplier_contact: Optional[str] = None


class InventoryItemUpdate(BaseModel):
    item_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = None
    unit: Optional[str] = None
    current_stock: Optional[Decimal] = Field(default=None, ge=0)
    minimum_stock: Optional[Decimal] = Field(default=None, ge=0)
    maximum_stock: Optional[Decimal] = Field(default=None, ge=0)
    unit_cost: Optional[Decimal] = Field(default=None, ge=0)
    supplier_name: Optional[str] = None
    supplier_contact: Optional[str] = None


class Restock(BaseModel):
    quantity: Decimal = Field(gt=0)


def _numbers_as_float(data: dict) -> dict:
    return {k: float(v) if isinstance(v, Decimal) else v for k, v in data.items()}


@router.get("/items")
async def list_inventory(current_user: dict = Depends(require_manager_up)):
    items = ReportService.get_inventory(current_user["restaurant_id"])
    return {"items": [item.model_dump(mode="json") for item in items]}


@router.post("/items", response_model=dict)
async def create_inventory_item(item: InventoryItemCreate, current_user: dict = Depends(require_manager_up)):
    data = _numbers_as_float(item.model_dump())
    data["restaurant_id"] = current_user["restaurant_id"]

    try:
        result = supabase_admin.table("inventory").insert(data).execute()
    except APIError as e:
        raise write_error(e, "Inventory item not found", duplicate=DUPLICATE)

    return {"message": "Inventory item created", "item": result.data[0]}


@router.patch("/items/{item_id}")
async def update_inventory_item(
    item_id: str,
    update: InventoryItemUpdate,
    current_user: dict = Depends(require_manager_up)
):
    updates = _numbers_as_float(update.model_dump(exclude_none=True))
    if not updates:
        raise HTTPException(status_code=400, detail="Nothing to update")
    updates["updated_at"] = utc_now().isoformat()

    try:
        result = supabase_admin.table("inventory").update(updates) \
            .eq("id", item_id) \
            .eq("restaurant_id", current_user["restaurant_id"]) \
            .execute()
    except APIError as e:
        raise write_error(e, "Inventory item not found", duplicate=DUPLICATE)
    if not result.data:
        raise HTTPException(status_code=404, detail="Inventory item not found")

    return {"message": "Inventory item updated", "item": result.data[0]}


@router.post("/items/{item_id}/restock")
async def restock_inventory_item(
    item_id: str,
    restock: Restock,
    current_user: dict = Depends(require_manager_up)
):
    """Add delivered stock to an item and stamp the restock time"""
    restaurant_id = current_user["restaurant_id"]
    try:
        current = supabase_admin.table("inventory").select("*") \
            .eq("id", item_id) \
            .eq("restaurant_id", restaurant_id) \
            .execute()
    except APIError as e:
        raise write_error(e, "Inventory item not found")
    if not current.data:
        raise HTTPException(status_code=404, detail="Inventory item not found")

    now = utc_now().isoformat()
    new_stock = Decimal(str(current.data[0].get("current_stock") or 0)) + restock.quantity

    # TODO: move to a stock-increment RPC so concurrent restocks cannot overwrite each other
    result = supabase_admin.table("inventory").update({
        "current_stock": float(new_stock),
        "last_restocked_at": now,
        "updated_at": now,
    }).eq("id", item_id).eq("restaurant_id", restaurant_id).execute()

    return {"message": f"Restocked {restock.quantity}", "item": result.data[0] if result.data else None}


@router.delete("/items/{item_id}")
async def delete_inventory_item(item_id: str, current_user: dict = Depends(require_manager_up)):
    try:
        result = supabase_admin.table("inventory").delete() \
            .eq("id", item_id) \
            .eq("restaurant_id", current_user["restaurant_id"]) \
            .execute()
    except APIError as e:
        raise write_error(e, "Inventory item not found")
    if not result.data:
        raise HTTPException(status_code=404, detail="Inventory item not found")

    return {"message": "Inventory item deleted"}
