from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
from pydantic import BaseModel, Field
from postgrest.exceptions import APIError

from ..core.errors import write_error
from ..core.permissions import require_manager_up, require_staff
from ..database import supabase_admin
from ..models.table import TableStatus
from ..utils.clock import utc_now

router = APIRouter(prefix="/tables", tags=["Tables"])

DUPLICATE = "Table number already exists"
IN_USE = "Table has orders; deactivate it instead"


class TableStatusUpdate(BaseModel):
    status: TableStatus


class TableCreate(BaseModel):
    table_number: str = Field(..., min_length=1, max_length=20)
    capacity: int = Field(default=4, ge=1)
    status: TableStatus = TableStatus.AVAILABLE
    position_x: int = 0
    position_y: int = 0
    is_active: bool = True


class TableUpdate(BaseModel):
    table_number: Optional[str] = Field(default=None, min_length=1, max_length=20)
    capacity: Optional[int] = Field(default=None, ge=1)
    status: Optional[TableStatus] = None
    position_x: Optional[int] = None
    position_y: Optional[int] = None
    is_active: Optional[bool] = None


def _update_table(restaurant_id: str, table_id: str, updates: dict) -> dict:
    updates["updated_at"] = utc_now().isoformat()
    try:
        result = supabase_admin.table("tables").update(updates) \
            .eq("id", table_id) \
            .eq("restaurant_id", restaurant_id) \
            .execute()
    except APIError as e:
        raise write_error(e, "Table not found", duplicate=DUPLICATE)
    if not result.data:
        raise HTTPException(status_code=404, detail="Table not found")
    return result.data[0]


@router.get("")
async def get_tables(current_user: dict = Depends(require_staff)):
    """Active tables of the caller's restaurant, by table number"""
    result = supabase_admin.table("tables").select("*") \
        .eq("restaurant_id", current_user["restaurant_id"]) \
        .eq("is_active", True) \
        .order("table_number") \
        .execute()
    return {"tables": result.data or []}


@router.post("", response_model=dict)
async def create_table(table: TableCreate, current_user: dict = Depends(require_manager_up)):
    data = table.model_dump(mode="json")
    data["restaurant_id"] = current_user["restaurant_id"]

    try:
        result = supabase_admin.table("tables").insert(data).execute()
    except APIError as e:
        raise write_error(e, "Table not found", duplicate=DUPLICATE)

    return {"message": "Table created", "table": result.data[0]}


@router.patch("/{table_id}/status")
async def update_table_status(
    table_id: str,
    status_update: TableStatusUpdate,
    current_user: dict = Depends(require_staff)
):
    table = _update_table(current_user["restaurant_id"], table_id, {"status": status_update.status.value})
    return {"message": f"Table status updated to {status_update.status.value}", "table": table}


@router.patch("/{table_id}")
async def update_table(
    table_id: str,
    update: TableUpdate,
    current_user: dict = Depends(require_manager_up)
):
    updates = update.model_dump(mode="json", exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="Nothing to update")

    table = _update_table(current_user["restaurant_id"], table_id, updates)
    return {"message": "Table updated", "table": table}


@router.delete("/{table_id}")
async def delete_table(table_id: str, current_user: dict = Depends(require_manager_up)):
    try:
        result = supabase_admin.table("tables").delete() \
            .eq("id", table_id) \
            .eq("restaurant_id", current_user["restaurant_id"]) \
            .execute()
    except APIError as e:
        raise write_error(e, "Table not found", in_use=IN_USE)
    if not result.data:
        raise HTTPException(status_code=404, detail="Table not found")

    return {"message": "Table deleted"}
