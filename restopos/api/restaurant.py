from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
import pytz
from pydantic import BaseModel, Field, field_validator
from postgrest.exceptions import APIError

from ..core.errors import write_error
from ..core.permissions import require_manager_up, require_staff
from ..services.restaurants import RestaurantService
from ..utils.clock import utc_now

router = APIRouter(prefix="/restaurant", tags=["Restaurant"])


class RestaurantSettingsUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    timezone: Optional[str] = None
    currency: Optional[str] = Field(default=None, pattern="^[A-Z]{3}$")
    # Percentages, e.g. 18.00 for 18%
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    service_charge: Optional[Decimal] = Field(default=None, ge=0, le=100)

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value):
        if value is not None and value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value


@router.get("")
async def get_settings(current_user: dict = Depends(require_staff)):
    restaurant = RestaurantService.get_restaurant(current_user["restaurant_id"])
    return restaurant.model_dump(mode="json")


@router.patch("")
async def update_settings(update: RestaurantSettingsUpdate, current_user: dict = Depends(require_manager_up)):
    updates = {k: float(v) if isinstance(v, Decimal) else v
               for k, v in update.model_dump(exclude_none=True).items()}
    if not updates:
        raise HTTPException(status_code=400, detail="Nothing to update")
    updates["updated_at"] = utc_now().isoformat()

    try:
        restaurant = RestaurantService.update_settings(current_user["restaurant_id"], updates)
    except APIError as e:
        raise write_error(e, "Restaurant not found")

    return {"message": "Settings updated", "restaurant": restaurant.model_dump(mode="json")}
