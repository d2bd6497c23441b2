from enum import Enum
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

class UserRole(str, Enum):
    OWNER = "owner"
    MANAGER = "manager"
    CASHIER = "cashier"
    WAITER = "waiter"

class UserProfile(BaseModel):
    id: str
    restaurant_id: Optional[str] = None
    email: str
    full_name: Optional[str] = None
    role: UserRole = UserRole.WAITER
    phone: Optional[str] = None
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
