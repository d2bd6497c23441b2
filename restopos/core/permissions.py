import hashlib
import logging
from typing import List, Optional
from fastapi import HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError
from ..models.user import UserProfile, UserRole
from ..database import supabase, supabase_admin
from ..services.redis import redis_client
from ..core.cache import CacheKeys
from ..core.errors import Unauthorized

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

PROFILE_TTL = 300


def resolve_profile(token: Optional[str]) -> dict:
    """Resolve a bearer token to the caller's profile, tenant included."""
    if not token:
        raise Unauthorized()

    cache_key = CacheKeys.USER_PROFILE.format(token_hash=hashlib.sha256(token.encode()).hexdigest())
    cached = redis_client.get(cache_key)
    if cached and isinstance(cached, dict) and "id" in cached:
        return cached

    try:
        user = supabase.auth.get_user(token)
    except Exception as e:
        logger.info("token rejected by auth backend: %s", e)
        raise Unauthorized() from e
    if not user or not user.user:
        raise Unauthorized()

    profile = supabase_admin.table("user_profiles").select("*").eq("id", user.user.id).execute()
    if not profile.data:
        raise Unauthorized("User profile not found")

    profile_data = profile.data[0]
    try:
        user_profile = UserProfile(**profile_data)
    except ValidationError as e:
        raise Unauthorized("Invalid user profile") from e
    if not user_profile.is_active:
        raise Unauthorized("User is inactive")

    redis_client.set(cache_key, profile_data, PROFILE_TTL)
    return profile_data


async def get_current_user(token: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    try:
        return resolve_profile(token.credentials if token else None)
    except Unauthorized as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message
        )


async def get_payment_caller(token: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    """Same as ``get_current_user`` but lets ``Unauthorized`` reach the POS error handler."""
    return resolve_profile(token.credentials if token else None)


def _check_roles(current_user: dict, allowed_roles: List[UserRole]) -> dict:
    if not current_user.get("restaurant_id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not assigned to a restaurant"
        )

    cache_key = CacheKeys.USER_PERMISSIONS.format(user_id=current_user["id"])
    cached_permission = redis_client.hget(cache_key, str(allowed_roles))

    if cached_permission == "allowed":
        return current_user
    elif cached_permission == "denied":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions"
        )

    if current_user.get("role") in allowed_roles:
        redis_client.hset(cache_key, {str(allowed_roles): "allowed"})
        redis_client.expire(cache_key, PROFILE_TTL)
        return current_user
    else:
        redis_client.hset(cache_key, {str(allowed_roles): "denied"})
        redis_client.expire(cache_key, PROFILE_TTL)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions"
        )


async def require_staff(current_user: dict = Depends(get_current_user)):
    return _check_roles(current_user, [UserRole.OWNER, UserRole.MANAGER, UserRole.CASHIER, UserRole.WAITER])


async def require_cashier_up(current_user: dict = Depends(get_current_user)):
    return _check_roles(current_user, [UserRole.OWNER, UserRole.MANAGER, UserRole.CASHIER])


async def require_manager_up(current_user: dict = Depends(get_current_user)):
    return _check_roles(current_user, [UserRole.OWNER, UserRole.MANAGER])
