from supabase import create_client, acreate_client, Client, AsyncClient
from .config import settings

# Public client, used to resolve bearer tokens
supabase: Client = create_client(
    settings.SUPABASE_URL,
    settings.SUPABASE_KEY
)

# Service client for tenant-scoped reads and writes
supabase_admin: Client = create_client(
    settings.SUPABASE_URL,
    settings.SUPABASE_SERVICE_KEY
)


async def create_realtime_client() -> AsyncClient:
    """Realtime channels are only available on the async client."""
    return await acreate_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_KEY
    )
