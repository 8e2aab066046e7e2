"""Supabase client factory."""

from supabase import Client, create_client

from ..config import SupabaseConfig
from ..errors import StorageError


def create_supabase_client(config: SupabaseConfig, admin: bool = False) -> Client:
    """Create a Supabase client.

    Args:
        config: Supabase settings
        admin: Use the service-role key (server-side writes) instead of the anon key
    """
    key = config.service_role_key if admin else config.anon_key
    if not config.url or not key:
        raise StorageError("Supabase is not configured (TRYON_SUPABASE__URL / keys)")
    return create_client(config.url, key)
