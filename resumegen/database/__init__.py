"""
resumegen Database Layer

Supabase client and the Supabase-backed job store.
"""

from .client import get_supabase_admin_client, SupabaseClientError
from .jobs import SupabaseJobStore

__all__ = [
    "get_supabase_admin_client",
    "SupabaseClientError",
    "SupabaseJobStore",
]
