"""
Supabase Client Configuration

Job bookkeeping runs server-side without a user session, so only the
service-role (admin) client is needed here.
"""

from functools import lru_cache

from supabase import create_client, Client

from resumegen.config import config


class SupabaseClientError(Exception):
    """Raised when Supabase client cannot be initialized."""
    pass


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """
    Get Supabase client with service role key (admin access).

    WARNING: This client bypasses Row Level Security! Owner scoping of
    job reads is enforced by SupabaseJobStore queries instead.
    """
    if not config.SUPABASE_URL:
        raise SupabaseClientError(
            "SUPABASE_URL is not configured. "
            "Set it in your .env file or environment variables."
        )

    if not config.SUPABASE_SERVICE_KEY:
        raise SupabaseClientError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set it in your .env file or environment variables."
        )

    return create_client(
        config.SUPABASE_URL,
        config.SUPABASE_SERVICE_KEY
    )
