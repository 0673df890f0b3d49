"""
Supabase client factory.

A single service-role client is shared by object storage and the
stored-procedure calls. supabase-py is synchronous, so callers run its
methods through asyncio.to_thread.
"""

import logging
from functools import lru_cache

from supabase import Client, create_client
from supabase.lib.client_options import ClientOptions

from gearhead.config.settings import settings


logger = logging.getLogger(__name__)


@lru_cache
def get_supabase_client() -> Client:
    """Get the cached service-role Supabase client."""
    options = ClientOptions(
        postgrest_client_timeout=30,
        storage_client_timeout=60,
    )
    client = create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
        options,
    )
    logger.info("Supabase service client initialized")
    return client
