"""
Lazy Supabase service-role client.

The client is created on first use so importing the worker never requires
credentials; callers that can run without Supabase check `is_configured()`.
"""

import logging
from typing import Optional

from supabase import Client, create_client

from . import config

logger = logging.getLogger(__name__)

_client: Optional[Client] = None


def is_configured() -> bool:
    return bool(config.SUPABASE_URL and config.SUPABASE_SERVICE_ROLE_KEY)


def get_supabase() -> Client:
    global _client
    if _client is None:
        if not is_configured():
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _client = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY)
        logger.info(f"Supabase client created for {config.SUPABASE_URL[:30]}...")
    return _client
