"""
Environment configuration for the studio worker.

Values are read once at import time (after loading a local `.env`), the same
way the provider clients read their API keys. Call sites that need to
override a value take it as a keyword argument instead of re-reading env.
"""

import os
import logging
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _float_env(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


# ── Provider keys ────────────────────────────────────────────────────────────

LUMA_API_KEY = os.getenv("LUMA_API_KEY", "")
REPLICATE_API_TOKEN = os.getenv("REPLICATE_API_TOKEN", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# ── Storage ──────────────────────────────────────────────────────────────────

SUPABASE_URL = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
SUPABASE_VIDEOS_TABLE = os.getenv("SUPABASE_VIDEOS_TABLE", "videos")
SUPABASE_AUDIO_BUCKET = os.getenv("SUPABASE_AUDIO_BUCKET", "images")
REDIS_URL = os.getenv("REDIS_URL", "")

# ── Polling ──────────────────────────────────────────────────────────────────

POLL_INTERVAL_SECONDS = _float_env("POLL_INTERVAL_SECONDS", 4.0)
POLL_MAX_LIFETIME_SECONDS = _float_env("POLL_MAX_LIFETIME_SECONDS", None)

# Pipeline intermediate steps block on the provider directly
STEP_POLL_INTERVAL_SECONDS = _float_env("STEP_POLL_INTERVAL_SECONDS", 2.0)
STEP_MAX_WAIT_SECONDS = _float_env("STEP_MAX_WAIT_SECONDS", 300.0)

# ── Rate limiting (fixed window per client) ──────────────────────────────────

CREATE_RATE_LIMIT = _int_env("CREATE_RATE_LIMIT", 5)
STATUS_RATE_LIMIT = _int_env("STATUS_RATE_LIMIT", 60)
RATE_LIMIT_WINDOW_MS = _int_env("RATE_LIMIT_WINDOW_MS", 60000)

# ── Batch submission ─────────────────────────────────────────────────────────

BATCH_CONCURRENCY = _int_env("BATCH_CONCURRENCY", 1)
BATCH_SUBMIT_SPACING_SECONDS = _float_env("BATCH_SUBMIT_SPACING_SECONDS", 0.5)

# Batch and pipeline runs kept in memory; the oldest settled runs are evicted first
RUN_HISTORY_LIMIT = _int_env("RUN_HISTORY_LIMIT", 200)

# ── Provider HTTP retries (429 / 5xx) ────────────────────────────────────────

PROVIDER_MAX_RETRIES = _int_env("PROVIDER_MAX_RETRIES", 3)

APP_NAME = os.getenv("APP_NAME", "AI Video Studio")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


def validate_env() -> tuple[bool, list[str]]:
    """
    Check that the keys the worker needs at runtime are present.

    Returns:
        (valid, errors) — errors is a list of human-readable messages.
    """
    errors: list[str] = []

    if not LUMA_API_KEY and not REPLICATE_API_TOKEN:
        errors.append("Either LUMA_API_KEY or REPLICATE_API_TOKEN must be set")
    if not SUPABASE_URL:
        errors.append("SUPABASE_URL is not set")
    if not SUPABASE_SERVICE_ROLE_KEY:
        errors.append("SUPABASE_SERVICE_ROLE_KEY is not set")

    return len(errors) == 0, errors
