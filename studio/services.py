"""
Service wiring — one ledger, poller, submitter, batch coordinator, pipeline
runner and rate limiter per process.

Backends are picked from configuration:
  - Supabase configured → SupabaseJobLedger, else MemoryJobLedger
  - REDIS_URL reachable → RedisRateLimitStore, else MemoryRateLimitStore
"""

import logging
from typing import Optional

import redis
from fastapi import Depends, Request

from . import config, supabase_client
from .batch import BatchCoordinator
from .errors import RateLimitExceeded
from .ledger import JobLedger, MemoryJobLedger, SupabaseJobLedger
from .pipeline import PipelineRunner
from .poller import StatusPoller
from .provider_factory import ProviderFactory
from .rate_limiter import (
    MemoryRateLimitStore,
    RateLimiter,
    RateLimitResult,
    RateLimitStore,
    RedisRateLimitStore,
    get_client_identifier,
)
from .submitter import JobSubmitter

logger = logging.getLogger(__name__)


class Services:
    def __init__(
        self,
        ledger: JobLedger,
        providers: ProviderFactory,
        rate_limiter: RateLimiter,
        default_provider: str = "luma",
        poller: Optional[StatusPoller] = None,
    ):
        self.ledger = ledger
        self.providers = providers
        self.rate_limiter = rate_limiter
        self.poller = poller or StatusPoller(ledger, providers)
        self.submitter = JobSubmitter(providers.get_provider(default_provider), ledger)
        self.batches = BatchCoordinator(self.submitter, self.poller, ledger)
        self.pipelines = PipelineRunner(providers.get_provider("replicate"), ledger, self.poller)

    async def shutdown(self):
        await self.pipelines.shutdown()
        await self.poller.shutdown()


# ── Backend selection ────────────────────────────────────────────────────────

def _build_ledger() -> JobLedger:
    if supabase_client.is_configured():
        return SupabaseJobLedger()
    logger.warning("Supabase not configured — jobs are kept in memory only")
    return MemoryJobLedger()


def _build_rate_limit_store() -> RateLimitStore:
    if not config.REDIS_URL:
        logger.info("No REDIS_URL — using in-memory rate limit store")
        return MemoryRateLimitStore()

    client = redis.from_url(config.REDIS_URL, decode_responses=False)
    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e} — falling back to in-memory rate limit store")
        return MemoryRateLimitStore()

    logger.info(f"Redis connected: {config.REDIS_URL[:30]}...")
    return RedisRateLimitStore(client)


def build_services() -> Services:
    providers = ProviderFactory()
    default_provider = "luma" if config.LUMA_API_KEY or not config.REPLICATE_API_TOKEN else "replicate"
    return Services(
        ledger=_build_ledger(),
        providers=providers,
        rate_limiter=RateLimiter(_build_rate_limit_store()),
        default_provider=default_provider,
    )


# ── Process singleton / FastAPI dependencies ─────────────────────────────────

_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Optional[Services]):
    global _services
    _services = services


def rate_limited(max_requests: int, scope: str = ""):
    """
    Dependency enforcing a fixed-window limit per client.

    The key is the client identifier, suffixed with `:scope` when given, so
    different endpoint groups count separately.
    """

    def dependency(request: Request, services: Services = Depends(get_services)) -> RateLimitResult:
        identifier = get_client_identifier(request.headers)
        key = f"{identifier}:{scope}" if scope else identifier
        result = services.rate_limiter.check(key, max_requests)
        if not result.allowed:
            raise RateLimitExceeded(result.reset_time)
        return result

    return dependency
