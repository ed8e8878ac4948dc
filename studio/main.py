"""
AI Video Studio worker — FastAPI entry point.

Run locally:
    uvicorn studio.main:app --reload
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__, config, metrics
from .errors import RateLimitExceeded, StudioError
from .pipeline.routes import pipeline_router
from .routes import batch_router, jobs_router, speech_router, video_router
from .services import get_services

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"{config.APP_NAME} starting up ({config.ENVIRONMENT})")
    metrics.set_gauge("start_time", time.time())
    valid, problems = config.validate_env()
    if not valid:
        for problem in problems:
            logger.warning(f"Config: {problem}")
    services = get_services()
    yield
    logger.info("Worker shutting down...")
    await services.shutdown()


app = FastAPI(title=config.APP_NAME, version=__version__, lifespan=lifespan)

app.include_router(video_router)
app.include_router(pipeline_router)
app.include_router(speech_router)
app.include_router(batch_router)
app.include_router(jobs_router)


# ── Error handlers ───────────────────────────────────────────────────────────

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    reset_at = datetime.fromtimestamp(exc.reset_time / 1000, tz=timezone.utc)
    reset_iso = reset_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "resetTime": exc.reset_time},
        headers={
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": reset_iso,
        },
    )


@app.exception_handler(StudioError)
async def studio_error_handler(request: Request, exc: StudioError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        metrics.record_error(request.url.path, type(exc).__name__, str(exc))
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# ── Health / Metrics ─────────────────────────────────────────────────────────

@app.get("/health")
def health_check():
    """Verify the worker is running and report which backends are configured."""
    services = get_services()
    return {
        "status": "ok",
        "version": __version__,
        "luma_api_key_set": bool(config.LUMA_API_KEY),
        "replicate_api_token_set": bool(config.REPLICATE_API_TOKEN),
        "openai_api_key_set": bool(config.OPENAI_API_KEY),
        "providers": services.providers.names,
        "ledger": type(services.ledger).__name__,
        "rate_limit_store": type(services.rate_limiter.store).__name__,
        "active_pollers": len(services.poller.tracked_ids),
    }


@app.get("/metrics")
def metrics_endpoint():
    """Return a snapshot of all worker metrics."""
    metrics.set_gauge("active_pollers", len(get_services().poller.tracked_ids))
    return metrics.get_snapshot()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run("studio.main:app", host="0.0.0.0", port=port, reload=True)
