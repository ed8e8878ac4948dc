"""
FastAPI routes for multi-step generation pipelines.

  POST /api/video/create      — Start a pipeline; `mode` selects the kind
  GET  /api/video/status?id=  — Pipeline run (or plain job) status
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from .. import config, metrics
from ..errors import ValidationError
from ..models import VideoStatusResponse
from ..services import Services, get_services, rate_limited
from .models import VideoCreateRequest, VideoCreateResponse
from .orchestrator import parse_pipeline_input


pipeline_router = APIRouter(prefix="/api/video", tags=["pipeline"])


@pipeline_router.post("/create", response_model=VideoCreateResponse)
async def create_pipeline(
    request: VideoCreateRequest,
    services: Services = Depends(get_services),
    _limit=Depends(rate_limited(config.CREATE_RATE_LIMIT)),
):
    """Validate the typed input for the requested kind and run it in the background."""
    metrics.inc_counter("requests.pipeline")
    inputs = parse_pipeline_input(request.model_dump(mode="json", exclude_none=True))
    run = await services.pipelines.start(inputs)
    return VideoCreateResponse(id=run.id, status=run.status)


@pipeline_router.get("/status")
async def pipeline_status(
    id: Optional[str] = Query(None),
    services: Services = Depends(get_services),
    _limit=Depends(rate_limited(config.STATUS_RATE_LIMIT, scope="status")),
):
    if not id:
        raise ValidationError("Generation ID is required")

    run = services.pipelines.get_status(id)
    if run is not None:
        return run

    job = services.ledger.get(id)
    if job is None:
        raise HTTPException(status_code=404, detail="Generation not found")
    return VideoStatusResponse.from_job(job)
