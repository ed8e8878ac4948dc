"""
FastAPI routes for single jobs, speech and batches.

Video Endpoints:
  POST   /api/luma/create        — Submit one generation (rate limited)
  GET    /api/luma/status?id=    — Provider status, reconciled into the ledger

Speech Endpoints:
  POST   /api/speech             — Text → MP3 bytes

Batch Endpoints:
  POST   /api/batch              — Submit a multi-clip batch
  GET    /api/batch/{id}         — Aggregate progress
  POST   /api/batch/{id}/cancel  — Stop polling every clip locally
  GET    /api/batch/{id}/combine — FFmpeg concat manifest for completed clips

Job Endpoints:
  GET    /jobs                   — Query the ledger
  GET    /jobs/{id}              — One job
  DELETE /jobs/{id}              — Delete a job (explicit user action)
  POST   /jobs/{id}/cancel       — Stop polling locally
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from . import config, metrics
from .errors import TransientPollError, ValidationError
from .models import (
    BatchRequest,
    BatchRunResponse,
    CombineManifest,
    CreateVideoRequest,
    CreateVideoResponse,
    GenerationMode,
    JobFilter,
    JobStatus,
    SpeechRequest,
    VideoStatusResponse,
)
from .services import Services, get_services, rate_limited
from .speech import synthesize_speech

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Video Router
# ═════════════════════════════════════════════════════════════════════════════

video_router = APIRouter(prefix="/api/luma", tags=["video"])


@video_router.post("/create", response_model=CreateVideoResponse)
async def create_video(
    request: CreateVideoRequest,
    services: Services = Depends(get_services),
    _limit=Depends(rate_limited(config.CREATE_RATE_LIMIT)),
):
    """Submit one generation and start polling it."""
    metrics.inc_counter("requests.create")
    job = await services.submitter.submit(
        request.prompt,
        image_url=request.image_url,
        end_image_url=request.end_image_url,
        duration=request.duration,
    )
    services.poller.track(job)
    return CreateVideoResponse(id=job.id)


@video_router.get("/status", response_model=VideoStatusResponse)
async def video_status(
    id: Optional[str] = Query(None),
    services: Services = Depends(get_services),
    _limit=Depends(rate_limited(config.STATUS_RATE_LIMIT, scope="status")),
):
    """
    Current status of a generation.

    Jobs in the ledger are reconciled with one status request; ids the
    ledger does not know are looked up on the provider directly.
    """
    if not id:
        raise ValidationError("Generation ID is required")

    job = services.ledger.get(id)
    if job is None:
        status = await services.submitter.provider.fetch_status(id)
        return VideoStatusResponse(
            id=id,
            status=status.status,
            video_url=status.video_url,
            error=status.error,
            progress=status.progress,
        )

    if not job.is_terminal:
        try:
            job = await services.poller.poll_once(id) or job
        except TransientPollError as e:
            logger.warning(f"[{id}] status check failed, returning last known state: {e.message}")
            job = services.ledger.get(id) or job
    return VideoStatusResponse.from_job(job)


# ═════════════════════════════════════════════════════════════════════════════
# Speech Router
# ═════════════════════════════════════════════════════════════════════════════

speech_router = APIRouter(prefix="/api/speech", tags=["speech"])


@speech_router.post("")
async def generate_speech(request: SpeechRequest):
    audio = await synthesize_speech(request.text, request.voice_style)
    return Response(content=audio, media_type="audio/mpeg")


# ═════════════════════════════════════════════════════════════════════════════
# Batch Router
# ═════════════════════════════════════════════════════════════════════════════

batch_router = APIRouter(prefix="/api/batch", tags=["batch"])


@batch_router.post("", response_model=BatchRunResponse)
async def create_batch(
    request: BatchRequest,
    services: Services = Depends(get_services),
    _limit=Depends(rate_limited(config.CREATE_RATE_LIMIT)),
):
    metrics.inc_counter("requests.batch")
    run = await services.batches.run(
        request.theme,
        target_duration=request.target_duration,
        count=request.count,
        category=request.category,
    )
    return BatchRunResponse.from_run(run)


@batch_router.get("/{batch_id}", response_model=BatchRunResponse)
async def get_batch(batch_id: str, services: Services = Depends(get_services)):
    run = services.batches.get(batch_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Batch not found")
    return BatchRunResponse.from_run(run)


@batch_router.post("/{batch_id}/cancel")
async def cancel_batch(batch_id: str, services: Services = Depends(get_services)):
    if services.batches.get(batch_id) is None:
        raise HTTPException(status_code=404, detail="Batch not found")
    return {"batch_id": batch_id, "cancelled": services.batches.cancel(batch_id)}


@batch_router.get("/{batch_id}/combine", response_model=CombineManifest)
async def combine_batch(batch_id: str, services: Services = Depends(get_services)):
    manifest = services.batches.combine_manifest(batch_id)
    if manifest is None:
        raise HTTPException(status_code=404, detail="Batch not found")
    return manifest


# ═════════════════════════════════════════════════════════════════════════════
# Jobs Router
# ═════════════════════════════════════════════════════════════════════════════

jobs_router = APIRouter(prefix="/jobs", tags=["jobs"])


@jobs_router.get("", response_model=list[VideoStatusResponse])
async def list_jobs(
    status: Optional[JobStatus] = None,
    mode: Optional[GenerationMode] = None,
    limit: int = Query(50, ge=1, le=500),
    services: Services = Depends(get_services),
):
    jobs = services.ledger.query(JobFilter(status=status, mode=mode, limit=limit))
    return [VideoStatusResponse.from_job(j) for j in jobs]


@jobs_router.get("/{job_id}", response_model=VideoStatusResponse)
async def get_job(job_id: str, services: Services = Depends(get_services)):
    job = services.ledger.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return VideoStatusResponse.from_job(job)


@jobs_router.delete("/{job_id}")
async def delete_job(job_id: str, services: Services = Depends(get_services)):
    services.poller.cancel(job_id)
    if not services.ledger.delete(job_id):
        raise HTTPException(status_code=404, detail="Job not found")
    logger.info(f"[{job_id}] deleted by user")
    return {"id": job_id, "deleted": True}


@jobs_router.post("/{job_id}/cancel")
async def cancel_job(job_id: str, services: Services = Depends(get_services)):
    """Stop polling locally; the provider job keeps running."""
    return {"id": job_id, "cancelled": services.poller.cancel(job_id)}
