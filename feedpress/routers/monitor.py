# feedpress/routers/monitor.py
"""
Generation monitor endpoints.

GET    /v1/monitor                - List attempts with per-status stats
DELETE /v1/monitor                - Clean up old attempts
GET    /v1/monitor/{id}           - Attempt detail with its article
POST   /v1/monitor/{id}/generate  - Run a pending attempt
POST   /v1/monitor/{id}/retry     - Retry a failed attempt
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from feedpress.auth import require_admin_key
from feedpress.constants import GenerationDefaults
from feedpress.database import get_db
from feedpress.dependencies import get_generation_client, get_image_pipeline
from feedpress.errors import GenerationFailure
from feedpress.schemas.monitor import (
    CleanupResponse,
    GenerateRequest,
    GenerateResponse,
    MonitorArticleSummary,
    MonitorDetailResponse,
    MonitorListResponse,
    MonitorResponse,
    MonitorStats,
)
from feedpress.services.generation_client import GenerationClient
from feedpress.services.generation_monitor import GenerationMonitor, GenerationPolicy
from feedpress.services.image_attachment import ImageAttachmentPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/monitor", tags=["monitor"])


@router.get("", response_model=MonitorListResponse)
def list_monitors(
    status: str | None = Query(None, description="pending|processing|completed|error"),
    source_id: uuid.UUID | None = Query(None),
    priority: str | None = Query(None, description="low|normal|high"),
    limit: int = Query(GenerationDefaults.LIST_LIMIT, ge=1, le=GenerationDefaults.LIST_MAX_LIMIT),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> MonitorListResponse:
    try:
        items, total, stats = GenerationMonitor.list_monitors(
            db, status=status, source_id=source_id, priority=priority, limit=limit, offset=offset
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return MonitorListResponse(
        items=[MonitorResponse.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
        stats=MonitorStats(**stats),
    )


@router.delete("", response_model=CleanupResponse)
def cleanup_monitors(
    status: str = Query(GenerationDefaults.CLEANUP_STATUS),
    older_than_days: int = Query(GenerationDefaults.CLEANUP_OLDER_THAN_DAYS, ge=0),
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> CleanupResponse:
    try:
        deleted = GenerationMonitor.cleanup(db, status=status, older_than_days=older_than_days)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return CleanupResponse(deleted=deleted, status=status, older_than_days=older_than_days)


@router.get("/{monitor_id}", response_model=MonitorDetailResponse)
def get_monitor(
    monitor_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> MonitorDetailResponse:
    monitor, article = GenerationMonitor.get_status(db, monitor_id)
    return MonitorDetailResponse(
        monitor=MonitorResponse.model_validate(monitor),
        article=MonitorArticleSummary.model_validate(article) if article else None,
        has_raw_response=bool(monitor.raw_response),
    )


def _generation_response(outcome) -> GenerateResponse:
    return GenerateResponse(
        monitor=MonitorResponse.model_validate(outcome.monitor),
        article_id=outcome.article.id,
        article_status=outcome.article.status,
        image_error=outcome.image_error,
    )


@router.post("/{monitor_id}/generate", response_model=GenerateResponse)
def generate(
    monitor_id: uuid.UUID,
    request: GenerateRequest | None = None,
    db: Session = Depends(get_db),
    client: GenerationClient = Depends(get_generation_client),
    image_pipeline: ImageAttachmentPipeline = Depends(get_image_pipeline),
    _: None = Depends(require_admin_key),
) -> GenerateResponse:
    """Run generation for a pending attempt. Failures are recorded on the attempt."""
    request = request or GenerateRequest()
    policy = GenerationPolicy(attach_image=request.attach_image, publish_ready=request.publish_ready)
    try:
        outcome = GenerationMonitor.run_generation(
            db, monitor_id, client=client, policy=policy, image_pipeline=image_pipeline
        )
    except GenerationFailure as e:
        raise HTTPException(status_code=502, detail=f"Generation failed: {e}")
    return _generation_response(outcome)


@router.post("/{monitor_id}/retry", response_model=GenerateResponse)
def retry(
    monitor_id: uuid.UUID,
    request: GenerateRequest | None = None,
    db: Session = Depends(get_db),
    client: GenerationClient = Depends(get_generation_client),
    image_pipeline: ImageAttachmentPipeline = Depends(get_image_pipeline),
    _: None = Depends(require_admin_key),
) -> GenerateResponse:
    """Retry a failed attempt (error -> processing) and generate again."""
    request = request or GenerateRequest()
    policy = GenerationPolicy(attach_image=request.attach_image, publish_ready=request.publish_ready)
    try:
        outcome = GenerationMonitor.retry_generation(
            db, monitor_id, client=client, policy=policy, image_pipeline=image_pipeline
        )
    except GenerationFailure as e:
        raise HTTPException(status_code=502, detail=f"Generation failed: {e}")
    return _generation_response(outcome)
