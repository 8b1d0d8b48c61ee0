# feedpress/routers/cron.py
"""
Endpoints called by the external cron.

GET|POST /v1/cron/poll-feeds   - Ingest sources whose fetchInterval elapsed
GET|POST /v1/cron/auto-publish - One auto-publish scheduler run

Both answer 200 when the run happened, even if some items failed; 500 means
the run itself could not execute.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from feedpress.auth import require_cron_secret
from feedpress.database import get_db
from feedpress.dependencies import get_auto_publisher, get_ingestion_service
from feedpress.schemas.admin import IngestRunResponse
from feedpress.schemas.articles import AutoPublishResponse
from feedpress.services.auto_publisher import AutoPublisher
from feedpress.services.ingestion import IngestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/cron", tags=["cron"])


@router.api_route("/poll-feeds", methods=["GET", "POST"], response_model=IngestRunResponse)
def poll_feeds(
    db: Session = Depends(get_db),
    service: IngestionService = Depends(get_ingestion_service),
    _: None = Depends(require_cron_secret),
) -> IngestRunResponse:
    try:
        result = service.ingest_all(db)
    except Exception as e:
        db.rollback()
        logger.error(f"Feed polling failed: {e}", extra={"event": "cron_poll_failed"}, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Feed polling failed: {e}")
    return IngestRunResponse(**result)


@router.api_route("/auto-publish", methods=["GET", "POST"], response_model=AutoPublishResponse)
def auto_publish(
    db: Session = Depends(get_db),
    publisher: AutoPublisher = Depends(get_auto_publisher),
    _: None = Depends(require_cron_secret),
) -> AutoPublishResponse:
    try:
        result = publisher.run_once(db)
    except Exception as e:
        db.rollback()
        logger.error(f"Auto-publish run failed: {e}", extra={"event": "cron_auto_publish_failed"}, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Auto-publish run failed: {e}")

    if result.site_id is None:
        status = "noop"
    elif result.skipped:
        status = "skipped"
    elif result.failed:
        status = "partial"
    else:
        status = "completed"

    return AutoPublishResponse(
        status=status,
        processed=result.processed,
        published=result.published,
        failed=result.failed,
        errors=result.errors,
        duration_ms=result.duration_ms,
        message=result.message,
        site_id=result.site_id,
    )
