# feedpress/routers/admin.py
"""
Admin pipeline endpoints.

POST /v1/ingest/run - Trigger feed ingestion
POST /v1/admin/dedup/reconcile - Collapse duplicate feed items
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from feedpress.auth import require_admin_key
from feedpress.database import get_db
from feedpress.dependencies import get_ingestion_service
from feedpress.schemas.admin import IngestRunRequest, IngestRunResponse, ReconcileResponse
from feedpress.services.deduper import Deduper
from feedpress.services.ingestion import IngestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["admin"])


@router.post("/ingest/run", response_model=IngestRunResponse)
def run_ingestion(
    request: IngestRunRequest | None = None,
    db: Session = Depends(get_db),
    service: IngestionService = Depends(get_ingestion_service),
    _: None = Depends(require_admin_key),
) -> IngestRunResponse:
    """Ingest all active sources now."""
    request = request or IngestRunRequest()
    result = service.ingest_all(db, source_ids=request.source_ids, force=request.force)
    return IngestRunResponse(**result)


@router.post("/admin/dedup/reconcile", response_model=ReconcileResponse)
def reconcile_duplicates(
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> ReconcileResponse:
    """
    Remove duplicate feed items, keeping the earliest row per (source, url)
    and per (source, guid). Safe to run repeatedly.
    """
    report = Deduper().reconcile(db)
    return ReconcileResponse(**report.to_dict())
