# feedpress/schemas/admin.py
"""
Schemas for ingestion and deduplication endpoints.
"""

import uuid
from typing import Any

from pydantic import BaseModel, Field

# -----------------------------------------------------------------------------
# Ingest
# -----------------------------------------------------------------------------


class IngestRunRequest(BaseModel):
    """Request to trigger ingestion."""

    source_ids: list[uuid.UUID] | None = Field(None, description="Specific sources to ingest (default: all active)")
    force: bool = Field(False, description="Ignore each source's fetchInterval")


class IngestSourceResult(BaseModel):
    """Result for a single source."""

    source_id: str
    source_name: str
    ingested: int
    skipped_duplicate: int
    errors: list[str] = Field(default_factory=list)
    automation: dict[str, Any] | None = None


class IngestRunResponse(BaseModel):
    """Response from ingestion run."""

    status: str = Field(..., description="completed|partial|failed")
    trace_id: str
    duration_ms: int

    sources_processed: int
    total_ingested: int
    total_skipped_duplicate: int
    articles_generated: int = 0
    source_results: list[IngestSourceResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Dedup reconciliation
# -----------------------------------------------------------------------------


class DuplicateGroupResult(BaseModel):
    """One collapsed (source, key) group."""

    key_field: str = Field(..., description="url|guid")
    source_id: str
    key: str
    kept_id: str
    removed: int
    removed_ids: list[str] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
    """Response from a dedup reconciliation pass."""

    total_removed: int
    url_groups: list[DuplicateGroupResult] = Field(default_factory=list)
    guid_groups: list[DuplicateGroupResult] = Field(default_factory=list)
    remaining_url_duplicates: int
    remaining_guid_duplicates: int
