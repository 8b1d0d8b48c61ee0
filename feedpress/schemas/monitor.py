# feedpress/schemas/monitor.py
"""
Schemas for generation monitor endpoints.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MonitorResponse(BaseModel):
    """One generation attempt."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    feed_item_id: uuid.UUID
    source_id: uuid.UUID
    source_name: str
    title: str
    url: str | None = None
    published_at: datetime | None = None
    status: str = Field(..., description="pending|processing|completed|error")
    priority: str = Field(..., description="low|normal|high")
    article_id: uuid.UUID | None = None
    retry_count: int
    error: str | None = None
    generated_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class MonitorStats(BaseModel):
    """Count of attempts per status."""

    pending: int = 0
    processing: int = 0
    completed: int = 0
    error: int = 0
    total: int = 0


class MonitorListResponse(BaseModel):
    """GET /v1/monitor"""

    items: list[MonitorResponse]
    total: int
    limit: int
    offset: int
    stats: MonitorStats


class MonitorArticleSummary(BaseModel):
    """Article produced by an attempt."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    status: str
    slug: str | None = None
    wordpress_url: str | None = None
    published_at: datetime | None = None


class MonitorDetailResponse(BaseModel):
    """GET /v1/monitor/{id}"""

    monitor: MonitorResponse
    article: MonitorArticleSummary | None = None
    has_raw_response: bool = Field(False, description="True when unrepairable output was kept")


class GenerateRequest(BaseModel):
    """What to do with the article once generated."""

    attach_image: bool = Field(False, description="Request a featured image right away")
    publish_ready: bool = Field(True, description="Move the article to ready_to_publish")


class GenerateResponse(BaseModel):
    """Result of running (or retrying) a generation attempt."""

    monitor: MonitorResponse
    article_id: uuid.UUID | None = None
    article_status: str | None = None
    image_error: str | None = None


class CleanupResponse(BaseModel):
    """DELETE /v1/monitor"""

    deleted: int
    status: str
    older_than_days: int
