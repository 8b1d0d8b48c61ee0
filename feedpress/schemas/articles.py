# feedpress/schemas/articles.py
"""
Schemas for article, image and publication endpoints.
"""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# -----------------------------------------------------------------------------
# Articles
# -----------------------------------------------------------------------------


class ArticleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    status: str
    slug: str | None = None
    excerpt: str | None = None
    tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    featured_media_id: int | None = None
    wordpress_post_id: str | None = None
    wordpress_url: str | None = None
    created_at: datetime
    published_at: datetime | None = None


class TransitionRequest(BaseModel):
    """POST /v1/articles/{id}/transition"""

    status: str = Field(..., description="Target article status")


class ImageRequest(BaseModel):
    """POST /v1/articles/{id}/image"""

    ai_prompt: str | None = Field(None, description="Prompt for the image service (default: article title)")
    filename: str | None = None
    alt_text: str | None = None
    finalize: bool = Field(False, description="Move the article to ready_to_publish after attaching")


class FeaturedImageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    article_id: uuid.UUID
    status: str = Field(..., description="pending|found|generated|uploaded|error")
    url: str | None = None
    filename: str | None = None
    alt_text: str | None = None
    provider: str | None = None
    wordpress_media_id: int | None = None
    error: str | None = None


class ImageAttachResponse(BaseModel):
    article: ArticleResponse
    image: FeaturedImageResponse


# -----------------------------------------------------------------------------
# Publications
# -----------------------------------------------------------------------------


class PublicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    article_id: uuid.UUID
    site_id: uuid.UUID | None = None
    status: str = Field(..., description="pending|processing|completed|failed|cancelled")
    retry_count: int
    max_retries: int
    external_id: str | None = None
    external_url: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime


class PublicationListResponse(BaseModel):
    items: list[PublicationResponse]
    total: int
    limit: int
    offset: int


class PublicationActionRequest(BaseModel):
    """POST /v1/publications/{id}/action"""

    action: str = Field(..., description="retry|cancel")


# -----------------------------------------------------------------------------
# Auto-publish and sites
# -----------------------------------------------------------------------------


class AutoPublishResponse(BaseModel):
    """Result of one scheduler run."""

    status: Literal["completed", "partial", "skipped", "noop"]
    processed: int
    published: int
    failed: int
    errors: list[str] = Field(default_factory=list)
    duration_ms: int
    message: str
    site_id: str | None = None


class ConnectionTestResponse(BaseModel):
    """GET /v1/sites/{id}/test-connection"""

    site_id: uuid.UUID
    ok: bool
    response_time_ms: int
    site_name: str | None = None
    namespaces: list[str] = Field(default_factory=list)
    error: str | None = None
    cached: bool = False
