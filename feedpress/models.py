# feedpress/models.py
"""
FeedPress Database Models

Tables:
- Source: Feed origins with their automation configuration
- FeedItem: Entries fetched from a source (unique per source by url and by guid)
- MonitorGeneration: One generation attempt per feed item
- Article: Generated articles moving toward publication
- FeaturedImage: Images attached to articles, uploaded to the CMS on publish
- WordPressSite: CMS targets and their publishing defaults
- Publication: One publish attempt of an article to a CMS site
- AutomationRule: Persisted per-source automation rules
- SchedulerLock: Advisory lock rows for overlapping scheduler runs
"""

from datetime import UTC, datetime
from enum import Enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from feedpress.database import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(UTC).replace(tzinfo=None)


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class SourceStatus(str, Enum):
    """Health of a source after its last fetch."""
    ACTIVE = "active"
    ERROR = "error"
    PAUSED = "paused"


class GenerationStatus(str, Enum):
    """Lifecycle of a generation attempt."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class GenerationPriority(str, Enum):
    """Ordering hint for generation attempts."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class ArticleStatus(str, Enum):
    """Lifecycle of a generated article."""
    DRAFT = "draft"
    GENERATED = "generated"
    GENERATED_IMAGE_DRAFT = "generated_image_draft"
    GENERATED_WITH_IMAGE = "generated_with_image"
    READY_TO_PUBLISH = "ready_to_publish"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# Statuses picked up by the auto-publish scheduler
PUBLISHABLE_ARTICLE_STATUSES = (
    ArticleStatus.READY_TO_PUBLISH,
    ArticleStatus.GENERATED_WITH_IMAGE,
)


class ImageStatus(str, Enum):
    """Lifecycle of a featured image."""
    PENDING = "pending"
    FOUND = "found"             # Located by image search
    GENERATED = "generated"     # Produced by the image model
    UPLOADED = "uploaded"       # Present in the CMS media library
    ERROR = "error"


# Images usable for publishing, newest first
USABLE_IMAGE_STATUSES = (ImageStatus.FOUND, ImageStatus.GENERATED, ImageStatus.UPLOADED)


class PublicationStatus(str, Enum):
    """Lifecycle of a single publish attempt."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AutomationTrigger(str, Enum):
    """Events that can fire an automation rule."""
    NEW_FEED_ITEMS = "new_feed_items"
    SCHEDULED = "scheduled"
    MANUAL = "manual"


# -----------------------------------------------------------------------------
# Source
# -----------------------------------------------------------------------------

class Source(Base):
    """Feed source plus its automation configuration blob."""
    __tablename__ = "sources"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    url = Column(Text, nullable=True)
    type = Column(String(32), default="rss", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    status = Column(String(20), default=SourceStatus.ACTIVE.value, nullable=False)

    # autoGenerate, fetchInterval (seconds), maxItems, defaultCategory, enabled
    configuration = Column(JSONType, default=dict, nullable=False)

    last_fetch_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    last_error_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    items = relationship("FeedItem", back_populates="source", cascade="all, delete-orphan")
    monitors = relationship("MonitorGeneration", back_populates="source", cascade="all, delete-orphan")
    automation_rules = relationship("AutomationRule", back_populates="source", cascade="all, delete-orphan")

    @property
    def auto_generate(self) -> bool:
        return (self.configuration or {}).get("autoGenerate") is True

    @property
    def default_category(self) -> str | None:
        return (self.configuration or {}).get("defaultCategory")

    @property
    def fetch_interval(self) -> int | None:
        return (self.configuration or {}).get("fetchInterval")

    @property
    def max_items(self) -> int | None:
        return (self.configuration or {}).get("maxItems")


# -----------------------------------------------------------------------------
# FeedItem
# -----------------------------------------------------------------------------

class FeedItem(Base):
    """
    One entry fetched from a source.

    At most one row per (source_id, url) and per (source_id, guid) when those
    fields are non-null. The unique indexes are the storage backstop; the
    Deduper filters batches before insert and reconciles rows that slipped in
    before the indexes existed.
    """
    __tablename__ = "feed_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    source_id = Column(Uuid, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False)
    guid = Column(String(1024), nullable=True)
    url = Column(Text, nullable=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False, default="")
    published_at = Column(DateTime, nullable=False, default=utcnow)
    fetched_at = Column(DateTime, nullable=False, default=utcnow)
    processed = Column(Boolean, default=False, nullable=False)
    article_id = Column(Uuid, ForeignKey("articles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    source = relationship("Source", back_populates="items")
    monitor = relationship(
        "MonitorGeneration", back_populates="feed_item", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("uq_feed_items_source_url", "source_id", "url", unique=True),
        Index("uq_feed_items_source_guid", "source_id", "guid", unique=True),
        Index("ix_feed_items_processed", "source_id", "processed"),
        Index("ix_feed_items_created_at", "created_at"),
    )


# -----------------------------------------------------------------------------
# MonitorGeneration
# -----------------------------------------------------------------------------

class MonitorGeneration(Base):
    """
    Tracks one attempt to turn a feed item into an article.

    pending -> processing -> completed | error; error -> processing on retry.
    """
    __tablename__ = "monitor_generations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    feed_item_id = Column(Uuid, ForeignKey("feed_items.id", ondelete="CASCADE"), nullable=False, unique=True)
    source_id = Column(Uuid, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False)
    source_name = Column(String(255), nullable=False)

    # Snapshot of the feed item at creation time
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False, default="")
    url = Column(Text, nullable=True)
    published_at = Column(DateTime, nullable=True)

    status = Column(String(20), default=GenerationStatus.PENDING.value, nullable=False)
    priority = Column(String(10), default=GenerationPriority.NORMAL.value, nullable=False)
    article_id = Column(Uuid, ForeignKey("articles.id", ondelete="SET NULL"), nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)
    error = Column(Text, nullable=True)
    raw_response = Column(Text, nullable=True)  # Unrepairable generation output, kept for diagnosis
    metadata_ = Column("metadata", JSONType, default=dict, nullable=False)

    generated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    feed_item = relationship("FeedItem", back_populates="monitor")
    source = relationship("Source", back_populates="monitors")
    article = relationship("Article")

    __table_args__ = (
        Index("ix_monitor_generations_status", "status"),
        Index("ix_monitor_generations_source", "source_id"),
        Index("ix_monitor_generations_created_at", "created_at"),
    )


# -----------------------------------------------------------------------------
# Article
# -----------------------------------------------------------------------------

class Article(Base):
    """Generated article; published only through a completed Publication."""
    __tablename__ = "articles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    source_id = Column(Uuid, ForeignKey("sources.id", ondelete="SET NULL"), nullable=True)
    feed_item_id = Column(Uuid, nullable=True)

    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    excerpt = Column(Text, nullable=True)
    slug = Column(String(255), nullable=True)
    meta_description = Column(Text, nullable=True)
    tags = Column(JSONType, default=list, nullable=False)
    categories = Column(JSONType, default=list, nullable=False)

    status = Column(String(32), default=ArticleStatus.DRAFT.value, nullable=False)
    generation_config = Column(JSONType, nullable=True)  # Request sent to the generation service

    # Featured media as known to the CMS
    featured_media_id = Column(Integer, nullable=True)
    featured_media_url = Column(Text, nullable=True)

    # CMS post
    wordpress_post_id = Column(String(64), nullable=True)
    wordpress_url = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    published_at = Column(DateTime, nullable=True)

    # Relationships
    source = relationship("Source")
    images = relationship(
        "FeaturedImage", back_populates="article", cascade="all, delete-orphan",
        order_by="desc(FeaturedImage.created_at)",
    )
    publications = relationship(
        "Publication", back_populates="article", cascade="all, delete-orphan",
        order_by="desc(Publication.created_at)",
    )

    __table_args__ = (
        Index("ix_articles_status_created", "status", "created_at"),
        Index("ix_articles_source", "source_id"),
    )


# -----------------------------------------------------------------------------
# FeaturedImage
# -----------------------------------------------------------------------------

class FeaturedImage(Base):
    """Featured image for an article."""
    __tablename__ = "featured_images"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    article_id = Column(Uuid, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False)
    ai_prompt = Column(Text, nullable=True)
    filename = Column(String(255), nullable=True)
    alt_text = Column(Text, nullable=True)
    url = Column(Text, nullable=True)
    status = Column(String(20), default=ImageStatus.PENDING.value, nullable=False)
    provider = Column(String(64), nullable=True)
    wordpress_media_id = Column(Integer, nullable=True)
    wordpress_url = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    article = relationship("Article", back_populates="images")

    __table_args__ = (
        Index("ix_featured_images_article_status", "article_id", "status"),
    )


# -----------------------------------------------------------------------------
# WordPressSite
# -----------------------------------------------------------------------------

class WordPressSite(Base):
    """CMS target. Only the fields the pipeline reads are modelled."""
    __tablename__ = "wordpress_sites"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    url = Column(Text, nullable=False)
    username = Column(String(255), nullable=False)
    password = Column(String(255), nullable=False)  # Application password
    default_category = Column(String(255), nullable=True)
    default_status = Column(String(20), default="publish", nullable=False)
    default_author = Column(Integer, nullable=True)
    enable_auto_publish = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


# -----------------------------------------------------------------------------
# Publication
# -----------------------------------------------------------------------------

class Publication(Base):
    """One attempt to push an article to the CMS, with its own retry budget."""
    __tablename__ = "publications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    article_id = Column(Uuid, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False)
    site_id = Column(Uuid, ForeignKey("wordpress_sites.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), default=PublicationStatus.PENDING.value, nullable=False)
    retry_count = Column(Integer, default=0, nullable=False)
    max_retries = Column(Integer, default=3, nullable=False)

    external_id = Column(String(64), nullable=True)
    external_url = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSONType, default=dict, nullable=False)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    article = relationship("Article", back_populates="publications")
    site = relationship("WordPressSite")

    __table_args__ = (
        Index("ix_publications_article_status", "article_id", "status"),
        Index("ix_publications_status", "status"),
    )


# -----------------------------------------------------------------------------
# AutomationRule
# -----------------------------------------------------------------------------

class AutomationRule(Base):
    """
    Persisted automation rule for a source.

    conditions and actions are stored as JSON lists and validated into typed
    models by app code (see services/automation.py).
    """
    __tablename__ = "automation_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    source_id = Column(Uuid, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)
    trigger = Column(String(32), nullable=False)
    conditions = Column(JSONType, default=list, nullable=False)
    actions = Column(JSONType, default=list, nullable=False)
    last_executed_at = Column(DateTime, nullable=True)
    execution_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    source = relationship("Source", back_populates="automation_rules")

    __table_args__ = (
        Index("ix_automation_rules_source", "source_id"),
    )


# -----------------------------------------------------------------------------
# SchedulerLock
# -----------------------------------------------------------------------------

class SchedulerLock(Base):
    """Named advisory lock; a row exists while a run holds it."""
    __tablename__ = "scheduler_locks"

    name = Column(String(64), primary_key=True)
    holder = Column(String(64), nullable=False)
    acquired_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
