# feedpress/services/generation_monitor.py
"""
Generation monitor.

One MonitorGeneration row per feed item tracks the attempt to turn it into an
article:

    pending -> processing -> completed
                          -> error -> processing (retry)

Creation is idempotent: asking twice for the same feed item returns the
existing row. Generation failures are recorded on the row (error message,
retry count, unrepairable raw output) and re-raised to the caller, which
reports them without aborting its batch.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from feedpress import models
from feedpress.constants import GenerationDefaults
from feedpress.errors import (
    GenerationFailure,
    ImageUploadFailure,
    InvalidStateTransition,
    RecordNotFound,
    TruncatedUnrepairable,
)
from feedpress.models import ArticleStatus, GenerationPriority, GenerationStatus
from feedpress.services.article_lifecycle import ArticleLifecycle
from feedpress.services.generation_client import GeneratedArticle, GenerationClient

logger = logging.getLogger(__name__)


MONITOR_TRANSITIONS: dict[GenerationStatus, frozenset[GenerationStatus]] = {
    GenerationStatus.PENDING: frozenset({GenerationStatus.PROCESSING}),
    GenerationStatus.PROCESSING: frozenset({GenerationStatus.COMPLETED, GenerationStatus.ERROR}),
    GenerationStatus.ERROR: frozenset({GenerationStatus.PROCESSING}),
    GenerationStatus.COMPLETED: frozenset(),
}


def parse_generation_status(value: str) -> GenerationStatus:
    try:
        return GenerationStatus(value)
    except ValueError:
        raise ValueError(f"Unknown generation status '{value}'") from None


def parse_generation_priority(value: str) -> GenerationPriority:
    try:
        return GenerationPriority(value)
    except ValueError:
        raise ValueError(f"Unknown generation priority '{value}'") from None


@dataclass
class GenerationPolicy:
    """What happens to an article right after it is generated."""

    attach_image: bool = False
    publish_ready: bool = True


@dataclass
class GenerationOutcome:
    monitor: models.MonitorGeneration
    article: models.Article
    image_error: str | None = None


class GenerationMonitor:
    """State machine and queries for generation attempts."""

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    @staticmethod
    def get(db: Session, monitor_id: uuid.UUID) -> models.MonitorGeneration:
        monitor = (
            db.query(models.MonitorGeneration)
            .filter(models.MonitorGeneration.id == monitor_id)
            .first()
        )
        if not monitor:
            raise RecordNotFound("MonitorGeneration", monitor_id)
        return monitor

    @staticmethod
    def for_feed_item(db: Session, feed_item_id: uuid.UUID) -> models.MonitorGeneration | None:
        return (
            db.query(models.MonitorGeneration)
            .filter(models.MonitorGeneration.feed_item_id == feed_item_id)
            .first()
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    @staticmethod
    def _move(monitor: models.MonitorGeneration, target: GenerationStatus) -> None:
        current = parse_generation_status(monitor.status)
        if target not in MONITOR_TRANSITIONS[current]:
            raise InvalidStateTransition("MonitorGeneration", current.value, target.value)
        monitor.status = target.value

    @classmethod
    def create_for_item(
        cls,
        db: Session,
        feed_item: models.FeedItem,
        source: models.Source,
        priority: GenerationPriority | str = GenerationPriority.NORMAL,
        metadata: dict | None = None,
    ) -> tuple[models.MonitorGeneration, bool]:
        """
        Create the pending attempt for a feed item.

        Returns (monitor, created). A second call for the same item is a no-op
        returning the existing row with created=False.
        """
        existing = cls.for_feed_item(db, feed_item.id)
        if existing:
            return existing, False

        priority = parse_generation_priority(priority) if isinstance(priority, str) else priority
        monitor = models.MonitorGeneration(
            id=uuid.uuid4(),
            feed_item_id=feed_item.id,
            source_id=source.id,
            source_name=source.name,
            title=feed_item.title,
            content=feed_item.content or "",
            url=feed_item.url,
            published_at=feed_item.published_at,
            status=GenerationStatus.PENDING.value,
            priority=priority.value,
            retry_count=0,
            metadata_=metadata or {},
        )
        db.add(monitor)
        try:
            db.commit()
        except IntegrityError:
            # Another run created it between the lookup and the insert
            db.rollback()
            existing = cls.for_feed_item(db, feed_item.id)
            if existing is None:
                raise
            return existing, False

        logger.info(
            f"Monitor {monitor.id} created for feed item {feed_item.id}",
            extra={
                "event": "monitor_created",
                "monitor_id": str(monitor.id),
                "feed_item_id": str(feed_item.id),
                "source_id": str(source.id),
            },
        )
        return monitor, True

    @classmethod
    def start(cls, db: Session, monitor_id: uuid.UUID) -> models.MonitorGeneration:
        """pending -> processing."""
        monitor = cls.get(db, monitor_id)
        cls._move(monitor, GenerationStatus.PROCESSING)
        db.commit()
        return monitor

    @classmethod
    def complete(cls, db: Session, monitor_id: uuid.UUID, article_id: uuid.UUID) -> models.MonitorGeneration:
        """processing -> completed; the feed item is marked processed."""
        monitor = cls.get(db, monitor_id)
        cls._move(monitor, GenerationStatus.COMPLETED)
        monitor.article_id = article_id
        monitor.generated_at = models.utcnow()
        monitor.error = None

        feed_item = monitor.feed_item
        if feed_item is not None:
            feed_item.processed = True
            feed_item.article_id = article_id

        db.commit()
        logger.info(
            f"Monitor {monitor.id} completed with article {article_id}",
            extra={
                "event": "monitor_completed",
                "monitor_id": str(monitor.id),
                "article_id": str(article_id),
            },
        )
        return monitor

    @classmethod
    def fail(
        cls,
        db: Session,
        monitor_id: uuid.UUID,
        message: str,
        raw_response: str | None = None,
    ) -> models.MonitorGeneration:
        """processing -> error, counting the attempt."""
        monitor = cls.get(db, monitor_id)
        cls._move(monitor, GenerationStatus.ERROR)
        monitor.retry_count = (monitor.retry_count or 0) + 1
        monitor.error = message
        if raw_response is not None:
            monitor.raw_response = raw_response
        db.commit()
        logger.warning(
            f"Monitor {monitor.id} failed (attempt {monitor.retry_count}): {message}",
            extra={"event": "monitor_failed", "monitor_id": str(monitor.id)},
        )
        return monitor

    @classmethod
    def retry(cls, db: Session, monitor_id: uuid.UUID) -> models.MonitorGeneration:
        """error -> processing. The error message is kept until the next outcome."""
        monitor = cls.get(db, monitor_id)
        cls._move(monitor, GenerationStatus.PROCESSING)
        db.commit()
        logger.info(
            f"Monitor {monitor.id} retrying after {monitor.retry_count} failed attempt(s)",
            extra={"event": "monitor_retry", "monitor_id": str(monitor.id)},
        )
        return monitor

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    @classmethod
    def run_generation(
        cls,
        db: Session,
        monitor_id: uuid.UUID,
        client: GenerationClient | None = None,
        policy: GenerationPolicy | None = None,
        image_pipeline=None,
    ) -> GenerationOutcome:
        """
        Generate the article for a pending attempt.

        Raises InvalidStateTransition if the attempt is not pending, and
        GenerationFailure (after recording it) if generation fails.
        """
        monitor = cls.start(db, monitor_id)
        return cls._generate(db, monitor, client or GenerationClient(), policy, image_pipeline)

    @classmethod
    def retry_generation(
        cls,
        db: Session,
        monitor_id: uuid.UUID,
        client: GenerationClient | None = None,
        policy: GenerationPolicy | None = None,
        image_pipeline=None,
    ) -> GenerationOutcome:
        """Retry a failed attempt and generate again."""
        monitor = cls.retry(db, monitor_id)
        return cls._generate(db, monitor, client or GenerationClient(), policy, image_pipeline)

    @classmethod
    def _generate(
        cls,
        db: Session,
        monitor: models.MonitorGeneration,
        client: GenerationClient,
        policy: GenerationPolicy | None,
        image_pipeline,
    ) -> GenerationOutcome:
        request = client.build_request(monitor.title, monitor.content, monitor.url)
        try:
            generated = client.generate(request)
        except TruncatedUnrepairable as e:
            cls.fail(db, monitor.id, str(e), raw_response=e.raw_text)
            raise
        except GenerationFailure as e:
            cls.fail(db, monitor.id, str(e))
            raise

        article = ArticleLifecycle.create_generated(
            db,
            generated,
            source=monitor.source,
            feed_item=monitor.feed_item,
            generation_config=request.to_payload(),
        )
        if generated.image_hint:
            db.add(models.FeaturedImage(
                id=uuid.uuid4(),
                article_id=article.id,
                ai_prompt=generated.image_hint.ai_prompt,
                alt_text=generated.image_hint.alt_text,
                filename=generated.image_hint.filename,
                status=models.ImageStatus.PENDING.value,
            ))
        cls.complete(db, monitor.id, article.id)

        image_error = None
        if policy is not None:
            image_error = cls._apply_policy(db, article, generated, policy, image_pipeline)
        return GenerationOutcome(monitor=monitor, article=article, image_error=image_error)

    @staticmethod
    def _apply_policy(
        db: Session,
        article: models.Article,
        generated: GeneratedArticle,
        policy: GenerationPolicy,
        image_pipeline,
    ) -> str | None:
        """Move a fresh article toward publishing. Image failures are returned, not raised."""
        if policy.attach_image and image_pipeline is not None:
            hint = generated.image_hint
            try:
                image_pipeline.request_image(
                    db,
                    article,
                    ai_prompt=(hint.ai_prompt if hint and hint.ai_prompt else article.title),
                    filename=hint.filename if hint else None,
                    alt_text=(hint.alt_text if hint and hint.alt_text else article.title),
                    finalize=policy.publish_ready,
                )
                return None
            except ImageUploadFailure as e:
                if policy.publish_ready:
                    ArticleLifecycle.transition(db, article, ArticleStatus.READY_TO_PUBLISH)
                return str(e)

        if policy.publish_ready:
            ArticleLifecycle.transition(db, article, ArticleStatus.READY_TO_PUBLISH)
        return None

    # -------------------------------------------------------------------------
    # Queries and maintenance
    # -------------------------------------------------------------------------

    @staticmethod
    def list_monitors(
        db: Session,
        status: str | None = None,
        source_id: uuid.UUID | None = None,
        priority: str | None = None,
        limit: int = GenerationDefaults.LIST_LIMIT,
        offset: int = 0,
    ) -> tuple[list[models.MonitorGeneration], int, dict[str, int]]:
        """
        Page of attempts, newest first.

        Returns:
            Tuple of (items, total matching the filters, count per status)
        """
        query = db.query(models.MonitorGeneration)
        if status:
            query = query.filter(models.MonitorGeneration.status == parse_generation_status(status).value)
        if source_id:
            query = query.filter(models.MonitorGeneration.source_id == source_id)
        if priority:
            query = query.filter(models.MonitorGeneration.priority == parse_generation_priority(priority).value)

        total = query.count()
        limit = max(1, min(limit, GenerationDefaults.LIST_MAX_LIMIT))
        items = (
            query.order_by(models.MonitorGeneration.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

        stats = {s.value: 0 for s in GenerationStatus}
        stats_query = db.query(models.MonitorGeneration.status, func.count(models.MonitorGeneration.id))
        if source_id:
            stats_query = stats_query.filter(models.MonitorGeneration.source_id == source_id)
        for row_status, count in stats_query.group_by(models.MonitorGeneration.status).all():
            stats[row_status] = count
        stats["total"] = sum(stats[s.value] for s in GenerationStatus)
        return items, total, stats

    @classmethod
    def get_status(
        cls, db: Session, monitor_id: uuid.UUID
    ) -> tuple[models.MonitorGeneration, models.Article | None]:
        """Attempt plus its article, when one was generated."""
        monitor = cls.get(db, monitor_id)
        article = None
        if monitor.article_id:
            article = db.query(models.Article).filter(models.Article.id == monitor.article_id).first()
        return monitor, article

    @staticmethod
    def cleanup(
        db: Session,
        status: str = GenerationDefaults.CLEANUP_STATUS,
        older_than_days: int = GenerationDefaults.CLEANUP_OLDER_THAN_DAYS,
    ) -> int:
        """Delete attempts in a status older than the cutoff. Returns rows deleted."""
        target = parse_generation_status(status)
        if older_than_days < 0:
            raise ValueError("older_than_days must be >= 0")
        cutoff = models.utcnow() - timedelta(days=older_than_days)
        deleted = (
            db.query(models.MonitorGeneration)
            .filter(
                models.MonitorGeneration.status == target.value,
                models.MonitorGeneration.created_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info(
            f"Cleaned up {deleted} {target.value} monitor(s) older than {older_than_days} days",
            extra={"event": "monitor_cleanup", "items_processed": deleted},
        )
        return deleted
