# feedpress/services/auto_publisher.py
"""
Auto-publish scheduler.

Each run:
1. Picks the active site with auto-publish enabled (no site -> no-op).
2. Takes the oldest ready_to_publish / generated_with_image articles, up to
   the batch size.
3. Publishes them one at a time with a fixed pause in between: featured image
   (reused or uploaded), categories (source > site > none), post payload,
   Publication pending -> processing -> completed | failed.
4. Returns processed / published / failed counts and per-article errors.

One article failing never stops the batch. Overlapping runs are kept apart by
a SchedulerLock row; a run that finds the lock held returns skipped=True.
Articles whose publication is already processing or completed are never
picked twice.
"""

import logging
import socket
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Any, Callable

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from feedpress import models
from feedpress.config import get_settings
from feedpress.constants import PublishDefaults
from feedpress.errors import ImageUploadFailure, PublishFailure
from feedpress.logging_config import log_stage
from feedpress.models import PublicationStatus
from feedpress.services.categories import determine_article_categories, get_category_source
from feedpress.services.image_attachment import ImageAttachmentPipeline
from feedpress.services.publication import PublicationService
from feedpress.services.wordpress_client import WordPressClient

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Advisory lock
# -----------------------------------------------------------------------------

class SchedulerLockManager:
    """Named lock rows with an expiry, so a crashed run frees the lock eventually."""

    @staticmethod
    def acquire(db: Session, name: str, holder: str, ttl_seconds: int) -> bool:
        now = models.utcnow()
        lock = db.get(models.SchedulerLock, name)
        if lock is not None and lock.expires_at > now:
            return False

        expires_at = now + timedelta(seconds=ttl_seconds)
        if lock is None:
            db.add(models.SchedulerLock(name=name, holder=holder, acquired_at=now, expires_at=expires_at))
        else:
            logger.warning(
                f"Taking over expired lock '{name}' from {lock.holder}",
                extra={"event": "scheduler_lock_expired"},
            )
            lock.holder = holder
            lock.acquired_at = now
            lock.expires_at = expires_at
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return False
        return True

    @staticmethod
    def release(db: Session, name: str, holder: str) -> None:
        (
            db.query(models.SchedulerLock)
            .filter(models.SchedulerLock.name == name, models.SchedulerLock.holder == holder)
            .delete(synchronize_session=False)
        )
        db.commit()


# -----------------------------------------------------------------------------
# Worker
# -----------------------------------------------------------------------------

@dataclass
class AutoPublishResult:
    processed: int = 0
    published: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0
    message: str = ""
    skipped: bool = False
    site_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AutoPublisher:
    """Publishes ready articles to the auto-publish site."""

    def __init__(
        self,
        image_pipeline: ImageAttachmentPipeline | None = None,
        cms_factory: Callable[[models.WordPressSite], WordPressClient] = WordPressClient.from_site,
        batch_size: int | None = None,
        delay_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = get_settings()
        self.image_pipeline = image_pipeline or ImageAttachmentPipeline()
        self.cms_factory = cms_factory
        self.batch_size = batch_size or settings.AUTO_PUBLISH_BATCH_SIZE
        self.delay_seconds = settings.AUTO_PUBLISH_DELAY_SECONDS if delay_seconds is None else delay_seconds
        self.lock_ttl_seconds = settings.SCHEDULER_LOCK_TTL_SECONDS
        self.sleep = sleep

    @staticmethod
    def find_site(db: Session, site_id: uuid.UUID | None = None) -> models.WordPressSite | None:
        query = db.query(models.WordPressSite).filter(
            models.WordPressSite.is_active.is_(True),
            models.WordPressSite.enable_auto_publish.is_(True),
        )
        if site_id:
            query = query.filter(models.WordPressSite.id == site_id)
        return query.order_by(models.WordPressSite.created_at.asc()).first()

    def select_articles(self, db: Session) -> list[models.Article]:
        """
        Oldest publishable articles, up to the batch size.

        Skipped: articles with a processing or completed publication, and
        articles whose latest publication is cancelled or failed with no
        retries left. The exclusion happens in the query so skipped articles
        never crowd out newer ones.
        """
        busy = (
            select(models.Publication.article_id)
            .where(models.Publication.status.in_([
                PublicationStatus.PROCESSING.value,
                PublicationStatus.COMPLETED.value,
            ]))
        )
        latest = aliased(models.Publication)
        latest_id = (
            select(models.Publication.id)
            .where(models.Publication.article_id == models.Article.id)
            .order_by(models.Publication.created_at.desc())
            .limit(1)
            .correlate(models.Article)
            .scalar_subquery()
        )
        return (
            db.query(models.Article)
            .outerjoin(latest, latest.id == latest_id)
            .filter(
                models.Article.status.in_([s.value for s in models.PUBLISHABLE_ARTICLE_STATUSES]),
                models.Article.id.notin_(busy),
                or_(
                    latest.id.is_(None),
                    and_(
                        latest.status != PublicationStatus.CANCELLED.value,
                        or_(
                            latest.status != PublicationStatus.FAILED.value,
                            latest.retry_count < latest.max_retries,
                        ),
                    ),
                ),
            )
            .order_by(models.Article.created_at.asc())
            .limit(self.batch_size)
            .all()
        )

    def run_once(self, db: Session, site_id: uuid.UUID | None = None) -> AutoPublishResult:
        started = time.monotonic()
        result = AutoPublishResult()

        site = self.find_site(db, site_id)
        if site is None:
            result.message = "No active site with auto-publish enabled"
            logger.info(result.message, extra={"event": "auto_publish_noop"})
            return result
        result.site_id = str(site.id)

        holder = f"{socket.gethostname()}:{uuid.uuid4().hex[:8]}"
        if not SchedulerLockManager.acquire(db, PublishDefaults.SCHEDULER_LOCK_NAME, holder, self.lock_ttl_seconds):
            result.skipped = True
            result.message = "Another auto-publish run holds the lock"
            logger.info(result.message, extra={"event": "auto_publish_locked"})
            return result

        try:
            with log_stage("auto_publish", trace_id=holder):
                self._run_batch(db, site, result)
        finally:
            SchedulerLockManager.release(db, PublishDefaults.SCHEDULER_LOCK_NAME, holder)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        result.message = (
            f"Processed {result.processed} articles: {result.published} published, {result.failed} failed"
        )
        logger.info(
            result.message,
            extra={
                "event": "auto_publish_complete",
                "site_id": result.site_id,
                "items_processed": result.processed,
                "items_failed": result.failed,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def _run_batch(self, db: Session, site: models.WordPressSite, result: AutoPublishResult) -> None:
        articles = self.select_articles(db)
        if not articles:
            return
        cms = self.cms_factory(site)

        for index, article in enumerate(articles):
            if index > 0 and self.delay_seconds > 0:
                self.sleep(self.delay_seconds)

            result.processed += 1
            article_id = article.id
            try:
                error = self.publish_article(db, article, site, cms)
            except Exception as e:
                db.rollback()
                error = f"{type(e).__name__}: {e}"
                logger.error(
                    f"Unexpected error publishing article {article_id}: {e}",
                    extra={"event": "auto_publish_article_error", "article_id": str(article_id)},
                    exc_info=True,
                )

            if error is None:
                result.published += 1
            else:
                result.failed += 1
                result.errors.append(f"{article_id}: {error}")

    @staticmethod
    def _publication_for(db: Session, article: models.Article, site: models.WordPressSite) -> models.Publication:
        """Reuse a pending publication, spend a retry on a failed one, or create a new one."""
        latest = article.publications[0] if article.publications else None
        if latest is not None and latest.status == PublicationStatus.PENDING.value:
            return latest
        if latest is not None and latest.status == PublicationStatus.FAILED.value:
            return PublicationService.retry(db, latest)
        return PublicationService.create(db, article, site, metadata={"trigger": "auto_publish"})

    def _featured_media(
        self,
        db: Session,
        article: models.Article,
        cms: WordPressClient,
    ) -> tuple[int | None, str | None, str | None]:
        """(media_id, media_url, error). Image problems never block publishing."""
        image = self.image_pipeline.latest_usable_image(db, article.id)
        if image is None:
            return None, None, None
        try:
            media_id = self.image_pipeline.ensure_uploaded(db, image, cms, fallback_title=article.title)
        except ImageUploadFailure as e:
            logger.warning(
                f"Publishing article {article.id} without featured image: {e}",
                extra={"event": "featured_image_skipped", "article_id": str(article.id)},
            )
            return None, None, str(e)
        return media_id, image.wordpress_url, None

    @staticmethod
    def build_payload(
        article: models.Article,
        site: models.WordPressSite,
        categories: list[str],
        media_id: int | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": article.title,
            "content": article.content,
            "excerpt": article.title[: PublishDefaults.EXCERPT_MAX_CHARS],
            "status": site.default_status or PublishDefaults.DEFAULT_POST_STATUS,
            "categories": categories,
            "tags": list(article.tags or []),
            "meta": {
                "feedpress_article_id": str(article.id),
                "feedpress_source_id": str(article.source_id) if article.source_id else None,
            },
        }
        if article.slug:
            payload["slug"] = article.slug
        if media_id:
            payload["featured_media"] = media_id
        if site.default_author:
            payload["author"] = site.default_author
        return payload

    def publish_article(
        self,
        db: Session,
        article: models.Article,
        site: models.WordPressSite,
        cms: WordPressClient,
    ) -> str | None:
        """Publish one article. Returns None on success, else the error message."""
        publication = self._publication_for(db, article, site)

        media_id, media_url, image_error = self._featured_media(db, article, cms)

        source_category = article.source.default_category if article.source else None
        categories = determine_article_categories(source_category, site.default_category)
        payload = self.build_payload(article, site, categories, media_id)

        publication.metadata_ = {
            **(publication.metadata_ or {}),
            "category_source": get_category_source(source_category, site.default_category),
            "featured_media": media_id,
            "image_error": image_error,
        }
        PublicationService.start(db, publication)

        # The publication is committed as processing from here on; every exit
        # must move it to completed or failed.
        try:
            post = cms.create_post(payload)
            article.categories = categories
            article.excerpt = payload["excerpt"]
            article.featured_media_id = media_id
            article.featured_media_url = media_url
            PublicationService.complete(db, publication, post.id, post.link)
        except PublishFailure as e:
            db.rollback()
            PublicationService.fail(db, publication, str(e))
            return str(e)
        except Exception as e:
            db.rollback()
            error = f"{type(e).__name__}: {e}"
            logger.error(
                f"Unexpected error publishing article {article.id}: {e}",
                extra={"event": "auto_publish_article_error", "article_id": str(article.id)},
                exc_info=True,
            )
            PublicationService.fail(db, publication, error)
            return error

        logger.info(
            f"Published article {article.id} to {site.name} as post {post.id}",
            extra={
                "event": "article_published",
                "article_id": str(article.id),
                "publication_id": str(publication.id),
                "site_id": str(site.id),
            },
        )
        return None


# -----------------------------------------------------------------------------
# Ticker
# -----------------------------------------------------------------------------

class SchedulerTicker:
    """Runs a worker every interval on a background thread until stopped."""

    def __init__(self, worker: Callable[[], Any], interval_seconds: float):
        self.worker = worker
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="auto-publish-ticker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.worker()
            except Exception:
                logger.exception("Scheduled auto-publish run failed", extra={"event": "scheduler_tick_failed"})
            self._stop.wait(self.interval_seconds)


def run_scheduled_publish(session_factory=None) -> AutoPublishResult:
    """One scheduler run in its own session; used by the ticker."""
    if session_factory is None:
        from feedpress.database import SessionLocal

        session_factory = SessionLocal
    db = session_factory()
    try:
        return AutoPublisher().run_once(db)
    finally:
        db.close()
