# feedpress/services/publication.py
"""
Publication state machine.

    pending -> processing | failed | cancelled
    processing -> completed | failed | cancelled
    failed -> pending (retry) | cancelled
    completed, cancelled: terminal

A retry is only allowed while retry_count < max_retries. completing a
publication is the only way an article becomes 'published'.
"""

import logging
import uuid

from sqlalchemy.orm import Session

from feedpress import models
from feedpress.constants import PublishDefaults
from feedpress.errors import InvalidStateTransition, RecordNotFound
from feedpress.models import PublicationStatus
from feedpress.services.article_lifecycle import ArticleLifecycle

logger = logging.getLogger(__name__)


PUBLICATION_TRANSITIONS: dict[PublicationStatus, frozenset[PublicationStatus]] = {
    PublicationStatus.PENDING: frozenset({
        PublicationStatus.PROCESSING,
        PublicationStatus.FAILED,
        PublicationStatus.CANCELLED,
    }),
    PublicationStatus.PROCESSING: frozenset({
        PublicationStatus.COMPLETED,
        PublicationStatus.FAILED,
        PublicationStatus.CANCELLED,
    }),
    PublicationStatus.FAILED: frozenset({
        PublicationStatus.PENDING,
        PublicationStatus.CANCELLED,
    }),
    PublicationStatus.COMPLETED: frozenset(),
    PublicationStatus.CANCELLED: frozenset(),
}

DELETABLE_PUBLICATION_STATUSES = frozenset({PublicationStatus.CANCELLED, PublicationStatus.FAILED})


def parse_publication_status(value: str) -> PublicationStatus:
    try:
        return PublicationStatus(value)
    except ValueError:
        raise ValueError(f"Unknown publication status '{value}'") from None


class PublicationService:
    """Create and move publications. Every method commits unless told otherwise."""

    @staticmethod
    def get(db: Session, publication_id: uuid.UUID) -> models.Publication:
        publication = (
            db.query(models.Publication)
            .filter(models.Publication.id == publication_id)
            .first()
        )
        if not publication:
            raise RecordNotFound("Publication", publication_id)
        return publication

    @staticmethod
    def list_publications(
        db: Session,
        status: str | None = None,
        article_id: uuid.UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[models.Publication], int]:
        """Newest first. Returns (page, total)."""
        query = db.query(models.Publication)
        if status:
            query = query.filter(models.Publication.status == parse_publication_status(status).value)
        if article_id:
            query = query.filter(models.Publication.article_id == article_id)
        total = query.count()
        items = (
            query.order_by(models.Publication.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def _move(publication: models.Publication, target: PublicationStatus, reason: str | None = None) -> None:
        current = parse_publication_status(publication.status)
        if target not in PUBLICATION_TRANSITIONS[current]:
            raise InvalidStateTransition("Publication", current.value, target.value, reason=reason)
        publication.status = target.value

    @staticmethod
    def create(
        db: Session,
        article: models.Article,
        site: models.WordPressSite | None,
        metadata: dict | None = None,
        commit: bool = True,
    ) -> models.Publication:
        publication = models.Publication(
            id=uuid.uuid4(),
            article_id=article.id,
            site_id=site.id if site else None,
            status=PublicationStatus.PENDING.value,
            retry_count=0,
            max_retries=PublishDefaults.MAX_RETRIES,
            metadata_=metadata or {},
        )
        db.add(publication)
        if commit:
            db.commit()
        else:
            db.flush()
        return publication

    @staticmethod
    def start(db: Session, publication: models.Publication) -> models.Publication:
        PublicationService._move(publication, PublicationStatus.PROCESSING)
        publication.started_at = models.utcnow()
        db.commit()
        return publication

    @staticmethod
    def complete(
        db: Session,
        publication: models.Publication,
        external_id: str | None,
        external_url: str | None = None,
    ) -> models.Publication:
        """
        Mark the publication completed and the article published.

        A publication without an external id is not complete; it is rejected
        so the article never shows as published without a CMS post.
        """
        if not external_id:
            raise InvalidStateTransition(
                "Publication", publication.status, PublicationStatus.COMPLETED.value,
                reason="an external post id is required",
            )
        PublicationService._move(publication, PublicationStatus.COMPLETED)
        publication.external_id = str(external_id)
        publication.external_url = external_url
        publication.completed_at = models.utcnow()
        publication.error = None

        ArticleLifecycle.mark_published(
            db, publication.article, external_id=str(external_id), external_url=external_url, commit=False
        )
        db.commit()
        logger.info(
            f"Publication {publication.id} completed as post {external_id}",
            extra={
                "event": "publication_completed",
                "publication_id": str(publication.id),
                "article_id": str(publication.article_id),
            },
        )
        return publication

    @staticmethod
    def fail(db: Session, publication: models.Publication, message: str) -> models.Publication:
        PublicationService._move(publication, PublicationStatus.FAILED)
        publication.error = message
        publication.completed_at = models.utcnow()
        db.commit()
        logger.warning(
            f"Publication {publication.id} failed: {message}",
            extra={
                "event": "publication_failed",
                "publication_id": str(publication.id),
                "article_id": str(publication.article_id),
            },
        )
        return publication

    @staticmethod
    def can_retry(publication: models.Publication) -> bool:
        return (
            publication.status == PublicationStatus.FAILED.value
            and publication.retry_count < publication.max_retries
        )

    @staticmethod
    def retry(db: Session, publication: models.Publication) -> models.Publication:
        """failed -> pending, spending one retry."""
        if publication.status != PublicationStatus.FAILED.value:
            raise InvalidStateTransition(
                "Publication", publication.status, PublicationStatus.PENDING.value,
                reason="only failed publications can be retried",
            )
        if not PublicationService.can_retry(publication):
            raise InvalidStateTransition(
                "Publication", publication.status, PublicationStatus.PENDING.value,
                reason=f"retry budget exhausted ({publication.retry_count}/{publication.max_retries})",
            )
        PublicationService._move(publication, PublicationStatus.PENDING)
        publication.retry_count += 1
        publication.started_at = None
        publication.completed_at = None
        publication.error = None
        db.commit()
        logger.info(
            f"Publication {publication.id} queued for retry {publication.retry_count}/{publication.max_retries}",
            extra={"event": "publication_retry", "publication_id": str(publication.id)},
        )
        return publication

    @staticmethod
    def cancel(db: Session, publication: models.Publication) -> models.Publication:
        PublicationService._move(
            publication, PublicationStatus.CANCELLED,
            reason="completed and cancelled publications cannot be cancelled",
        )
        publication.completed_at = models.utcnow()
        db.commit()
        logger.info(
            f"Publication {publication.id} cancelled",
            extra={"event": "publication_cancelled", "publication_id": str(publication.id)},
        )
        return publication

    @staticmethod
    def delete(db: Session, publication: models.Publication) -> None:
        """Only cancelled or failed publications can be deleted."""
        status = parse_publication_status(publication.status)
        if status not in DELETABLE_PUBLICATION_STATUSES:
            raise InvalidStateTransition(
                "Publication", status.value, "deleted",
                reason="only cancelled or failed publications can be deleted",
            )
        db.delete(publication)
        db.commit()
        logger.info(
            f"Publication {publication.id} deleted",
            extra={"event": "publication_deleted", "publication_id": str(publication.id)},
        )

    @staticmethod
    def has_active_or_completed(db: Session, article_id: uuid.UUID) -> bool:
        """True when the article is being published or already was."""
        return (
            db.query(models.Publication.id)
            .filter(
                models.Publication.article_id == article_id,
                models.Publication.status.in_([
                    PublicationStatus.PROCESSING.value,
                    PublicationStatus.COMPLETED.value,
                ]),
            )
            .first()
            is not None
        )
