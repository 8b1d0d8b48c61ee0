# feedpress/services/article_lifecycle.py
"""
Article lifecycle.

    draft -> generated -> generated_image_draft -> generated_with_image -> ready_to_publish
    generated -> ready_to_publish
    generated_image_draft -> ready_to_publish | generated (image failed)
    ready_to_publish | generated_with_image -> published

generated_with_image and ready_to_publish are both picked up by the
auto-publish scheduler. published is only reached through a completed
Publication. archived is a manual transition from any non-terminal status.
"""

import logging
import uuid

from sqlalchemy.orm import Session

from feedpress import models
from feedpress.errors import InvalidStateTransition, RecordNotFound
from feedpress.models import ArticleStatus
from feedpress.services.generation_client import GeneratedArticle

logger = logging.getLogger(__name__)


# Transitions reachable through ArticleLifecycle.transition(). Every status
# must appear as a key; tests check this stays exhaustive.
ARTICLE_TRANSITIONS: dict[ArticleStatus, frozenset[ArticleStatus]] = {
    ArticleStatus.DRAFT: frozenset({ArticleStatus.GENERATED}),
    ArticleStatus.GENERATED: frozenset({
        ArticleStatus.GENERATED_IMAGE_DRAFT,
        ArticleStatus.READY_TO_PUBLISH,
    }),
    ArticleStatus.GENERATED_IMAGE_DRAFT: frozenset({
        ArticleStatus.GENERATED_WITH_IMAGE,
        ArticleStatus.READY_TO_PUBLISH,
        ArticleStatus.GENERATED,  # image request failed
    }),
    ArticleStatus.GENERATED_WITH_IMAGE: frozenset({ArticleStatus.READY_TO_PUBLISH}),
    ArticleStatus.READY_TO_PUBLISH: frozenset(),
    ArticleStatus.PUBLISHED: frozenset(),
    ArticleStatus.ARCHIVED: frozenset(),
}

TERMINAL_ARTICLE_STATUSES = frozenset({ArticleStatus.PUBLISHED, ArticleStatus.ARCHIVED})


def parse_article_status(value: str) -> ArticleStatus:
    """Reject anything that is not a known article status."""
    try:
        return ArticleStatus(value)
    except ValueError:
        raise ValueError(f"Unknown article status '{value}'") from None


def can_transition(current: ArticleStatus, target: ArticleStatus) -> bool:
    return target in ARTICLE_TRANSITIONS[current]


class ArticleLifecycle:
    """Status changes on articles. All writes commit."""

    @staticmethod
    def get(db: Session, article_id: uuid.UUID) -> models.Article:
        article = db.query(models.Article).filter(models.Article.id == article_id).first()
        if not article:
            raise RecordNotFound("Article", article_id)
        return article

    @staticmethod
    def create_generated(
        db: Session,
        generated: GeneratedArticle,
        source: models.Source | None = None,
        feed_item: models.FeedItem | None = None,
        generation_config: dict | None = None,
    ) -> models.Article:
        """Persist a freshly generated article; it starts in 'generated'."""
        article = models.Article(
            id=uuid.uuid4(),
            source_id=source.id if source else None,
            feed_item_id=feed_item.id if feed_item else None,
            title=generated.title,
            content=generated.content,
            slug=generated.slug,
            meta_description=generated.meta_description,
            tags=list(generated.tags),
            categories=[],
            status=ArticleStatus.DRAFT.value,
            generation_config=generation_config,
        )
        ArticleLifecycle._apply(article, ArticleStatus.GENERATED)
        db.add(article)
        db.flush()
        logger.info(
            f"Article {article.id} created from generation",
            extra={"event": "article_created", "article_id": str(article.id)},
        )
        return article

    @staticmethod
    def _apply(article: models.Article, target: ArticleStatus) -> None:
        current = parse_article_status(article.status)
        if not can_transition(current, target):
            raise InvalidStateTransition("Article", current.value, target.value)
        article.status = target.value

    @staticmethod
    def transition(
        db: Session,
        article: models.Article,
        target: ArticleStatus | str,
        commit: bool = True,
    ) -> models.Article:
        """
        Move an article along the automatic flow.

        published and archived are not reachable here: use mark_published and
        archive.
        """
        target = parse_article_status(target) if isinstance(target, str) else target
        previous = article.status
        ArticleLifecycle._apply(article, target)
        if commit:
            db.commit()
        logger.info(
            f"Article {article.id}: {previous} -> {target.value}",
            extra={"event": "article_transition", "article_id": str(article.id)},
        )
        return article

    @staticmethod
    def archive(db: Session, article: models.Article) -> models.Article:
        """Manual archive from any non-terminal status."""
        current = parse_article_status(article.status)
        if current in TERMINAL_ARTICLE_STATUSES:
            raise InvalidStateTransition("Article", current.value, ArticleStatus.ARCHIVED.value)
        article.status = ArticleStatus.ARCHIVED.value
        db.commit()
        logger.info(
            f"Article {article.id} archived (was {current.value})",
            extra={"event": "article_archived", "article_id": str(article.id)},
        )
        return article

    @staticmethod
    def mark_published(
        db: Session,
        article: models.Article,
        external_id: str | None = None,
        external_url: str | None = None,
        commit: bool = True,
    ) -> models.Article:
        """Terminal success; only called once a Publication completed."""
        current = parse_article_status(article.status)
        if current not in models.PUBLISHABLE_ARTICLE_STATUSES:
            raise InvalidStateTransition(
                "Article", current.value, ArticleStatus.PUBLISHED.value,
                reason="only ready_to_publish or generated_with_image articles can be published",
            )
        article.status = ArticleStatus.PUBLISHED.value
        article.published_at = models.utcnow()
        article.wordpress_post_id = external_id
        article.wordpress_url = external_url
        if commit:
            db.commit()
        return article
