# feedpress/routers/articles.py
"""
Article and publication endpoints.

POST   /v1/articles/{id}/image          - Request a featured image
POST   /v1/articles/{id}/transition     - Move an article along its lifecycle
POST   /v1/articles/{id}/archive        - Archive an article
GET    /v1/publications                 - List publications
GET    /v1/publications/{id}            - Publication detail
POST   /v1/publications/{id}/action     - retry | cancel
DELETE /v1/publications/{id}            - Delete a failed or cancelled publication
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from feedpress.auth import require_admin_key
from feedpress.database import get_db
from feedpress.dependencies import get_image_pipeline
from feedpress.errors import ImageUploadFailure
from feedpress.models import ArticleStatus
from feedpress.schemas.articles import (
    ArticleResponse,
    FeaturedImageResponse,
    ImageAttachResponse,
    ImageRequest,
    PublicationActionRequest,
    PublicationListResponse,
    PublicationResponse,
    TransitionRequest,
)
from feedpress.services.article_lifecycle import ArticleLifecycle, parse_article_status
from feedpress.services.image_attachment import ImageAttachmentPipeline
from feedpress.services.publication import PublicationService

router = APIRouter(prefix="/v1", tags=["articles"])


# -----------------------------------------------------------------------------
# Articles
# -----------------------------------------------------------------------------

@router.post("/articles/{article_id}/image", response_model=ImageAttachResponse)
def attach_image(
    article_id: uuid.UUID,
    request: ImageRequest | None = None,
    db: Session = Depends(get_db),
    pipeline: ImageAttachmentPipeline = Depends(get_image_pipeline),
    _: None = Depends(require_admin_key),
) -> ImageAttachResponse:
    request = request or ImageRequest()
    article = ArticleLifecycle.get(db, article_id)
    try:
        image = pipeline.request_image(
            db,
            article,
            ai_prompt=request.ai_prompt or article.title,
            filename=request.filename,
            alt_text=request.alt_text or article.title,
            finalize=request.finalize,
        )
    except ImageUploadFailure as e:
        raise HTTPException(status_code=502, detail=f"Image request failed: {e}")
    return ImageAttachResponse(
        article=ArticleResponse.model_validate(article),
        image=FeaturedImageResponse.model_validate(image),
    )


@router.post("/articles/{article_id}/transition", response_model=ArticleResponse)
def transition_article(
    article_id: uuid.UUID,
    request: TransitionRequest,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> ArticleResponse:
    try:
        target = parse_article_status(request.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    article = ArticleLifecycle.get(db, article_id)
    if target == ArticleStatus.ARCHIVED:
        article = ArticleLifecycle.archive(db, article)
    elif target == ArticleStatus.PUBLISHED:
        raise HTTPException(status_code=400, detail="Articles are published through a publication, not directly")
    else:
        article = ArticleLifecycle.transition(db, article, target)
    return ArticleResponse.model_validate(article)


@router.post("/articles/{article_id}/archive", response_model=ArticleResponse)
def archive_article(
    article_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> ArticleResponse:
    article = ArticleLifecycle.archive(db, ArticleLifecycle.get(db, article_id))
    return ArticleResponse.model_validate(article)


# -----------------------------------------------------------------------------
# Publications
# -----------------------------------------------------------------------------

@router.get("/publications", response_model=PublicationListResponse)
def list_publications(
    status: str | None = Query(None, description="pending|processing|completed|failed|cancelled"),
    article_id: uuid.UUID | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> PublicationListResponse:
    try:
        items, total = PublicationService.list_publications(
            db, status=status, article_id=article_id, limit=limit, offset=offset
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PublicationListResponse(
        items=[PublicationResponse.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/publications/{publication_id}", response_model=PublicationResponse)
def get_publication(
    publication_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> PublicationResponse:
    return PublicationResponse.model_validate(PublicationService.get(db, publication_id))


@router.post("/publications/{publication_id}/action", response_model=PublicationResponse)
def publication_action(
    publication_id: uuid.UUID,
    request: PublicationActionRequest,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> PublicationResponse:
    publication = PublicationService.get(db, publication_id)
    match request.action:
        case "retry":
            publication = PublicationService.retry(db, publication)
        case "cancel":
            publication = PublicationService.cancel(db, publication)
        case _:
            raise HTTPException(status_code=400, detail=f"Unknown action '{request.action}' (expected retry|cancel)")
    return PublicationResponse.model_validate(publication)


@router.delete("/publications/{publication_id}")
def delete_publication(
    publication_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> dict:
    PublicationService.delete(db, PublicationService.get(db, publication_id))
    return {"status": "deleted", "id": str(publication_id)}
