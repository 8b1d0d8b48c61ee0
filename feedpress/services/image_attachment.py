# feedpress/services/image_attachment.py
"""
Featured image attachment.

Two halves:
1. request_image() asks the image service for a picture for an article and
   records it as a FeaturedImage (found by search, or generated).
2. ensure_uploaded() makes sure the image exists in the CMS media library
   before publishing, reusing an earlier upload when there is one.

Image failures never fail an article: callers publish without a featured
image when ImageUploadFailure is raised.
"""

import logging
import mimetypes
import uuid
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import httpx
from sqlalchemy.orm import Session
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from feedpress import models
from feedpress.config import get_settings
from feedpress.constants import CMSDefaults
from feedpress.errors import ImageUploadFailure, PublishFailure
from feedpress.logging_config import log_service_call
from feedpress.models import ArticleStatus, ImageStatus
from feedpress.services.article_lifecycle import ArticleLifecycle
from feedpress.services.wordpress_client import WordPressClient

logger = logging.getLogger(__name__)


@dataclass
class ImageResult:
    """Normalized image service answer."""

    url: str
    filename: str | None = None
    alt_text: str | None = None
    was_generated: bool = False
    provider: str | None = None
    search_results: list[Any] = field(default_factory=list)


class ImageClient:
    """HTTP client for the image search/generation service."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self.base_url = base_url or settings.IMAGE_API_URL
        self.api_key = api_key or settings.IMAGE_API_KEY
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        with httpx.Client(timeout=self.timeout, headers=headers) as client:
            return client.post(self.base_url, json=payload)

    def request_image(
        self,
        article_id: uuid.UUID,
        ai_prompt: str,
        filename: str | None = None,
        alt_text: str | None = None,
    ) -> ImageResult:
        """Ask the service for an image. Raises ImageUploadFailure."""
        if not self.base_url:
            raise ImageUploadFailure("IMAGE_API_URL is not configured")

        payload = {
            "articleId": str(article_id),
            "aiPrompt": ai_prompt,
            "filename": filename,
            "altText": alt_text,
        }
        try:
            with log_service_call("image", "request_image") as metrics:
                response = self._post(payload)
                metrics["status_code"] = response.status_code
        except httpx.TransportError as e:
            raise ImageUploadFailure(f"Image service unreachable: {e}") from e

        if response.status_code >= 400:
            raise ImageUploadFailure(
                f"Image service returned HTTP {response.status_code}: {response.text[:200]}"
            )
        try:
            body = response.json()
        except ValueError as e:
            raise ImageUploadFailure("Image service returned a non-JSON body") from e

        image = body.get("image") if isinstance(body, dict) else None
        if not isinstance(image, dict) or not image.get("url"):
            raise ImageUploadFailure("Image service response has no image url")

        metadata = body.get("metadata") or {}
        return ImageResult(
            url=image["url"],
            filename=image.get("filename") or filename,
            alt_text=image.get("altText") or alt_text,
            was_generated=bool(metadata.get("wasGenerated")),
            provider=metadata.get("provider"),
            search_results=list(body.get("searchResults") or []),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _get(self, url: str) -> httpx.Response:
        with httpx.Client(timeout=CMSDefaults.IMAGE_DOWNLOAD_TIMEOUT_SECONDS, follow_redirects=True) as client:
            return client.get(url)

    def download(self, url: str) -> tuple[bytes, str]:
        """Fetch image bytes and their content type."""
        try:
            with log_service_call("image", "download") as metrics:
                response = self._get(url)
                metrics["status_code"] = response.status_code
        except httpx.TransportError as e:
            raise ImageUploadFailure(f"Image download failed for {url}: {e}") from e

        if response.status_code >= 400:
            raise ImageUploadFailure(f"Image download failed for {url}: HTTP {response.status_code}")
        if not response.content:
            raise ImageUploadFailure(f"Image download returned an empty body for {url}")

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if not content_type.startswith("image/"):
            content_type = mimetypes.guess_type(urlparse(url).path)[0] or "image/jpeg"
        return response.content, content_type


def _filename_for(image: models.FeaturedImage) -> str:
    if image.filename:
        return image.filename
    path_name = urlparse(image.url or "").path.rsplit("/", 1)[-1]
    return path_name or f"{image.article_id}.jpg"


class ImageAttachmentPipeline:
    """Attach and upload featured images."""

    def __init__(self, client: ImageClient | None = None):
        self.client = client or ImageClient()

    @staticmethod
    def latest_usable_image(db: Session, article_id: uuid.UUID) -> models.FeaturedImage | None:
        """Newest image that can be published (found, generated or already uploaded)."""
        return (
            db.query(models.FeaturedImage)
            .filter(
                models.FeaturedImage.article_id == article_id,
                models.FeaturedImage.status.in_([s.value for s in models.USABLE_IMAGE_STATUSES]),
            )
            .order_by(models.FeaturedImage.created_at.desc())
            .first()
        )

    def request_image(
        self,
        db: Session,
        article: models.Article,
        ai_prompt: str,
        filename: str | None = None,
        alt_text: str | None = None,
        finalize: bool = False,
    ) -> models.FeaturedImage:
        """
        Request an image and attach it to the article.

        The article moves to generated_image_draft while the request runs, then
        to generated_with_image (or ready_to_publish when finalize is set). On
        failure the image row is kept with status 'error', the article returns
        to 'generated' and ImageUploadFailure is raised.
        """
        ArticleLifecycle.transition(db, article, ArticleStatus.GENERATED_IMAGE_DRAFT)

        image = models.FeaturedImage(
            id=uuid.uuid4(),
            article_id=article.id,
            ai_prompt=ai_prompt,
            filename=filename,
            alt_text=alt_text,
            status=ImageStatus.PENDING.value,
        )
        db.add(image)
        db.flush()

        try:
            result = self.client.request_image(article.id, ai_prompt, filename, alt_text)
        except ImageUploadFailure as e:
            image.status = ImageStatus.ERROR.value
            image.error = str(e)
            ArticleLifecycle.transition(db, article, ArticleStatus.GENERATED)
            logger.warning(
                f"Image request failed for article {article.id}: {e}",
                extra={"event": "image_request_failed", "article_id": str(article.id), "image_id": str(image.id)},
            )
            raise

        image.url = result.url
        image.filename = result.filename
        image.alt_text = result.alt_text
        image.provider = result.provider
        image.status = (ImageStatus.GENERATED if result.was_generated else ImageStatus.FOUND).value

        target = ArticleStatus.READY_TO_PUBLISH if finalize else ArticleStatus.GENERATED_WITH_IMAGE
        ArticleLifecycle.transition(db, article, target)
        logger.info(
            f"Image {image.status} for article {article.id} ({result.provider or 'unknown provider'})",
            extra={"event": "image_attached", "article_id": str(article.id), "image_id": str(image.id)},
        )
        return image

    def ensure_uploaded(
        self,
        db: Session,
        image: models.FeaturedImage,
        cms: WordPressClient,
        fallback_title: str | None = None,
    ) -> int:
        """
        Return the CMS media id for an image, uploading it first if needed.

        Raises ImageUploadFailure; the caller decides whether to publish
        without the image.
        """
        status = ImageStatus(image.status)
        match status:
            case ImageStatus.UPLOADED if image.wordpress_media_id:
                logger.info(
                    f"Reusing uploaded media {image.wordpress_media_id} for image {image.id}",
                    extra={"event": "image_reused", "image_id": str(image.id)},
                )
                return image.wordpress_media_id
            case ImageStatus.FOUND | ImageStatus.GENERATED if image.url:
                pass
            case _:
                raise ImageUploadFailure(f"Image {image.id} is not uploadable (status={image.status})")

        content, content_type = self.client.download(image.url)
        title = image.alt_text or fallback_title
        try:
            media = cms.upload_media(
                content,
                filename=_filename_for(image),
                content_type=content_type,
                title=title,
                alt_text=image.alt_text,
                caption=title,
            )
        except PublishFailure as e:
            raise ImageUploadFailure(f"Media upload failed for image {image.id}: {e}") from e

        image.status = ImageStatus.UPLOADED.value
        image.wordpress_media_id = media.id
        image.wordpress_url = media.url
        image.error = None
        db.commit()
        logger.info(
            f"Uploaded image {image.id} as media {media.id}",
            extra={"event": "image_uploaded", "image_id": str(image.id)},
        )
        return media.id
