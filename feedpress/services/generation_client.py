# feedpress/services/generation_client.py
"""
Client for the external article generation service.

The service answers with a JSON document as plain text. Long articles are
sometimes truncated mid-stream, so the text goes through the JSON repair unit
before it is normalized.

Response shapes:
- version 2 (canonical): {"title", "content", "slug"?, "meta_description"?, "tags"?}
- version 1 (legacy):    {"article": {"basic_data": {...}, "seo_critical": {...},
                          "content": "...", "featured_image": {...}}}

normalize_generation_response converts either one into a GeneratedArticle;
anything else is a GenerationFailure.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from feedpress.config import get_settings
from feedpress.constants import GenerationDefaults
from feedpress.errors import GenerationFailure
from feedpress.logging_config import log_service_call
from feedpress.services.json_repair import parse_generation_json

logger = logging.getLogger(__name__)


@dataclass
class GenerationRequest:
    """What we ask the generation service to write."""

    topic: str
    target_word_count: int = 800
    tone: str = "professional"
    style: str = "journalistic"
    keywords: list[str] = field(default_factory=list)
    source_content: str | None = None
    source_url: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "topic": self.topic,
            "targetWordCount": self.target_word_count,
            "tone": self.tone,
            "style": self.style,
            "keywords": self.keywords,
            "responseVersion": GenerationDefaults.RESPONSE_VERSION,
        }
        if self.source_content:
            payload["sourceContent"] = self.source_content
        if self.source_url:
            payload["sourceUrl"] = self.source_url
        return payload


@dataclass
class ImageHint:
    """Featured image suggestion embedded in legacy responses."""

    ai_prompt: str | None = None
    alt_text: str | None = None
    filename: str | None = None


@dataclass
class GeneratedArticle:
    """Normalized generation output."""

    title: str
    content: str
    slug: str | None = None
    meta_description: str | None = None
    tags: list[str] = field(default_factory=list)
    image_hint: ImageHint | None = None
    response_version: int = GenerationDefaults.RESPONSE_VERSION


def _clean_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _clean_tags(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [tag.strip() for tag in value if isinstance(tag, str) and tag.strip()]


def normalize_generation_response(data: dict[str, Any]) -> GeneratedArticle:
    """Convert a parsed generation document into the canonical article shape."""
    article = data.get("article")
    if isinstance(article, dict):
        basic = article.get("basic_data") or {}
        seo = article.get("seo_critical") or {}
        image = article.get("featured_image") or {}

        title = _clean_str(basic.get("title")) or _clean_str(seo.get("seo_title")) or _clean_str(data.get("title"))
        content = _clean_str(article.get("content"))
        if not title or not content:
            raise GenerationFailure("Legacy generation response is missing title or content")

        image_hint = None
        if isinstance(image, dict) and _clean_str(image.get("ai_prompt")):
            image_hint = ImageHint(
                ai_prompt=_clean_str(image.get("ai_prompt")),
                alt_text=_clean_str(image.get("alt_text")),
                filename=_clean_str(image.get("filename")),
            )

        return GeneratedArticle(
            title=title,
            content=content,
            slug=_clean_str(basic.get("slug")),
            meta_description=_clean_str(seo.get("meta_description")) or _clean_str(basic.get("meta_description")),
            tags=_clean_tags(basic.get("tags")),
            image_hint=image_hint,
            response_version=1,
        )

    title = _clean_str(data.get("title"))
    content = _clean_str(data.get("content"))
    if not title or not content:
        raise GenerationFailure(
            f"Generation response has no title/content (keys: {sorted(data.keys())[:10]})"
        )

    return GeneratedArticle(
        title=title,
        content=content,
        slug=_clean_str(data.get("slug")),
        meta_description=_clean_str(data.get("meta_description")),
        tags=_clean_tags(data.get("tags")),
    )


class GenerationClient:
    """HTTP client for the generation service."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self.base_url = base_url or settings.GENERATION_API_URL
        self.api_key = api_key or settings.GENERATION_API_KEY
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    def build_request(self, title: str, content: str | None = None, url: str | None = None) -> GenerationRequest:
        """Generation request for a feed item, using configured defaults."""
        settings = get_settings()
        return GenerationRequest(
            topic=title,
            target_word_count=settings.GENERATION_DEFAULT_WORD_COUNT,
            tone=settings.GENERATION_DEFAULT_TONE,
            style=settings.GENERATION_DEFAULT_STYLE,
            source_content=content,
            source_url=url,
        )

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

    def generate_text(self, request: GenerationRequest) -> str:
        """Call the service and return the raw response text."""
        if not self.base_url:
            raise GenerationFailure("GENERATION_API_URL is not configured")

        try:
            with log_service_call("generation", "generate") as metrics:
                response = self._post(request.to_payload())
                metrics["status_code"] = response.status_code
        except httpx.TransportError as e:
            raise GenerationFailure(f"Generation service unreachable: {e}") from e

        if response.status_code >= 400:
            raise GenerationFailure(
                f"Generation service returned HTTP {response.status_code}: {response.text[:200]}"
            )
        return response.text

    def generate(self, request: GenerationRequest) -> GeneratedArticle:
        """Generate, repair and normalize. Raises GenerationFailure (or TruncatedUnrepairable)."""
        raw_text = self.generate_text(request)
        data = parse_generation_json(raw_text)
        article = normalize_generation_response(data)
        logger.info(
            f"Generated article '{article.title[:GenerationDefaults.TITLE_LOG_PREVIEW_CHARS]}' "
            f"({len(article.content)} chars, response v{article.response_version})",
            extra={"event": "article_generated"},
        )
        return article
