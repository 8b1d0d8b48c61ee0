# feedpress/services/wordpress_client.py
"""
WordPress REST API client.

Endpoints used:
- POST {site}/wp-json/wp/v2/posts   create a post
- POST {site}/wp-json/wp/v2/media   upload a featured image (multipart)
- GET  {site}/wp-json               connection test

All requests use HTTP Basic auth with an application password. Failures are
classified rather than passed through:
- 401/403                     -> CMSAuthenticationError
- other non-2xx               -> CMSResponseError (retryable for 408/429/5xx)
- 2xx with an HTML/non-JSON body (REST API disabled, wrong site URL,
  login page served by a security plugin) -> CMSMisconfiguredError
- DNS/TLS/timeouts            -> CMSConnectionError
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from feedpress import models
from feedpress.config import get_settings
from feedpress.constants import CMSDefaults
from feedpress.errors import (
    CMSAuthenticationError,
    CMSConnectionError,
    CMSMisconfiguredError,
    CMSResponseError,
)
from feedpress.logging_config import log_service_call

logger = logging.getLogger(__name__)


@dataclass
class PostResult:
    """Post created in WordPress."""

    id: str
    link: str | None
    status: str | None
    slug: str | None = None


@dataclass
class MediaResult:
    """Media item uploaded to WordPress."""

    id: int
    url: str | None
    mime_type: str | None = None


@dataclass
class ConnectionTest:
    """Result of probing the REST index."""

    ok: bool
    response_time_ms: int
    site_name: str | None = None
    namespaces: list[str] = field(default_factory=list)
    error: str | None = None


def _is_html(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "").lower()
    if "text/html" in content_type:
        return True
    return response.text.lstrip()[:1] == "<"


def _error_message(response: httpx.Response) -> str:
    """WordPress puts a readable message in {"code", "message"}; fall back to the body."""
    try:
        body = response.json()
        if isinstance(body, dict) and body.get("message"):
            return f"{body.get('code', 'error')}: {body['message']}"
    except ValueError:
        pass
    return response.text[: CMSDefaults.ERROR_BODY_PREVIEW_CHARS]


class WordPressClient:
    """Thin client for one WordPress site."""

    def __init__(
        self,
        site_url: str,
        username: str,
        password: str,
        timeout: float | None = None,
    ):
        self.site_url = site_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout or get_settings().HTTP_TIMEOUT_SECONDS

    @classmethod
    def from_site(cls, site: models.WordPressSite) -> "WordPressClient":
        return cls(site.url, site.username, site.password)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        with httpx.Client(
            timeout=self.timeout,
            auth=(self.username, self.password),
            headers={"Accept": "application/json"},
        ) as client:
            return client.request(method, f"{self.site_url}{path}", **kwargs)

    def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and return the JSON object body, raising a classified error otherwise."""
        try:
            with log_service_call("wordpress", operation) as metrics:
                response = self._send(method, path, **kwargs)
                metrics["status_code"] = response.status_code
        except httpx.TransportError as e:
            raise CMSConnectionError(f"WordPress {operation} failed: {self.site_url} unreachable ({e})") from e

        status = response.status_code
        if status in (401, 403):
            raise CMSAuthenticationError(
                f"WordPress {operation} rejected credentials (HTTP {status}): {_error_message(response)}",
                status_code=status,
                retryable=False,
            )
        if status >= 300:
            raise CMSResponseError(
                f"WordPress {operation} failed (HTTP {status}): {_error_message(response)}",
                status_code=status,
                retryable=status >= 500 or status in CMSDefaults.RETRYABLE_STATUS_CODES,
            )
        if _is_html(response):
            raise CMSMisconfiguredError(
                f"WordPress {operation} returned HTML instead of JSON; check the site URL and that the REST API is enabled",
                status_code=status,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise CMSMisconfiguredError(
                f"WordPress {operation} returned a non-JSON body", status_code=status
            ) from e
        if not isinstance(body, dict):
            raise CMSMisconfiguredError(
                f"WordPress {operation} returned {type(body).__name__} instead of an object", status_code=status
            )
        return body

    def create_post(self, payload: dict[str, Any]) -> PostResult:
        """Create a post. payload follows the wp/v2/posts schema."""
        body = self._request("create_post", "POST", CMSDefaults.POSTS_PATH, json=payload)
        if body.get("id") is None:
            raise CMSMisconfiguredError("WordPress create_post response has no post id")
        return PostResult(
            id=str(body["id"]),
            link=body.get("link"),
            status=body.get("status"),
            slug=body.get("slug"),
        )

    def upload_media(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        title: str | None = None,
        alt_text: str | None = None,
        caption: str | None = None,
    ) -> MediaResult:
        """Upload an image to the media library."""
        data = {
            key: value
            for key, value in (("title", title), ("alt_text", alt_text), ("caption", caption))
            if value
        }
        body = self._request(
            "upload_media",
            "POST",
            CMSDefaults.MEDIA_PATH,
            files={"file": (filename, content, content_type)},
            data=data,
        )
        if body.get("id") is None:
            raise CMSMisconfiguredError("WordPress upload_media response has no media id")
        return MediaResult(
            id=int(body["id"]),
            url=body.get("source_url"),
            mime_type=body.get("mime_type"),
        )

    def test_connection(self) -> ConnectionTest:
        """Probe the REST index. Never raises for CMS errors."""
        start = time.monotonic()
        try:
            body = self._request("test_connection", "GET", CMSDefaults.INDEX_PATH)
        except (CMSAuthenticationError, CMSResponseError, CMSMisconfiguredError, CMSConnectionError) as e:
            return ConnectionTest(
                ok=False,
                response_time_ms=int((time.monotonic() - start) * 1000),
                error=str(e),
            )
        return ConnectionTest(
            ok=True,
            response_time_ms=int((time.monotonic() - start) * 1000),
            site_name=body.get("name"),
            namespaces=list(body.get("namespaces") or []),
        )
