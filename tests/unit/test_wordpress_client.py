"""
Unit tests for the WordPress REST client error classification.
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from feedpress.errors import (
    CMSAuthenticationError,
    CMSConnectionError,
    CMSMisconfiguredError,
    CMSResponseError,
    PublishFailure,
)
from feedpress.services.wordpress_client import WordPressClient


def _mock_client(mock_client_cls, response):
    client = MagicMock()
    client.request.return_value = response
    mock_client_cls.return_value.__enter__.return_value = client
    mock_client_cls.return_value.__exit__.return_value = False
    return client


@pytest.fixture
def wp():
    return WordPressClient("https://blog.example.com/", "editor", "app-password", timeout=5)


class TestCreatePost:
    """Tests for create_post."""

    @patch("feedpress.services.wordpress_client.httpx.Client")
    def test_success(self, mock_client_cls, wp):
        client = _mock_client(mock_client_cls, httpx.Response(
            201, json={"id": 101, "link": "https://blog.example.com/?p=101", "status": "publish"}
        ))

        post = wp.create_post({"title": "T", "content": "C", "status": "publish"})

        assert post.id == "101"
        assert post.link == "https://blog.example.com/?p=101"
        method, url = client.request.call_args.args
        assert method == "POST"
        assert url == "https://blog.example.com/wp-json/wp/v2/posts"
        assert mock_client_cls.call_args.kwargs["auth"] == ("editor", "app-password")

    @pytest.mark.parametrize("status", [401, 403])
    @patch("feedpress.services.wordpress_client.httpx.Client")
    def test_auth_failure(self, mock_client_cls, status, wp):
        _mock_client(mock_client_cls, httpx.Response(
            status, json={"code": "rest_cannot_create", "message": "Sorry, you are not allowed to create posts."}
        ))

        with pytest.raises(CMSAuthenticationError) as exc_info:
            wp.create_post({"title": "T"})

        assert exc_info.value.status_code == status
        assert exc_info.value.retryable is False
        assert "not allowed" in str(exc_info.value)

    @patch("feedpress.services.wordpress_client.httpx.Client")
    def test_html_body_is_misconfiguration(self, mock_client_cls, wp):
        _mock_client(mock_client_cls, httpx.Response(
            200, text="<!DOCTYPE html><html><body>Login</body></html>", headers={"content-type": "text/html"}
        ))

        with pytest.raises(CMSMisconfiguredError, match="HTML"):
            wp.create_post({"title": "T"})

    @patch("feedpress.services.wordpress_client.httpx.Client")
    def test_html_without_content_type(self, mock_client_cls, wp):
        _mock_client(mock_client_cls, httpx.Response(200, text="  <html>maintenance</html>"))

        with pytest.raises(CMSMisconfiguredError):
            wp.create_post({"title": "T"})

    @pytest.mark.parametrize("status,retryable", [(500, True), (502, True), (429, True), (404, False), (400, False)])
    @patch("feedpress.services.wordpress_client.httpx.Client")
    def test_response_errors(self, mock_client_cls, status, retryable, wp):
        _mock_client(mock_client_cls, httpx.Response(status, text="error"))

        with pytest.raises(CMSResponseError) as exc_info:
            wp.create_post({"title": "T"})

        assert exc_info.value.status_code == status
        assert exc_info.value.retryable is retryable

    @patch("feedpress.services.wordpress_client.httpx.Client")
    def test_missing_post_id(self, mock_client_cls, wp):
        _mock_client(mock_client_cls, httpx.Response(200, json={"status": "publish"}))

        with pytest.raises(CMSMisconfiguredError, match="no post id"):
            wp.create_post({"title": "T"})

    def test_transport_error(self, wp):
        with patch.object(wp, "_send", side_effect=httpx.ConnectTimeout("timed out")):
            with pytest.raises(CMSConnectionError) as exc_info:
                wp.create_post({"title": "T"})

        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value, PublishFailure)


class TestUploadMedia:
    """Tests for upload_media."""

    @patch("feedpress.services.wordpress_client.httpx.Client")
    def test_multipart_upload(self, mock_client_cls, wp):
        client = _mock_client(mock_client_cls, httpx.Response(
            201, json={"id": 77, "source_url": "https://blog.example.com/wp-content/a.jpg", "mime_type": "image/jpeg"}
        ))

        media = wp.upload_media(b"\xff\xd8", filename="a.jpg", content_type="image/jpeg", alt_text="Alt")

        assert media.id == 77
        assert media.url.endswith("a.jpg")
        kwargs = client.request.call_args.kwargs
        assert kwargs["files"] == {"file": ("a.jpg", b"\xff\xd8", "image/jpeg")}
        assert kwargs["data"] == {"alt_text": "Alt"}


class TestConnection:
    """Tests for test_connection."""

    @patch("feedpress.services.wordpress_client.httpx.Client")
    def test_ok(self, mock_client_cls, wp):
        _mock_client(mock_client_cls, httpx.Response(200, json={"name": "Blog", "namespaces": ["wp/v2"]}))

        result = wp.test_connection()

        assert result.ok is True
        assert result.site_name == "Blog"
        assert result.namespaces == ["wp/v2"]

    @patch("feedpress.services.wordpress_client.httpx.Client")
    def test_failure_is_reported_not_raised(self, mock_client_cls, wp):
        _mock_client(mock_client_cls, httpx.Response(401, json={"code": "invalid", "message": "Bad password"}))

        result = wp.test_connection()

        assert result.ok is False
        assert "Bad password" in result.error
