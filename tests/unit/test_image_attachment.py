"""
Unit tests for featured image attachment.
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from feedpress import models
from feedpress.errors import CMSResponseError, ImageUploadFailure
from feedpress.services.image_attachment import ImageAttachmentPipeline, ImageClient, ImageResult
from feedpress.services.wordpress_client import MediaResult


def _image(db, article, status, **kwargs):
    image = models.FeaturedImage(article_id=article.id, status=status, **kwargs)
    db.add(image)
    db.commit()
    return image


class TestImageClient:
    """Tests for the image service client."""

    @patch("feedpress.services.image_attachment.httpx.Client")
    def test_request_image_parses_response(self, mock_client_cls):
        client = MagicMock()
        client.post.return_value = httpx.Response(200, json={
            "image": {"url": "https://img.example.com/a.jpg", "filename": "a.jpg", "altText": "A"},
            "metadata": {"wasGenerated": True, "provider": "diffusion"},
        })
        mock_client_cls.return_value.__enter__.return_value = client

        result = ImageClient(base_url="https://img.example.com/api").request_image("id-1", "a cat")

        assert result.url == "https://img.example.com/a.jpg"
        assert result.was_generated is True
        assert result.provider == "diffusion"
        assert client.post.call_args.kwargs["json"]["aiPrompt"] == "a cat"

    @patch("feedpress.services.image_attachment.httpx.Client")
    def test_missing_url_raises(self, mock_client_cls):
        client = MagicMock()
        client.post.return_value = httpx.Response(200, json={"image": {}})
        mock_client_cls.return_value.__enter__.return_value = client

        with pytest.raises(ImageUploadFailure, match="no image url"):
            ImageClient(base_url="https://img.example.com/api").request_image("id-1", "a cat")

    def test_unconfigured_raises(self):
        client = ImageClient()
        client.base_url = None

        with pytest.raises(ImageUploadFailure, match="not configured"):
            client.request_image("id-1", "a cat")

    @patch("feedpress.services.image_attachment.httpx.Client")
    def test_download_guesses_content_type(self, mock_client_cls):
        client = MagicMock()
        client.get.return_value = httpx.Response(
            200, content=b"png-bytes", headers={"content-type": "application/octet-stream"}
        )
        mock_client_cls.return_value.__enter__.return_value = client

        content, content_type = ImageClient(base_url="x").download("https://img.example.com/pic.png")

        assert content == b"png-bytes"
        assert content_type == "image/png"


class TestRequestImage:
    """Tests for ImageAttachmentPipeline.request_image."""

    def test_success_moves_article_forward(self, db_session, make_article):
        article = make_article(status="generated")
        client = MagicMock()
        client.request_image.return_value = ImageResult(url="https://img.example.com/a.jpg", provider="search")

        image = ImageAttachmentPipeline(client=client).request_image(db_session, article, "a cat")

        assert image.status == "found"
        assert image.url == "https://img.example.com/a.jpg"
        assert article.status == "generated_with_image"

    def test_finalize_goes_to_ready(self, db_session, make_article):
        article = make_article(status="generated")
        client = MagicMock()
        client.request_image.return_value = ImageResult(url="https://img.example.com/a.jpg", was_generated=True)

        image = ImageAttachmentPipeline(client=client).request_image(db_session, article, "a cat", finalize=True)

        assert image.status == "generated"
        assert article.status == "ready_to_publish"

    def test_failure_returns_article_to_generated(self, db_session, make_article):
        article = make_article(status="generated")
        client = MagicMock()
        client.request_image.side_effect = ImageUploadFailure("quota exceeded")

        with pytest.raises(ImageUploadFailure):
            ImageAttachmentPipeline(client=client).request_image(db_session, article, "a cat")

        assert article.status == "generated"
        image = db_session.query(models.FeaturedImage).one()
        assert image.status == "error"
        assert image.error == "quota exceeded"


class TestEnsureUploaded:
    """Tests for ImageAttachmentPipeline.ensure_uploaded."""

    def test_uploads_found_image(self, db_session, make_article):
        article = make_article()
        image = _image(db_session, article, "found", url="https://img.example.com/photo.jpg", alt_text="Alt")
        client = MagicMock()
        client.download.return_value = (b"jpeg", "image/jpeg")
        cms = MagicMock()
        cms.upload_media.return_value = MediaResult(id=77, url="https://blog.example.com/photo.jpg")

        media_id = ImageAttachmentPipeline(client=client).ensure_uploaded(db_session, image, cms)

        assert media_id == 77
        assert image.status == "uploaded"
        assert image.wordpress_media_id == 77
        assert cms.upload_media.call_args.kwargs["filename"] == "photo.jpg"

    def test_reuses_uploaded_media(self, db_session, make_article):
        article = make_article()
        image = _image(db_session, article, "uploaded", url="https://img.example.com/a.jpg", wordpress_media_id=12)
        cms = MagicMock()

        media_id = ImageAttachmentPipeline(client=MagicMock()).ensure_uploaded(db_session, image, cms)

        assert media_id == 12
        cms.upload_media.assert_not_called()

    def test_cms_error_becomes_image_failure(self, db_session, make_article):
        article = make_article()
        image = _image(db_session, article, "generated", url="https://img.example.com/a.jpg")
        client = MagicMock()
        client.download.return_value = (b"jpeg", "image/jpeg")
        cms = MagicMock()
        cms.upload_media.side_effect = CMSResponseError("HTTP 413", status_code=413)

        with pytest.raises(ImageUploadFailure, match="HTTP 413"):
            ImageAttachmentPipeline(client=client).ensure_uploaded(db_session, image, cms)

        assert image.status == "generated"

    @pytest.mark.parametrize("status", ["pending", "error"])
    def test_unusable_status_raises(self, db_session, make_article, status):
        article = make_article()
        image = _image(db_session, article, status)

        with pytest.raises(ImageUploadFailure, match="not uploadable"):
            ImageAttachmentPipeline(client=MagicMock()).ensure_uploaded(db_session, image, MagicMock())

    def test_latest_usable_image_skips_errors(self, db_session, make_article):
        article = make_article()
        found = _image(db_session, article, "found", url="https://img.example.com/a.jpg")
        _image(db_session, article, "error")

        assert ImageAttachmentPipeline.latest_usable_image(db_session, article.id).id == found.id
