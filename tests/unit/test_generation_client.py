"""
Unit tests for the generation service client.
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from feedpress.errors import GenerationFailure, TruncatedUnrepairable
from feedpress.services.generation_client import (
    GenerationClient,
    GenerationRequest,
    normalize_generation_response,
)


def _mock_client(mock_client_cls, response=None, side_effect=None):
    client = MagicMock()
    if side_effect is not None:
        client.post.side_effect = side_effect
    else:
        client.post.return_value = response
    mock_client_cls.return_value.__enter__.return_value = client
    mock_client_cls.return_value.__exit__.return_value = False
    return client


class TestNormalizeGenerationResponse:
    """Tests for response shape normalization."""

    def test_flat_shape(self):
        article = normalize_generation_response({
            "title": " Rates rise ",
            "content": "<p>Body</p>",
            "slug": "rates-rise",
            "tags": ["economy", "", 3],
        })

        assert article.title == "Rates rise"
        assert article.slug == "rates-rise"
        assert article.tags == ["economy"]
        assert article.response_version == 2
        assert article.image_hint is None

    def test_legacy_nested_shape(self):
        article = normalize_generation_response({
            "article": {
                "basic_data": {"title": "Old shape", "slug": "old-shape", "tags": ["a"]},
                "seo_critical": {"meta_description": "desc"},
                "content": "<p>Body</p>",
                "featured_image": {"ai_prompt": "a skyline", "alt_text": "Skyline", "filename": "skyline.jpg"},
            }
        })

        assert article.title == "Old shape"
        assert article.meta_description == "desc"
        assert article.response_version == 1
        assert article.image_hint.ai_prompt == "a skyline"
        assert article.image_hint.filename == "skyline.jpg"

    def test_missing_content_fails(self):
        with pytest.raises(GenerationFailure):
            normalize_generation_response({"title": "Only a title"})

    def test_legacy_missing_title_fails(self):
        with pytest.raises(GenerationFailure):
            normalize_generation_response({"article": {"content": "Body"}})


class TestGenerationRequest:
    """Tests for the outgoing payload."""

    def test_payload_includes_source_when_present(self):
        payload = GenerationRequest(topic="Topic", source_content="text", source_url="https://a/1").to_payload()

        assert payload["topic"] == "Topic"
        assert "prompt" not in payload
        assert payload["sourceContent"] == "text"
        assert payload["sourceUrl"] == "https://a/1"
        assert payload["responseVersion"] == 2

    def test_payload_omits_missing_source(self):
        payload = GenerationRequest(topic="Topic").to_payload()

        assert "sourceContent" not in payload
        assert "sourceUrl" not in payload


class TestGenerationClient:
    """Tests for GenerationClient.generate."""

    @patch("feedpress.services.generation_client.httpx.Client")
    def test_generate_parses_response(self, mock_client_cls):
        body = json.dumps({"title": "Title", "content": "<p>Body</p>", "tags": ["x"]})
        client = _mock_client(mock_client_cls, httpx.Response(200, text=body))

        generator = GenerationClient(base_url="https://gen.example.com/generate", api_key="secret")
        article = generator.generate(GenerationRequest(topic="Title"))

        assert article.title == "Title"
        assert article.tags == ["x"]
        url = client.post.call_args.args[0]
        assert url == "https://gen.example.com/generate"
        headers = mock_client_cls.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer secret"

    @patch("feedpress.services.generation_client.httpx.Client")
    def test_generate_repairs_truncated_response(self, mock_client_cls):
        _mock_client(mock_client_cls, httpx.Response(200, text='{"title":"Title","content":"<p>Body</p>","tags":["x'))

        article = GenerationClient(base_url="https://gen.example.com").generate(GenerationRequest(topic="Title"))

        assert article.content == "<p>Body</p>"
        assert article.tags == ["x"]

    @patch("feedpress.services.generation_client.httpx.Client")
    def test_unrepairable_response_raises(self, mock_client_cls):
        _mock_client(mock_client_cls, httpx.Response(200, text="I cannot write that article."))

        with pytest.raises(TruncatedUnrepairable) as exc_info:
            GenerationClient(base_url="https://gen.example.com").generate(GenerationRequest(topic="Title"))

        assert exc_info.value.raw_text == "I cannot write that article."

    @patch("feedpress.services.generation_client.httpx.Client")
    def test_http_error_raises(self, mock_client_cls):
        _mock_client(mock_client_cls, httpx.Response(503, text="overloaded"))

        with pytest.raises(GenerationFailure, match="HTTP 503"):
            GenerationClient(base_url="https://gen.example.com").generate(GenerationRequest(topic="Title"))

    def test_transport_error_raises_generation_failure(self):
        generator = GenerationClient(base_url="https://gen.example.com")

        with patch.object(generator, "_post", side_effect=httpx.ConnectError("refused")):
            with pytest.raises(GenerationFailure, match="unreachable"):
                generator.generate(GenerationRequest(topic="Title"))

    def test_unconfigured_url_raises(self):
        generator = GenerationClient()
        generator.base_url = None

        with pytest.raises(GenerationFailure, match="not configured"):
            generator.generate_text(GenerationRequest(topic="Title"))
