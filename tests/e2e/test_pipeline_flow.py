"""
End-to-end tests for the feed to WordPress pipeline.

Drives the API from ingestion through generation to the auto-publish cron,
with the feed, generation service and CMS replaced by fakes.
"""

from unittest.mock import patch

import httpx
import pytest

from feedpress import models
from feedpress.errors import CMSAuthenticationError
from feedpress.services.ingestion import IngestionService
from feedpress.services.wordpress_client import PostResult

FEED_URL = "https://example.com/feed.xml"

RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example</title>
    <link>https://example.com</link>
    <description>Example feed</description>
    <item>
      <title>Central bank holds rates</title>
      <link>https://example.com/rates</link>
      <guid>rates-2026-01</guid>
      <description>The central bank kept rates unchanged.</description>
      <pubDate>Mon, 05 Jan 2026 10:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""


@pytest.fixture
def feed():
    response = httpx.Response(200, content=RSS, request=httpx.Request("GET", FEED_URL))
    with patch.object(IngestionService, "_download", return_value=response) as download:
        yield download


@pytest.fixture
def pipeline_setup(make_source, make_site):
    source = make_source(configuration={"autoGenerate": True, "defaultCategory": "Economy"}, url=FEED_URL)
    site = make_site()
    return source, site


class TestPipelineFlow:
    """Ingest -> generate -> auto-publish through the API."""

    def _ingest(self, client, auth_headers):
        response = client.post("/v1/ingest/run", json={"force": True}, headers=auth_headers)
        assert response.status_code == 200
        return response.json()

    def test_ingest_generate_publish(
        self, client, auth_headers, cron_headers, db_session, feed, pipeline_setup, fake_cms, fake_generator
    ):
        """One feed entry ingested twice becomes one item, one article and one post."""
        first = self._ingest(client, auth_headers)
        second = self._ingest(client, auth_headers)

        assert first["status"] == "completed"
        assert first["total_ingested"] == 1
        assert first["articles_generated"] == 1
        assert second["total_ingested"] == 0
        assert second["total_skipped_duplicate"] == 1
        assert db_session.query(models.FeedItem).count() == 1
        assert fake_generator.generate.call_count == 1

        monitors = client.get("/v1/monitor", headers=auth_headers).json()
        assert monitors["total"] == 1
        assert monitors["stats"]["completed"] == 1
        monitor_id = monitors["items"][0]["id"]

        publish = client.get("/v1/cron/auto-publish", headers=cron_headers)
        assert publish.status_code == 200
        body = publish.json()
        assert body["status"] == "completed"
        assert body["published"] == 1
        assert body["failed"] == 0

        payload = fake_cms.create_post.call_args.args[0]
        assert payload["title"] == "Generated article"
        assert payload["categories"] == ["Economy"]

        detail = client.get(f"/v1/monitor/{monitor_id}", headers=auth_headers).json()
        assert detail["monitor"]["status"] == "completed"
        assert detail["article"]["status"] == "published"
        assert detail["article"]["wordpress_url"] == "https://blog.example.com/?p=101"

        publications = client.get("/v1/publications", params={"status": "completed"}, headers=auth_headers).json()
        assert publications["total"] == 1
        assert publications["items"][0]["external_id"] == "101"
        assert publications["items"][0]["metadata"]["trigger"] == "auto_publish"

        again = client.post("/v1/cron/auto-publish", headers=cron_headers).json()
        assert again["processed"] == 0
        assert fake_cms.create_post.call_count == 1

    def test_cms_auth_failure_then_retry(
        self, client, auth_headers, cron_headers, db_session, feed, pipeline_setup, fake_cms
    ):
        """A 401 from the CMS fails the publication but leaves the article publishable."""
        self._ingest(client, auth_headers)
        fake_cms.create_post.side_effect = CMSAuthenticationError(
            "WordPress create_post rejected credentials (HTTP 401)", status_code=401, retryable=False
        )

        body = client.get("/v1/cron/auto-publish", headers=cron_headers).json()

        assert body["status"] == "partial"
        assert body["failed"] == 1
        assert "401" in body["errors"][0]
        article = db_session.query(models.Article).one()
        assert article.status == "ready_to_publish"
        assert article.wordpress_post_id is None

        failed = client.get("/v1/publications", params={"status": "failed"}, headers=auth_headers).json()
        assert failed["total"] == 1
        publication_id = failed["items"][0]["id"]

        retried = client.post(
            f"/v1/publications/{publication_id}/action", json={"action": "retry"}, headers=auth_headers
        ).json()
        assert retried["status"] == "pending"
        assert retried["retry_count"] == 1

        fake_cms.create_post.side_effect = None
        fake_cms.create_post.return_value = PostResult(id="202", link="https://blog.example.com/?p=202", status="publish")

        body = client.get("/v1/cron/auto-publish", headers=cron_headers).json()

        assert body["status"] == "completed"
        assert body["published"] == 1
        publications = client.get("/v1/publications", headers=auth_headers).json()
        assert publications["total"] == 1
        assert publications["items"][0]["status"] == "completed"
        assert db_session.query(models.Article).one().wordpress_post_id == "202"

    def test_generation_failure_is_reported_and_retryable(
        self, client, auth_headers, db_session, make_source, feed, fake_generator
    ):
        """A failed generation leaves the attempt in error; retry completes it."""
        from feedpress.errors import GenerationFailure

        make_source(url=FEED_URL)
        self._ingest(client, auth_headers)
        item = db_session.query(models.FeedItem).one()
        source = db_session.query(models.Source).one()

        from feedpress.services.generation_monitor import GenerationMonitor

        monitor, _ = GenerationMonitor.create_for_item(db_session, item, source)
        fake_generator.generate.side_effect = GenerationFailure("HTTP 503 from generation service")

        failed = client.post(f"/v1/monitor/{monitor.id}/generate", headers=auth_headers)
        assert failed.status_code == 502

        detail = client.get(f"/v1/monitor/{monitor.id}", headers=auth_headers).json()
        assert detail["monitor"]["status"] == "error"
        assert detail["monitor"]["retry_count"] == 1

        fake_generator.generate.side_effect = None
        retried = client.post(f"/v1/monitor/{monitor.id}/retry", headers=auth_headers)

        assert retried.status_code == 200
        assert retried.json()["monitor"]["status"] == "completed"
        assert retried.json()["article_status"] == "ready_to_publish"
