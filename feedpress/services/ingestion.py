# feedpress/services/ingestion.py
"""
Feed ingestion service.

Fetches RSS/Atom feeds, normalizes entries into feed items, drops entries the
source already has and hands the new ones to the automation evaluator.
"""

import hashlib
import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Any

import feedparser
import httpx
from sqlalchemy.orm import Session
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from feedpress import models
from feedpress.constants import IngestionDefaults
from feedpress.errors import DuplicateIngestion
from feedpress.logging_config import log_service_call, log_stage
from feedpress.models import AutomationTrigger, SourceStatus
from feedpress.services.automation import AutomationEvaluator
from feedpress.services.deduper import Deduper

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


def _strip_html(text: str) -> str:
    if "<" not in text:
        return text.strip()
    return _TAG_RE.sub("", text).strip()


def fallback_guid(title: str, content: str, published: str) -> str:
    """Stable guid for entries that carry neither an id nor a link."""
    digest = hashlib.sha256(f"{title}|{content}|{published}".encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


class IngestionService:
    """Service for ingesting feed entries."""

    def __init__(
        self,
        deduper: Deduper | None = None,
        evaluator: AutomationEvaluator | None = None,
    ):
        self.deduper = deduper or Deduper()
        self.evaluator = evaluator or AutomationEvaluator()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _download(self, feed_url: str) -> httpx.Response:
        headers = {
            "User-Agent": IngestionDefaults.USER_AGENT,
            "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
        }
        with httpx.Client(
            timeout=IngestionDefaults.FEED_FETCH_TIMEOUT_SECONDS,
            headers=headers,
            follow_redirects=True,
        ) as client:
            return client.get(feed_url)

    def _fetch_feed(self, feed_url: str) -> feedparser.FeedParserDict:
        """Fetch and parse a feed."""
        with log_service_call("feed", "fetch") as metrics:
            response = self._download(feed_url)
            metrics["status_code"] = response.status_code
        response.raise_for_status()
        feed = feedparser.parse(response.content)
        if feed.bozo and not feed.entries:
            raise ValueError(f"Unparseable feed: {feed.get('bozo_exception')}")
        return feed

    @staticmethod
    def _normalize_entry(entry: dict) -> dict[str, Any]:
        """Normalize a feed entry to the feed item fields."""
        title = _strip_html(entry.get("title") or "") or IngestionDefaults.UNTITLED

        content = ""
        if entry.get("content"):
            content = entry["content"][0].get("value", "") or ""
        if not content:
            content = entry.get("summary") or entry.get("description") or ""
        content = _strip_html(content)

        published = None
        for key in ("published_parsed", "updated_parsed"):
            if entry.get(key):
                try:
                    published = datetime(*entry[key][:6])
                    break
                except (TypeError, ValueError):
                    continue

        url = (entry.get("link") or "").strip() or None
        published_raw = entry.get("published") or entry.get("updated") or ""
        guid = (
            (entry.get("id") or "").strip()
            or (entry.get("guid") or "").strip()
            or url
            or fallback_guid(title, content, published_raw)
        )

        return {
            "guid": guid,
            "url": url,
            "title": title,
            "content": content,
            "published_at": published or models.utcnow(),
        }

    @staticmethod
    def is_due(source: models.Source, now: datetime | None = None) -> bool:
        """A source is due when fetchInterval seconds have passed since its last fetch."""
        if source.last_fetch_at is None:
            return True
        interval = source.fetch_interval or IngestionDefaults.FETCH_INTERVAL_SECONDS
        now = now or models.utcnow()
        return now - source.last_fetch_at >= timedelta(seconds=interval)

    def ingest_source(
        self,
        db: Session,
        source: models.Source,
        force: bool = False,
        run_automation: bool = True,
    ) -> dict[str, Any]:
        """
        Ingest entries from one source.

        Returns:
            Dict with ingested, skipped_duplicate, errors and the automation summary
        """
        result: dict[str, Any] = {
            "source_id": str(source.id),
            "source_name": source.name,
            "ingested": 0,
            "skipped_duplicate": 0,
            "skipped_not_due": False,
            "errors": [],
            "automation": None,
        }

        if not force and not self.is_due(source):
            result["skipped_not_due"] = True
            return result

        try:
            feed = self._fetch_feed(source.url)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                f"Error fetching feed from {source.name}: {e}",
                extra={"event": "feed_fetch_failed", "source_id": str(source.id)},
            )
            source.status = SourceStatus.ERROR.value
            source.last_error = str(e)
            source.last_error_at = models.utcnow()
            source.last_fetch_at = models.utcnow()
            db.commit()
            result["errors"].append(f"Feed fetch failed: {e}")
            return result

        max_items = source.max_items or IngestionDefaults.MAX_ITEMS_PER_SOURCE
        entries = [self._normalize_entry(entry) for entry in feed.entries[:max_items]]
        new_entries, skipped = self.deduper.filter_new(db, source.id, entries)
        result["skipped_duplicate"] = skipped

        created: list[models.FeedItem] = []
        for entry in new_entries:
            item = models.FeedItem(id=uuid.uuid4(), source_id=source.id, **entry)
            try:
                created.append(self.deduper.repository.insert(db, item))
            except DuplicateIngestion as e:
                # A concurrent run stored it first
                result["skipped_duplicate"] += 1
                logger.info(str(e), extra={"event": "duplicate_ingestion", "source_id": str(source.id)})

        result["ingested"] = len(created)
        source.status = SourceStatus.ACTIVE.value
        source.last_error = None
        source.last_fetch_at = models.utcnow()
        db.commit()

        logger.info(
            f"Ingested {len(created)} items from {source.name} ({result['skipped_duplicate']} duplicates)",
            extra={
                "event": "source_ingested",
                "source_id": str(source.id),
                "items_processed": len(created),
            },
        )

        if run_automation and created:
            evaluation = self.evaluator.evaluate(db, source, created, AutomationTrigger.NEW_FEED_ITEMS)
            result["automation"] = evaluation.to_dict()

        return result

    def ingest_all(
        self,
        db: Session,
        source_ids: list[uuid.UUID] | None = None,
        force: bool = False,
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Ingest every active source (or the given ones).

        A failing source is reported in its own result and does not stop the run.
        """
        started_at = models.utcnow()
        trace_id = trace_id or str(uuid.uuid4())

        query = db.query(models.Source).filter(models.Source.is_active.is_(True))
        if source_ids:
            query = query.filter(models.Source.id.in_(source_ids))
        sources = query.order_by(models.Source.created_at.asc()).all()

        result: dict[str, Any] = {
            "status": "completed",
            "trace_id": trace_id,
            "sources_processed": 0,
            "total_ingested": 0,
            "total_skipped_duplicate": 0,
            "articles_generated": 0,
            "source_results": [],
            "errors": [],
            "duration_ms": 0,
        }

        with log_stage("ingest", trace_id=trace_id):
            for source in sources:
                if source.type != "rss" or not source.url:
                    continue
                if (source.configuration or {}).get("enabled") is False:
                    continue
                source_result = self.ingest_source(db, source, force=force)
                if source_result["skipped_not_due"]:
                    continue
                result["source_results"].append(source_result)
                result["sources_processed"] += 1
                result["total_ingested"] += source_result["ingested"]
                result["total_skipped_duplicate"] += source_result["skipped_duplicate"]
                if source_result["automation"]:
                    result["articles_generated"] += source_result["automation"]["articles_generated"]
                result["errors"].extend(source_result["errors"])

        failed_sources = sum(1 for r in result["source_results"] if r["errors"])
        if failed_sources and failed_sources == result["sources_processed"]:
            result["status"] = "failed"
        elif failed_sources:
            result["status"] = "partial"
        result["duration_ms"] = int((models.utcnow() - started_at).total_seconds() * 1000)
        return result
