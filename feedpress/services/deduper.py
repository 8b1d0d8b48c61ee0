# feedpress/services/deduper.py
"""
Deduplication of ingested feed items.

Dedupe rules (per source):
1. Same url  -> same item
2. Same guid -> same item

The write path filters each fetched batch before insert; the unique indexes
on feed_items are the storage backstop for concurrent fetch runs. Rows that
got in anyway (runs that raced, data loaded before the indexes existed) are
removed by reconcile(), which keeps the earliest-created row of each group.
Both paths go through FeedItemRepository so they share one definition of
"duplicate".
"""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from feedpress import models
from feedpress.errors import DuplicateIngestion

logger = logging.getLogger(__name__)


class FeedItemRepository:
    """All feed item reads and writes that depend on uniqueness."""

    # Columns that identify an item within a source, in reconciliation order
    UNIQUE_FIELDS = ("url", "guid")

    def existing_keys(
        self,
        db: Session,
        source_id: uuid.UUID,
        urls: list[str],
        guids: list[str],
    ) -> tuple[set[str], set[str]]:
        """Return the subset of urls and guids already stored for the source."""
        found_urls: set[str] = set()
        found_guids: set[str] = set()
        if urls:
            rows = (
                db.query(models.FeedItem.url)
                .filter(models.FeedItem.source_id == source_id, models.FeedItem.url.in_(urls))
                .all()
            )
            found_urls = {row.url for row in rows}
        if guids:
            rows = (
                db.query(models.FeedItem.guid)
                .filter(models.FeedItem.source_id == source_id, models.FeedItem.guid.in_(guids))
                .all()
            )
            found_guids = {row.guid for row in rows}
        return found_urls, found_guids

    def find_existing(
        self,
        db: Session,
        source_id: uuid.UUID,
        url: str | None,
        guid: str | None,
    ) -> models.FeedItem | None:
        """Earliest stored item matching either key."""
        for column, value in ((models.FeedItem.url, url), (models.FeedItem.guid, guid)):
            if not value:
                continue
            existing = (
                db.query(models.FeedItem)
                .filter(models.FeedItem.source_id == source_id, column == value)
                .order_by(models.FeedItem.created_at.asc())
                .first()
            )
            if existing:
                return existing
        return None

    def insert(self, db: Session, item: models.FeedItem) -> models.FeedItem:
        """
        Insert and commit one item.

        Raises DuplicateIngestion if a unique index rejects it.
        """
        db.add(item)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise DuplicateIngestion(item.source_id, item.guid, item.url) from e
        db.refresh(item)
        return item

    def duplicate_groups(self, db: Session, field_name: str) -> list[tuple[uuid.UUID, str, int]]:
        """(source_id, key, count) for every key stored more than once per source."""
        column = getattr(models.FeedItem, field_name)
        rows = (
            db.query(models.FeedItem.source_id, column, func.count(models.FeedItem.id))
            .filter(column.isnot(None))
            .group_by(models.FeedItem.source_id, column)
            .having(func.count(models.FeedItem.id) > 1)
            .order_by(func.count(models.FeedItem.id).desc())
            .all()
        )
        return [(row[0], row[1], row[2]) for row in rows]

    def rows_for_key(
        self,
        db: Session,
        source_id: uuid.UUID,
        field_name: str,
        value: str,
    ) -> list[models.FeedItem]:
        """All rows sharing a key, oldest first."""
        column = getattr(models.FeedItem, field_name)
        return (
            db.query(models.FeedItem)
            .filter(models.FeedItem.source_id == source_id, column == value)
            .order_by(models.FeedItem.created_at.asc(), models.FeedItem.fetched_at.asc())
            .all()
        )


@dataclass
class DuplicateGroup:
    """One (source, key) group collapsed by reconciliation."""

    key_field: str
    source_id: str
    key: str
    kept_id: str
    removed: int
    removed_ids: list[str] = field(default_factory=list)


@dataclass
class ReconciliationReport:
    """Result of a reconciliation pass."""

    total_removed: int = 0
    url_groups: list[DuplicateGroup] = field(default_factory=list)
    guid_groups: list[DuplicateGroup] = field(default_factory=list)
    remaining_url_duplicates: int = 0
    remaining_guid_duplicates: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class Deduper:
    """Deduplication service."""

    def __init__(self, repository: FeedItemRepository | None = None):
        self.repository = repository or FeedItemRepository()

    @staticmethod
    def keys_for(item: dict) -> tuple[str | None, str | None]:
        """(url, guid) of a normalized entry, blanks treated as missing."""
        url = (item.get("url") or "").strip() or None
        guid = (item.get("guid") or "").strip() or None
        return url, guid

    def filter_new(
        self,
        db: Session,
        source_id: uuid.UUID,
        items: list[dict],
    ) -> tuple[list[dict], int]:
        """
        Drop items already stored for the source, or repeated within the batch.

        Returns:
            Tuple of (new_items, duplicates_skipped)
        """
        keyed = [(item, *self.keys_for(item)) for item in items]
        stored_urls, stored_guids = self.repository.existing_keys(
            db,
            source_id,
            urls=[url for _, url, _ in keyed if url],
            guids=[guid for _, _, guid in keyed if guid],
        )

        seen_urls = set(stored_urls)
        seen_guids = set(stored_guids)
        new_items: list[dict] = []
        skipped = 0

        for item, url, guid in keyed:
            if (url and url in seen_urls) or (guid and guid in seen_guids):
                skipped += 1
                continue
            if url:
                seen_urls.add(url)
            if guid:
                seen_guids.add(guid)
            new_items.append(item)

        return new_items, skipped

    def reconcile(self, db: Session) -> ReconciliationReport:
        """
        Collapse duplicate rows, keeping the earliest-created of each group.

        Groups by (source_id, url) first, then (source_id, guid), skipping rows
        already deleted by the url pass. Safe to re-run: a clean table yields
        an empty report.
        """
        report = ReconciliationReport()

        # Both group lists are taken before any deletion
        groups_by_field = {
            field_name: self.repository.duplicate_groups(db, field_name)
            for field_name in FeedItemRepository.UNIQUE_FIELDS
        }
        logger.info(
            f"Found {len(groups_by_field['url'])} duplicate URL groups, "
            f"{len(groups_by_field['guid'])} duplicate GUID groups",
            extra={"event": "dedup_scan"},
        )

        deleted: set[uuid.UUID] = set()
        try:
            for field_name, groups in groups_by_field.items():
                for source_id, key, _count in groups:
                    rows = [
                        row
                        for row in self.repository.rows_for_key(db, source_id, field_name, key)
                        if row.id not in deleted
                    ]
                    if len(rows) < 2:
                        continue

                    keep, extras = rows[0], rows[1:]
                    for row in extras:
                        db.delete(row)
                        deleted.add(row.id)
                    db.flush()

                    group = DuplicateGroup(
                        key_field=field_name,
                        source_id=str(source_id),
                        key=key,
                        kept_id=str(keep.id),
                        removed=len(extras),
                        removed_ids=[str(row.id) for row in extras],
                    )
                    getattr(report, f"{field_name}_groups").append(group)
                    report.total_removed += len(extras)
                    logger.info(
                        f"Removed {len(extras)} duplicate(s) for {field_name}={key[:80]}",
                        extra={"event": "dedup_group_removed", "source_id": str(source_id)},
                    )
            db.commit()
        except Exception:
            db.rollback()
            raise

        report.remaining_url_duplicates = len(self.repository.duplicate_groups(db, "url"))
        report.remaining_guid_duplicates = len(self.repository.duplicate_groups(db, "guid"))

        logger.info(
            f"Reconciliation removed {report.total_removed} rows "
            f"(remaining: {report.remaining_url_duplicates} url, {report.remaining_guid_duplicates} guid)",
            extra={"event": "dedup_reconciled", "items_processed": report.total_removed},
        )
        return report
