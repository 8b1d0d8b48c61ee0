"""
Unit tests for feed item deduplication.
"""

import uuid

import pytest
from sqlalchemy import text

from feedpress import models
from feedpress.errors import DuplicateIngestion
from feedpress.services.deduper import Deduper, FeedItemRepository


def _drop_unique_indexes(db):
    """Simulate rows loaded before the unique indexes existed."""
    db.execute(text("DROP INDEX uq_feed_items_source_url"))
    db.execute(text("DROP INDEX uq_feed_items_source_guid"))
    db.commit()


class TestKeysFor:
    """Tests for key extraction."""

    def test_blank_keys_are_missing(self):
        assert Deduper.keys_for({"url": "  ", "guid": ""}) == (None, None)

    def test_keys_are_stripped(self):
        assert Deduper.keys_for({"url": " https://a/1 ", "guid": "g1"}) == ("https://a/1", "g1")


class TestFilterNew:
    """Tests for batch filtering."""

    def test_drops_items_already_stored(self, db_session, make_source, make_feed_item):
        source = make_source()
        make_feed_item(source, url="https://example.com/a", guid="a")

        new, skipped = Deduper().filter_new(db_session, source.id, [
            {"url": "https://example.com/a", "guid": "other"},
            {"url": "https://example.com/other", "guid": "a"},
            {"url": "https://example.com/b", "guid": "b"},
        ])

        assert [item["guid"] for item in new] == ["b"]
        assert skipped == 2

    def test_drops_repeats_within_batch(self, db_session, make_source):
        source = make_source()

        new, skipped = Deduper().filter_new(db_session, source.id, [
            {"url": "https://example.com/a", "guid": "a"},
            {"url": "https://example.com/a", "guid": "a-again"},
            {"url": "https://example.com/c", "guid": "a"},
        ])

        assert len(new) == 1
        assert skipped == 2

    def test_other_sources_do_not_count(self, db_session, make_source, make_feed_item):
        first = make_source(name="First")
        second = make_source(name="Second")
        make_feed_item(first, url="https://example.com/a", guid="a")

        new, skipped = Deduper().filter_new(db_session, second.id, [
            {"url": "https://example.com/a", "guid": "a"},
        ])

        assert len(new) == 1
        assert skipped == 0

    def test_items_without_keys_pass_through(self, db_session, make_source):
        source = make_source()

        new, skipped = Deduper().filter_new(db_session, source.id, [{"title": "x"}, {"title": "y"}])

        assert len(new) == 2
        assert skipped == 0


class TestRepositoryInsert:
    """Tests for the storage backstop."""

    def test_duplicate_url_raises(self, db_session, make_source, make_feed_item):
        source = make_source()
        make_feed_item(source, url="https://example.com/a", guid="a")

        duplicate = models.FeedItem(
            id=uuid.uuid4(),
            source_id=source.id,
            url="https://example.com/a",
            guid="b",
            title="Again",
            content="",
        )
        with pytest.raises(DuplicateIngestion) as exc_info:
            FeedItemRepository().insert(db_session, duplicate)

        assert exc_info.value.url == "https://example.com/a"
        assert db_session.query(models.FeedItem).count() == 1

    def test_insert_returns_refreshed_row(self, db_session, make_source):
        source = make_source()
        item = models.FeedItem(source_id=source.id, url="https://example.com/new", guid="n", title="New")

        stored = FeedItemRepository().insert(db_session, item)

        assert stored.id is not None
        assert stored.processed is False


class TestReconcile:
    """Tests for reconciliation of legacy duplicates."""

    def test_keeps_earliest_row(self, db_session, make_source, make_feed_item):
        _drop_unique_indexes(db_session)
        source = make_source()
        oldest = make_feed_item(source, url="https://example.com/a", guid="a1", created_offset_seconds=-30)
        make_feed_item(source, url="https://example.com/a", guid="a2", created_offset_seconds=-20)
        make_feed_item(source, url="https://example.com/a", guid="a3", created_offset_seconds=-10)

        report = Deduper().reconcile(db_session)

        remaining = db_session.query(models.FeedItem).all()
        assert [row.id for row in remaining] == [oldest.id]
        assert report.total_removed == 2
        assert report.url_groups[0].kept_id == str(oldest.id)
        assert report.remaining_url_duplicates == 0

    def test_guid_pass_skips_rows_removed_by_url_pass(self, db_session, make_source, make_feed_item):
        _drop_unique_indexes(db_session)
        source = make_source()
        keep = make_feed_item(source, url="https://example.com/a", guid="same", created_offset_seconds=-20)
        make_feed_item(source, url="https://example.com/a", guid="same", created_offset_seconds=-10)
        make_feed_item(source, url="https://example.com/b", guid="same", created_offset_seconds=-5)

        report = Deduper().reconcile(db_session)

        assert db_session.query(models.FeedItem).one().id == keep.id
        assert report.total_removed == 2
        assert report.remaining_guid_duplicates == 0

    def test_is_idempotent(self, db_session, make_source, make_feed_item):
        _drop_unique_indexes(db_session)
        source = make_source()
        make_feed_item(source, url="https://example.com/a", guid="a1")
        make_feed_item(source, url="https://example.com/a", guid="a2", created_offset_seconds=5)

        Deduper().reconcile(db_session)
        second = Deduper().reconcile(db_session)

        assert second.total_removed == 0
        assert second.url_groups == []
        assert db_session.query(models.FeedItem).count() == 1

    def test_groups_are_per_source(self, db_session, make_source, make_feed_item):
        _drop_unique_indexes(db_session)
        first = make_source(name="First")
        second = make_source(name="Second")
        make_feed_item(first, url="https://example.com/a", guid="a")
        make_feed_item(second, url="https://example.com/a", guid="a")

        report = Deduper().reconcile(db_session)

        assert report.total_removed == 0
        assert db_session.query(models.FeedItem).count() == 2
