# tests/conftest.py
"""
Pytest configuration and fixtures.
"""

import os
import uuid
from datetime import timedelta

import pytest

# Set test environment before any feedpress import
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ADMIN_API_KEY", "test-api-key")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("AUTO_PUBLISH_DELAY_SECONDS", "0")


@pytest.fixture
def db_session():
    """Fresh schema on the shared in-memory SQLite engine."""
    from feedpress import models  # noqa: F401
    from feedpress.database import Base, SessionLocal, engine

    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_source(db_session):
    from feedpress import models

    def _make(name="Tech Feed", configuration=None, **kwargs):
        source = models.Source(
            id=uuid.uuid4(),
            name=name,
            url=kwargs.pop("url", "https://example.com/feed.xml"),
            type="rss",
            configuration=configuration if configuration is not None else {},
            **kwargs,
        )
        db_session.add(source)
        db_session.commit()
        return source

    return _make


@pytest.fixture
def make_feed_item(db_session):
    from feedpress import models

    counter = {"n": 0}

    def _make(source, url=None, guid=None, title=None, created_offset_seconds=0, **kwargs):
        counter["n"] += 1
        n = counter["n"]
        item = models.FeedItem(
            id=uuid.uuid4(),
            source_id=source.id,
            url=url if url is not None else f"https://example.com/story-{n}",
            guid=guid if guid is not None else f"guid-{n}",
            title=title or f"Story {n}",
            content=kwargs.pop("content", f"Body of story {n}"),
            created_at=models.utcnow() + timedelta(seconds=created_offset_seconds),
            **kwargs,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make


@pytest.fixture
def make_article(db_session):
    from feedpress import models

    counter = {"n": 0}

    def _make(status="ready_to_publish", source=None, created_offset_seconds=0, **kwargs):
        counter["n"] += 1
        n = counter["n"]
        article = models.Article(
            id=uuid.uuid4(),
            source_id=source.id if source else None,
            title=kwargs.pop("title", f"Generated article {n}"),
            content=kwargs.pop("content", f"<p>Article body {n}</p>"),
            tags=kwargs.pop("tags", ["news"]),
            categories=[],
            status=status,
            created_at=models.utcnow() + timedelta(seconds=created_offset_seconds),
            **kwargs,
        )
        db_session.add(article)
        db_session.commit()
        return article

    return _make


@pytest.fixture
def make_site(db_session):
    from feedpress import models

    def _make(enable_auto_publish=True, default_category=None, **kwargs):
        site = models.WordPressSite(
            id=uuid.uuid4(),
            name=kwargs.pop("name", "Main Blog"),
            url=kwargs.pop("url", "https://blog.example.com"),
            username=kwargs.pop("username", "editor"),
            password=kwargs.pop("password", "app-password"),
            default_category=default_category,
            enable_auto_publish=enable_auto_publish,
            **kwargs,
        )
        db_session.add(site)
        db_session.commit()
        return site

    return _make


# -----------------------------------------------------------------------------
# API fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def fake_generator():
    """Generation client whose generate() is a mock returning a fixed article."""
    from unittest.mock import MagicMock

    from feedpress.services.generation_client import GeneratedArticle, GenerationClient

    client = GenerationClient(base_url="https://gen.example.com")
    client.generate = MagicMock(return_value=GeneratedArticle(
        title="Generated article",
        content="<p>Generated body</p>",
        slug="generated-article",
        tags=["news"],
    ))
    return client


@pytest.fixture
def fake_image_client():
    from unittest.mock import MagicMock

    return MagicMock()


@pytest.fixture
def fake_cms():
    from unittest.mock import MagicMock

    from feedpress.services.wordpress_client import PostResult

    cms = MagicMock()
    cms.create_post.return_value = PostResult(id="101", link="https://blog.example.com/?p=101", status="publish")
    return cms


@pytest.fixture
def client(db_session, fake_generator, fake_image_client, fake_cms):
    """TestClient sharing the test session, with outbound clients replaced."""
    from fastapi.testclient import TestClient

    from feedpress.database import get_db
    from feedpress.dependencies import get_cms_factory, get_generation_client, get_image_pipeline
    from feedpress.main import app
    from feedpress.routers.sites import clear_connection_cache
    from feedpress.services.image_attachment import ImageAttachmentPipeline

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_generation_client] = lambda: fake_generator
    app.dependency_overrides[get_image_pipeline] = lambda: ImageAttachmentPipeline(client=fake_image_client)
    app.dependency_overrides[get_cms_factory] = lambda: (lambda site: fake_cms)
    clear_connection_cache()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Auth headers for admin endpoints."""
    return {"X-API-Key": "test-api-key"}


@pytest.fixture
def cron_headers():
    return {"Authorization": "Bearer test-cron-secret"}
