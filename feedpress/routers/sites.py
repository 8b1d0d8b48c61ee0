# feedpress/routers/sites.py
"""
WordPress site endpoints.

GET /v1/sites/{id}/test-connection - Probe the site's REST API (cached briefly)
"""

import threading
import uuid
from typing import Callable

from cachetools import TTLCache
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from feedpress import models
from feedpress.auth import require_admin_key
from feedpress.constants import CMSDefaults
from feedpress.database import get_db
from feedpress.dependencies import get_cms_factory
from feedpress.errors import RecordNotFound
from feedpress.schemas.articles import ConnectionTestResponse
from feedpress.services.wordpress_client import ConnectionTest, WordPressClient

router = APIRouter(prefix="/v1/sites", tags=["sites"])

# Keyed on the credentials too, so edited sites are probed again
_connection_cache: TTLCache = TTLCache(maxsize=256, ttl=CMSDefaults.CONNECTION_TEST_CACHE_SECONDS)
_cache_lock = threading.Lock()


def clear_connection_cache() -> None:
    with _cache_lock:
        _connection_cache.clear()


@router.get("/{site_id}/test-connection", response_model=ConnectionTestResponse)
def test_connection(
    site_id: uuid.UUID,
    refresh: bool = Query(False, description="Bypass the cached result"),
    db: Session = Depends(get_db),
    cms_factory: Callable[[models.WordPressSite], WordPressClient] = Depends(get_cms_factory),
    _: None = Depends(require_admin_key),
) -> ConnectionTestResponse:
    site = db.query(models.WordPressSite).filter(models.WordPressSite.id == site_id).first()
    if not site:
        raise RecordNotFound("WordPressSite", site_id)

    key = (str(site.id), site.url, site.username, site.password)
    cached = False
    with _cache_lock:
        probe: ConnectionTest | None = None if refresh else _connection_cache.get(key)
    if probe is not None:
        cached = True
    else:
        probe = cms_factory(site).test_connection()
        with _cache_lock:
            _connection_cache[key] = probe

    return ConnectionTestResponse(
        site_id=site.id,
        ok=probe.ok,
        response_time_ms=probe.response_time_ms,
        site_name=probe.site_name,
        namespaces=probe.namespaces,
        error=probe.error,
        cached=cached,
    )
