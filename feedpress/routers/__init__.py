# feedpress/routers/__init__.py
"""
API routers for v1 endpoints.
"""

from feedpress.routers.admin import router as admin_router
from feedpress.routers.articles import router as articles_router
from feedpress.routers.automation import router as automation_router
from feedpress.routers.cron import router as cron_router
from feedpress.routers.monitor import router as monitor_router
from feedpress.routers.sites import router as sites_router

__all__ = [
    "admin_router",
    "articles_router",
    "automation_router",
    "cron_router",
    "monitor_router",
    "sites_router",
]
