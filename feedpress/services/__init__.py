# feedpress/services/__init__.py
"""
Business logic services.
"""

from feedpress.services.article_lifecycle import ArticleLifecycle
from feedpress.services.auto_publisher import AutoPublisher, SchedulerTicker
from feedpress.services.automation import AutomationEvaluator, AutomationRuleRepository
from feedpress.services.deduper import Deduper, FeedItemRepository
from feedpress.services.generation_client import GenerationClient
from feedpress.services.generation_monitor import GenerationMonitor
from feedpress.services.image_attachment import ImageAttachmentPipeline, ImageClient
from feedpress.services.ingestion import IngestionService
from feedpress.services.publication import PublicationService
from feedpress.services.wordpress_client import WordPressClient

__all__ = [
    "ArticleLifecycle",
    "AutoPublisher",
    "SchedulerTicker",
    "AutomationEvaluator",
    "AutomationRuleRepository",
    "Deduper",
    "FeedItemRepository",
    "GenerationClient",
    "GenerationMonitor",
    "ImageAttachmentPipeline",
    "ImageClient",
    "IngestionService",
    "PublicationService",
    "WordPressClient",
]
