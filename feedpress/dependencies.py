# feedpress/dependencies.py
"""
FastAPI dependencies for the outbound service clients.

Routers never build clients directly so tests can swap them through
app.dependency_overrides.
"""

from typing import Callable

from fastapi import Depends

from feedpress import models
from feedpress.services.auto_publisher import AutoPublisher
from feedpress.services.automation import AutomationEvaluator
from feedpress.services.generation_client import GenerationClient
from feedpress.services.image_attachment import ImageAttachmentPipeline
from feedpress.services.ingestion import IngestionService
from feedpress.services.wordpress_client import WordPressClient


def get_generation_client() -> GenerationClient:
    return GenerationClient()


def get_image_pipeline() -> ImageAttachmentPipeline:
    return ImageAttachmentPipeline()


def get_cms_factory() -> Callable[[models.WordPressSite], WordPressClient]:
    return WordPressClient.from_site


def get_automation_evaluator(
    generation_client: GenerationClient = Depends(get_generation_client),
    image_pipeline: ImageAttachmentPipeline = Depends(get_image_pipeline),
) -> AutomationEvaluator:
    return AutomationEvaluator(generation_client=generation_client, image_pipeline=image_pipeline)


def get_ingestion_service(
    evaluator: AutomationEvaluator = Depends(get_automation_evaluator),
) -> IngestionService:
    return IngestionService(evaluator=evaluator)


def get_auto_publisher(
    image_pipeline: ImageAttachmentPipeline = Depends(get_image_pipeline),
    cms_factory: Callable[[models.WordPressSite], WordPressClient] = Depends(get_cms_factory),
) -> AutoPublisher:
    return AutoPublisher(image_pipeline=image_pipeline, cms_factory=cms_factory)
