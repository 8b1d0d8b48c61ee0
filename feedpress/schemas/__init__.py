# feedpress/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.
"""

from feedpress.schemas.admin import (
    IngestRunRequest,
    IngestRunResponse,
    ReconcileResponse,
)
from feedpress.schemas.articles import (
    ArticleResponse,
    AutoPublishResponse,
    ConnectionTestResponse,
    ImageRequest,
    PublicationActionRequest,
    PublicationListResponse,
    PublicationResponse,
    TransitionRequest,
)
from feedpress.schemas.automation import (
    AutomationRuleCreate,
    AutomationRuleResponse,
    AutomationRuleUpdate,
    EvaluateRequest,
    EvaluateResponse,
)
from feedpress.schemas.monitor import (
    GenerateRequest,
    GenerateResponse,
    MonitorDetailResponse,
    MonitorListResponse,
    MonitorResponse,
)

__all__ = [
    "IngestRunRequest",
    "IngestRunResponse",
    "ReconcileResponse",
    "ArticleResponse",
    "AutoPublishResponse",
    "ConnectionTestResponse",
    "ImageRequest",
    "PublicationActionRequest",
    "PublicationListResponse",
    "PublicationResponse",
    "TransitionRequest",
    "AutomationRuleCreate",
    "AutomationRuleResponse",
    "AutomationRuleUpdate",
    "EvaluateRequest",
    "EvaluateResponse",
    "GenerateRequest",
    "GenerateResponse",
    "MonitorDetailResponse",
    "MonitorListResponse",
    "MonitorResponse",
]
