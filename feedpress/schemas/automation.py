# feedpress/schemas/automation.py
"""
Schemas for automation rule endpoints.

Conditions and actions reuse the typed models from services/automation.py so
that the API and the evaluator validate rules the same way.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from feedpress.models import AutomationTrigger
from feedpress.services.automation import Action, Condition


class AutomationRuleCreate(BaseModel):
    """POST /v1/sources/{id}/automation-rules"""

    name: str = Field(..., min_length=1, max_length=255)
    trigger: AutomationTrigger
    is_enabled: bool = True
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[Action] = Field(..., min_length=1)


class AutomationRuleUpdate(BaseModel):
    """PATCH /v1/automation-rules/{id}; omitted fields are unchanged."""

    name: str | None = Field(None, min_length=1, max_length=255)
    trigger: AutomationTrigger | None = None
    is_enabled: bool | None = None
    conditions: list[Condition] | None = None
    actions: list[Action] | None = Field(None, min_length=1)


class AutomationRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    source_id: uuid.UUID
    name: str
    is_enabled: bool
    trigger: str
    conditions: list[dict[str, Any]]
    actions: list[dict[str, Any]]
    last_executed_at: datetime | None = None
    execution_count: int
    created_at: datetime


class AutomationRuleListResponse(BaseModel):
    rules: list[AutomationRuleResponse]
    uses_default_rule: bool = Field(
        False, description="True when the source relies on the built-in autoGenerate rule"
    )


class EvaluateRequest(BaseModel):
    """POST /v1/sources/{id}/automation/evaluate"""

    trigger: AutomationTrigger = AutomationTrigger.MANUAL


class ActionResultResponse(BaseModel):
    rule_name: str
    action: str
    success: bool
    detail: str | None = None
    articles_generated: int = 0
    monitor_ids: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class EvaluateResponse(BaseModel):
    rules_evaluated: int
    rules_triggered: int
    actions_executed: int
    articles_generated: int
    execution_results: list[ActionResultResponse] = Field(default_factory=list)
