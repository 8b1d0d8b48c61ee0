# feedpress/routers/automation.py
"""
Automation rule endpoints.

GET    /v1/sources/{id}/automation-rules      - List a source's rules
POST   /v1/sources/{id}/automation-rules      - Create a rule
PATCH  /v1/automation-rules/{id}              - Update a rule
DELETE /v1/automation-rules/{id}              - Delete a rule
POST   /v1/sources/{id}/automation/evaluate   - Evaluate the source's rules now
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from feedpress import models
from feedpress.auth import require_admin_key
from feedpress.database import get_db
from feedpress.dependencies import get_automation_evaluator
from feedpress.errors import RecordNotFound
from feedpress.schemas.automation import (
    AutomationRuleCreate,
    AutomationRuleListResponse,
    AutomationRuleResponse,
    AutomationRuleUpdate,
    EvaluateRequest,
    EvaluateResponse,
)
from feedpress.services.automation import AutomationEvaluator, AutomationRuleRepository, RuleDefinition

router = APIRouter(prefix="/v1", tags=["automation"])

repository = AutomationRuleRepository()


def _get_source(db: Session, source_id: uuid.UUID) -> models.Source:
    source = db.query(models.Source).filter(models.Source.id == source_id).first()
    if not source:
        raise RecordNotFound("Source", source_id)
    return source


@router.get("/sources/{source_id}/automation-rules", response_model=AutomationRuleListResponse)
def list_rules(
    source_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> AutomationRuleListResponse:
    source = _get_source(db, source_id)
    rules = repository.list_for_source(db, source.id)
    return AutomationRuleListResponse(
        rules=[AutomationRuleResponse.model_validate(rule) for rule in rules],
        uses_default_rule=not rules and source.auto_generate,
    )


@router.post("/sources/{source_id}/automation-rules", response_model=AutomationRuleResponse, status_code=201)
def create_rule(
    source_id: uuid.UUID,
    body: AutomationRuleCreate,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> AutomationRuleResponse:
    source = _get_source(db, source_id)
    try:
        definition = RuleDefinition(**body.model_dump(mode="json"))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    rule = repository.create(db, source.id, definition)
    return AutomationRuleResponse.model_validate(rule)


@router.patch("/automation-rules/{rule_id}", response_model=AutomationRuleResponse)
def update_rule(
    rule_id: uuid.UUID,
    body: AutomationRuleUpdate,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> AutomationRuleResponse:
    rule = repository.get(db, rule_id)
    try:
        rule = repository.update(db, rule, body.model_dump(mode="json", exclude_unset=True))
    except ValidationError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    return AutomationRuleResponse.model_validate(rule)


@router.delete("/automation-rules/{rule_id}")
def delete_rule(
    rule_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> dict:
    rule = repository.get(db, rule_id)
    repository.delete(db, rule)
    return {"status": "deleted", "id": str(rule_id)}


@router.post("/sources/{source_id}/automation/evaluate", response_model=EvaluateResponse)
def evaluate_rules(
    source_id: uuid.UUID,
    request: EvaluateRequest | None = None,
    db: Session = Depends(get_db),
    evaluator: AutomationEvaluator = Depends(get_automation_evaluator),
    _: None = Depends(require_admin_key),
) -> EvaluateResponse:
    """Evaluate against the source's unprocessed feed items."""
    request = request or EvaluateRequest()
    source = _get_source(db, source_id)
    result = evaluator.evaluate(db, source, trigger=request.trigger)
    return EvaluateResponse(**result.to_dict())
