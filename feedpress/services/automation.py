# feedpress/services/automation.py
"""
Automation rules.

A rule belongs to a source and fires on a trigger (new_feed_items, scheduled,
manual) when all of its conditions hold. Conditions and actions are stored as
JSON on the row and validated into the typed models below; actions are a
tagged union dispatched with `match`.

When a source has autoGenerate enabled but no stored rules, a default
"generate articles for new items" rule is evaluated instead. It is never
written to the database.
"""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator
from sqlalchemy.orm import Session

from feedpress import models
from feedpress.constants import AutomationDefaults
from feedpress.errors import GenerationFailure, PipelineError, RecordNotFound
from feedpress.models import AutomationTrigger, GenerationPriority, GenerationStatus
from feedpress.services.generation_monitor import GenerationMonitor, GenerationPolicy

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Conditions
# -----------------------------------------------------------------------------

class TimeRangeCondition(BaseModel):
    """Only run between start_hour (inclusive) and end_hour (exclusive), UTC. Wraps midnight."""
    type: Literal["time_range"] = "time_range"
    start_hour: int = Field(..., ge=0, le=23)
    end_hour: int = Field(..., ge=0, le=24)

    def matches(self, context: "EvaluationContext") -> bool:
        hour = context.now.hour
        if self.start_hour <= self.end_hour:
            return self.start_hour <= hour < self.end_hour
        return hour >= self.start_hour or hour < self.end_hour


class ItemCountCondition(BaseModel):
    type: Literal["item_count"] = "item_count"
    min_items: int = Field(default=1, ge=0)
    max_items: int | None = Field(default=None, ge=0)

    def matches(self, context: "EvaluationContext") -> bool:
        count = len(context.items)
        if count < self.min_items:
            return False
        return self.max_items is None or count <= self.max_items


class ContentFilterCondition(BaseModel):
    """Keyword filter on item title and content (case-insensitive)."""
    type: Literal["content_filter"] = "content_filter"
    include_keywords: list[str] = Field(default_factory=list)
    exclude_keywords: list[str] = Field(default_factory=list)

    def accepts(self, item: models.FeedItem) -> bool:
        text = f"{item.title or ''} {item.content or ''}".lower()
        if any(keyword.lower() in text for keyword in self.exclude_keywords if keyword):
            return False
        includes = [keyword.lower() for keyword in self.include_keywords if keyword]
        return not includes or any(keyword in text for keyword in includes)

    def matches(self, context: "EvaluationContext") -> bool:
        return any(self.accepts(item) for item in context.items)


class SourceStatusCondition(BaseModel):
    type: Literal["source_status"] = "source_status"
    required_status: models.SourceStatus = models.SourceStatus.ACTIVE

    def matches(self, context: "EvaluationContext") -> bool:
        return context.source.status == self.required_status.value


Condition = Annotated[
    TimeRangeCondition | ItemCountCondition | ContentFilterCondition | SourceStatusCondition,
    Field(discriminator="type"),
]


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------

class GenerateArticlesAction(BaseModel):
    """Create generation attempts for the matched items, optionally running them now."""
    type: Literal["generate_articles"] = "generate_articles"
    max_items: int = Field(default=AutomationDefaults.DEFAULT_MAX_ITEMS, ge=1)
    priority: GenerationPriority = GenerationPriority.NORMAL
    run_immediately: bool = True
    attach_image: bool = False
    publish_ready: bool = True


class SendNotificationAction(BaseModel):
    """Logged only; delivery is handled outside this service."""
    type: Literal["send_notification"] = "send_notification"
    channel: str = "log"
    message: str


class UpdateSourceAction(BaseModel):
    """Merge keys into the source configuration."""
    type: Literal["update_source"] = "update_source"
    configuration: dict[str, Any]


class CreateTaskAction(BaseModel):
    type: Literal["create_task"] = "create_task"
    task_type: str
    payload: dict[str, Any] = Field(default_factory=dict)


Action = Annotated[
    GenerateArticlesAction | SendNotificationAction | UpdateSourceAction | CreateTaskAction,
    Field(discriminator="type"),
]

_conditions_adapter = TypeAdapter(list[Condition])
_actions_adapter = TypeAdapter(list[Action])


class RuleDefinition(BaseModel):
    """Validated form of an automation rule."""
    name: str = Field(..., min_length=1, max_length=255)
    trigger: AutomationTrigger
    is_enabled: bool = True
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[Action] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_time_range(self) -> "RuleDefinition":
        for condition in self.conditions:
            if isinstance(condition, TimeRangeCondition) and condition.start_hour == condition.end_hour:
                raise ValueError("time_range start_hour and end_hour must differ")
        return self


def parse_conditions(raw: list[dict] | None) -> list[Condition]:
    return _conditions_adapter.validate_python(raw or [])


def parse_actions(raw: list[dict] | None) -> list[Action]:
    return _actions_adapter.validate_python(raw or [])


def dump_models(items: list[BaseModel]) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


# -----------------------------------------------------------------------------
# Repository
# -----------------------------------------------------------------------------

class AutomationRuleRepository:
    """Persisted rules, always scoped by source."""

    def list_for_source(self, db: Session, source_id: uuid.UUID) -> list[models.AutomationRule]:
        return (
            db.query(models.AutomationRule)
            .filter(models.AutomationRule.source_id == source_id)
            .order_by(models.AutomationRule.created_at.asc())
            .all()
        )

    def get(self, db: Session, rule_id: uuid.UUID) -> models.AutomationRule:
        rule = db.query(models.AutomationRule).filter(models.AutomationRule.id == rule_id).first()
        if not rule:
            raise RecordNotFound("AutomationRule", rule_id)
        return rule

    def create(self, db: Session, source_id: uuid.UUID, definition: RuleDefinition) -> models.AutomationRule:
        rule = models.AutomationRule(
            id=uuid.uuid4(),
            source_id=source_id,
            name=definition.name,
            trigger=definition.trigger.value,
            is_enabled=definition.is_enabled,
            conditions=dump_models(definition.conditions),
            actions=dump_models(definition.actions),
            execution_count=0,
        )
        db.add(rule)
        db.commit()
        logger.info(
            f"Automation rule '{rule.name}' created for source {source_id}",
            extra={"event": "automation_rule_created", "rule_id": str(rule.id), "source_id": str(source_id)},
        )
        return rule

    def update(self, db: Session, rule: models.AutomationRule, changes: dict[str, Any]) -> models.AutomationRule:
        """Apply a partial update, re-validating the merged rule."""
        merged = RuleDefinition(
            name=changes.get("name", rule.name),
            trigger=changes.get("trigger", rule.trigger),
            is_enabled=changes.get("is_enabled", rule.is_enabled),
            conditions=changes.get("conditions", rule.conditions),
            actions=changes.get("actions", rule.actions),
        )
        rule.name = merged.name
        rule.trigger = merged.trigger.value
        rule.is_enabled = merged.is_enabled
        rule.conditions = dump_models(merged.conditions)
        rule.actions = dump_models(merged.actions)
        db.commit()
        return rule

    def delete(self, db: Session, rule: models.AutomationRule) -> None:
        db.delete(rule)
        db.commit()

    def record_execution(self, db: Session, rule: models.AutomationRule) -> None:
        rule.execution_count = (rule.execution_count or 0) + 1
        rule.last_executed_at = models.utcnow()
        db.commit()


def default_rule(source: models.Source) -> models.AutomationRule:
    """Transient rule used for autoGenerate sources without stored rules."""
    return models.AutomationRule(
        source_id=source.id,
        name=AutomationDefaults.DEFAULT_RULE_NAME,
        trigger=AutomationTrigger.NEW_FEED_ITEMS.value,
        is_enabled=True,
        conditions=[],
        actions=[GenerateArticlesAction().model_dump(mode="json")],
        execution_count=0,
    )


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------

@dataclass
class EvaluationContext:
    source: models.Source
    items: list[models.FeedItem]
    trigger: AutomationTrigger
    now: datetime = field(default_factory=models.utcnow)


@dataclass
class ActionResult:
    rule_name: str
    action: str
    success: bool
    detail: str | None = None
    articles_generated: int = 0
    monitor_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class EvaluationResult:
    rules_evaluated: int = 0
    rules_triggered: int = 0
    actions_executed: int = 0
    articles_generated: int = 0
    execution_results: list[ActionResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AutomationEvaluator:
    """Evaluate a source's rules against a set of feed items."""

    def __init__(
        self,
        repository: AutomationRuleRepository | None = None,
        generation_client=None,
        image_pipeline=None,
    ):
        self.repository = repository or AutomationRuleRepository()
        self.generation_client = generation_client
        self.image_pipeline = image_pipeline

    def rules_for(self, db: Session, source: models.Source) -> list[models.AutomationRule]:
        rules = self.repository.list_for_source(db, source.id)
        if not rules and source.auto_generate:
            return [default_rule(source)]
        return rules

    @staticmethod
    def should_execute(
        rule: models.AutomationRule,
        context: EvaluationContext,
        conditions: list[Condition] | None = None,
    ) -> bool:
        """Enabled, trigger matches and every condition holds."""
        if not rule.is_enabled:
            return False
        if rule.trigger != context.trigger.value:
            return False
        if conditions is None:
            conditions = parse_conditions(rule.conditions)
        return all(condition.matches(context) for condition in conditions)

    @staticmethod
    def _unprocessed_items(db: Session, source: models.Source, limit: int) -> list[models.FeedItem]:
        return (
            db.query(models.FeedItem)
            .filter(models.FeedItem.source_id == source.id, models.FeedItem.processed.is_(False))
            .order_by(models.FeedItem.published_at.desc())
            .limit(limit)
            .all()
        )

    def evaluate(
        self,
        db: Session,
        source: models.Source,
        items: list[models.FeedItem] | None = None,
        trigger: AutomationTrigger = AutomationTrigger.NEW_FEED_ITEMS,
    ) -> EvaluationResult:
        """
        Run every matching rule of the source.

        items defaults to the source's unprocessed feed items. Failing actions
        are recorded in execution_results and do not stop other rules.
        """
        if items is None:
            items = self._unprocessed_items(db, source, limit=AutomationDefaults.DEFAULT_MAX_ITEMS * 5)

        result = EvaluationResult()
        for rule in self.rules_for(db, source):
            result.rules_evaluated += 1
            try:
                conditions = parse_conditions(rule.conditions)
                actions = parse_actions(rule.actions)
            except ValidationError as e:
                logger.error(
                    f"Automation rule '{rule.name}' has invalid stored definition: {e}",
                    extra={"event": "automation_rule_invalid", "source_id": str(source.id)},
                )
                result.execution_results.append(
                    ActionResult(rule_name=rule.name, action="validate", success=False, detail=str(e))
                )
                continue

            matched = [
                item for item in items
                if all(c.accepts(item) for c in conditions if isinstance(c, ContentFilterCondition))
            ]
            context = EvaluationContext(source=source, items=matched, trigger=trigger)
            if not self.should_execute(rule, context, conditions):
                continue

            result.rules_triggered += 1
            for action in actions:
                action_result = self.execute_action(db, rule, action, context)
                result.actions_executed += 1
                result.articles_generated += action_result.articles_generated
                result.execution_results.append(action_result)

            if rule.id is not None:
                self.repository.record_execution(db, rule)

        logger.info(
            f"Automation for source {source.name}: {result.rules_triggered}/{result.rules_evaluated} rules triggered, "
            f"{result.articles_generated} articles generated",
            extra={
                "event": "automation_evaluated",
                "source_id": str(source.id),
                "items_processed": len(items),
            },
        )
        return result

    def execute_action(
        self,
        db: Session,
        rule: models.AutomationRule,
        action: Action,
        context: EvaluationContext,
    ) -> ActionResult:
        try:
            match action:
                case GenerateArticlesAction():
                    return self._generate_articles(db, rule, action, context)
                case SendNotificationAction(channel=channel, message=message):
                    logger.info(
                        f"[{channel}] {message}",
                        extra={"event": "automation_notification", "source_id": str(context.source.id)},
                    )
                    return ActionResult(rule.name, action.type, True, detail=f"notification logged to {channel}")
                case UpdateSourceAction(configuration=configuration):
                    context.source.configuration = {**(context.source.configuration or {}), **configuration}
                    db.commit()
                    return ActionResult(
                        rule.name, action.type, True, detail=f"updated keys: {sorted(configuration)}"
                    )
                case CreateTaskAction(task_type=task_type, payload=payload):
                    logger.info(
                        f"Automation task '{task_type}' requested by rule '{rule.name}'",
                        extra={"event": "automation_task", "source_id": str(context.source.id)},
                    )
                    return ActionResult(rule.name, action.type, True, detail=f"{task_type}: {payload}")
        except PipelineError as e:
            db.rollback()
            logger.error(
                f"Automation action {action.type} failed for rule '{rule.name}': {e}",
                extra={"event": "automation_action_failed", "source_id": str(context.source.id)},
            )
            return ActionResult(rule.name, action.type, False, detail=str(e))
        raise ValueError(f"Unhandled automation action {action.type}")

    def _generate_articles(
        self,
        db: Session,
        rule: models.AutomationRule,
        action: GenerateArticlesAction,
        context: EvaluationContext,
    ) -> ActionResult:
        candidates = [item for item in context.items if not item.processed][: action.max_items]
        outcome = ActionResult(rule.name, action.type, True)
        policy = GenerationPolicy(attach_image=action.attach_image, publish_ready=action.publish_ready)

        for item in candidates:
            monitor, created = GenerationMonitor.create_for_item(
                db, item, context.source, priority=action.priority, metadata={"rule": rule.name}
            )
            outcome.monitor_ids.append(str(monitor.id))
            if not action.run_immediately or monitor.status != GenerationStatus.PENDING.value:
                continue
            try:
                generated = GenerationMonitor.run_generation(
                    db,
                    monitor.id,
                    client=self.generation_client,
                    policy=policy,
                    image_pipeline=self.image_pipeline,
                )
                outcome.articles_generated += 1
                if generated.image_error:
                    outcome.errors.append(f"{item.id}: image: {generated.image_error}")
            except GenerationFailure as e:
                outcome.errors.append(f"{item.id}: {e}")

        outcome.success = not outcome.errors or outcome.articles_generated > 0
        outcome.detail = (
            f"{len(outcome.monitor_ids)} monitors, {outcome.articles_generated} articles generated"
        )
        return outcome
