"""
Unit tests for automation rules.
"""

import uuid
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from feedpress import models
from feedpress.errors import GenerationFailure, RecordNotFound
from feedpress.models import AutomationTrigger
from feedpress.services.automation import (
    AutomationEvaluator,
    AutomationRuleRepository,
    ContentFilterCondition,
    EvaluationContext,
    ItemCountCondition,
    RuleDefinition,
    TimeRangeCondition,
    default_rule,
    parse_actions,
)
from feedpress.services.generation_client import GeneratedArticle, GenerationClient


def _context(source, items=(), hour=12, trigger=AutomationTrigger.NEW_FEED_ITEMS):
    return EvaluationContext(
        source=source,
        items=list(items),
        trigger=trigger,
        now=datetime(2026, 1, 1, hour, 30),
    )


@pytest.fixture
def generator():
    client = GenerationClient(base_url="https://gen.example.com")
    client.generate = MagicMock(return_value=GeneratedArticle(title="Generated", content="<p>Body</p>"))
    return client


class TestConditions:
    """Tests for condition matching."""

    @pytest.mark.parametrize("start,end,hour,expected", [
        (9, 17, 12, True),
        (9, 17, 17, False),
        (9, 17, 8, False),
        (22, 6, 23, True),
        (22, 6, 3, True),
        (22, 6, 12, False),
    ])
    def test_time_range(self, make_source, start, end, hour, expected):
        condition = TimeRangeCondition(start_hour=start, end_hour=end)

        assert condition.matches(_context(make_source(), hour=hour)) is expected

    def test_item_count(self, make_source):
        source = make_source()
        condition = ItemCountCondition(min_items=2, max_items=3)

        assert condition.matches(_context(source, items=[1])) is False
        assert condition.matches(_context(source, items=[1, 2])) is True
        assert condition.matches(_context(source, items=[1, 2, 3, 4])) is False

    def test_content_filter(self):
        condition = ContentFilterCondition(include_keywords=["Python"], exclude_keywords=["sponsored"])

        assert condition.accepts(models.FeedItem(title="Python 4 released", content=""))
        assert not condition.accepts(models.FeedItem(title="Python course", content="Sponsored post"))
        assert not condition.accepts(models.FeedItem(title="Rust news", content=""))

    def test_empty_time_range_is_rejected(self):
        with pytest.raises(ValidationError):
            RuleDefinition(
                name="never",
                trigger="manual",
                conditions=[{"type": "time_range", "start_hour": 5, "end_hour": 5}],
                actions=[{"type": "create_task", "task_type": "x"}],
            )

    def test_unknown_action_type_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_actions([{"type": "delete_everything"}])

    def test_rule_needs_an_action(self):
        with pytest.raises(ValidationError):
            RuleDefinition(name="empty", trigger="manual", actions=[])


class TestRepository:
    """Tests for persisted rules."""

    def test_create_and_update(self, db_session, make_source):
        source = make_source()
        repository = AutomationRuleRepository()
        rule = repository.create(db_session, source.id, RuleDefinition(
            name="Notify",
            trigger="manual",
            actions=[{"type": "send_notification", "message": "hi"}],
        ))

        assert rule.actions == [{"type": "send_notification", "channel": "log", "message": "hi"}]

        repository.update(db_session, rule, {"is_enabled": False, "name": "Quiet"})

        assert rule.is_enabled is False
        assert rule.name == "Quiet"
        assert rule.trigger == "manual"

    def test_invalid_update_is_rejected(self, db_session, make_source):
        source = make_source()
        repository = AutomationRuleRepository()
        rule = repository.create(db_session, source.id, RuleDefinition(
            name="Notify", trigger="manual", actions=[{"type": "send_notification", "message": "hi"}],
        ))

        with pytest.raises(ValidationError):
            repository.update(db_session, rule, {"trigger": "sometimes"})

    def test_get_missing_raises(self, db_session):
        with pytest.raises(RecordNotFound):
            AutomationRuleRepository().get(db_session, uuid.uuid4())


class TestEvaluator:
    """Tests for AutomationEvaluator.evaluate."""

    def test_default_rule_for_auto_generate_source(self, db_session, make_source, make_feed_item, generator):
        source = make_source(configuration={"autoGenerate": True})
        make_feed_item(source)
        make_feed_item(source)

        result = AutomationEvaluator(generation_client=generator).evaluate(db_session, source)

        assert result.rules_evaluated == 1
        assert result.rules_triggered == 1
        assert result.articles_generated == 2
        assert db_session.query(models.AutomationRule).count() == 0
        assert db_session.query(models.Article).filter_by(status="ready_to_publish").count() == 2

    def test_no_rules_without_auto_generate(self, db_session, make_source, make_feed_item, generator):
        source = make_source()
        make_feed_item(source)

        result = AutomationEvaluator(generation_client=generator).evaluate(db_session, source)

        assert result.rules_evaluated == 0
        generator.generate.assert_not_called()

    def test_default_rule_is_transient(self, make_source):
        rule = default_rule(make_source(configuration={"autoGenerate": True}))

        assert rule.id is None
        assert rule.trigger == "new_feed_items"

    def test_trigger_must_match(self, db_session, make_source, make_feed_item, generator):
        source = make_source(configuration={"autoGenerate": True})
        make_feed_item(source)

        result = AutomationEvaluator(generation_client=generator).evaluate(
            db_session, source, trigger=AutomationTrigger.MANUAL
        )

        assert result.rules_evaluated == 1
        assert result.rules_triggered == 0

    def test_content_filter_narrows_items(self, db_session, make_source, make_feed_item, generator):
        source = make_source()
        make_feed_item(source, title="Python release notes")
        make_feed_item(source, title="Gardening tips")
        AutomationRuleRepository().create(db_session, source.id, RuleDefinition(
            name="Python only",
            trigger="new_feed_items",
            conditions=[{"type": "content_filter", "include_keywords": ["python"]}],
            actions=[{"type": "generate_articles"}],
        ))

        result = AutomationEvaluator(generation_client=generator).evaluate(db_session, source)

        assert result.articles_generated == 1
        request = generator.generate.call_args.args[0]
        assert request.topic == "Python release notes"

    def test_stored_rule_execution_is_recorded(self, db_session, make_source, make_feed_item):
        source = make_source()
        make_feed_item(source)
        rule = AutomationRuleRepository().create(db_session, source.id, RuleDefinition(
            name="Notify", trigger="new_feed_items", actions=[{"type": "send_notification", "message": "new"}],
        ))

        result = AutomationEvaluator().evaluate(db_session, source)

        assert result.actions_executed == 1
        assert result.execution_results[0].success
        assert rule.execution_count == 1
        assert rule.last_executed_at is not None

    def test_disabled_rule_is_skipped(self, db_session, make_source, make_feed_item):
        source = make_source()
        make_feed_item(source)
        AutomationRuleRepository().create(db_session, source.id, RuleDefinition(
            name="Off", trigger="new_feed_items", is_enabled=False,
            actions=[{"type": "send_notification", "message": "new"}],
        ))

        result = AutomationEvaluator().evaluate(db_session, source)

        assert result.rules_triggered == 0

    def test_update_source_action(self, db_session, make_source):
        source = make_source(configuration={"autoGenerate": False})
        AutomationRuleRepository().create(db_session, source.id, RuleDefinition(
            name="Enable", trigger="manual",
            actions=[{"type": "update_source", "configuration": {"autoGenerate": True}}],
        ))

        AutomationEvaluator().evaluate(db_session, source, items=[], trigger=AutomationTrigger.MANUAL)

        assert source.configuration == {"autoGenerate": True}

    def test_generation_failure_is_isolated_per_item(self, db_session, make_source, make_feed_item, generator):
        source = make_source(configuration={"autoGenerate": True})
        make_feed_item(source)
        make_feed_item(source)
        generator.generate.side_effect = [
            GenerationFailure("HTTP 503"),
            GeneratedArticle(title="Generated", content="<p>Body</p>"),
        ]

        result = AutomationEvaluator(generation_client=generator).evaluate(db_session, source)

        action = result.execution_results[0]
        assert action.articles_generated == 1
        assert len(action.errors) == 1
        assert action.success is True
        statuses = sorted(m.status for m in db_session.query(models.MonitorGeneration).all())
        assert statuses == ["completed", "error"]

    def test_invalid_stored_rule_is_reported(self, db_session, make_source):
        source = make_source()
        db_session.add(models.AutomationRule(
            source_id=source.id, name="Broken", trigger="manual",
            conditions=[], actions=[{"type": "unknown"}],
        ))
        db_session.commit()

        result = AutomationEvaluator().evaluate(db_session, source, items=[], trigger=AutomationTrigger.MANUAL)

        assert result.rules_evaluated == 1
        assert result.execution_results[0].action == "validate"
        assert result.execution_results[0].success is False
