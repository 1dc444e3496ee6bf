from __future__ import annotations

import logging

import pytest

from atomize.application.services.condition_evaluator import ConditionEvaluator
from atomize.schemas import WorkItem


def _story(**overrides) -> WorkItem:
    values = {
        "id": "STORY-1",
        "title": "Login API",
        "estimation": 8,
        "tags": ["backend", "api"],
        "priority": 1,
        "assigned_to": "dev@example.com",
        "custom_fields": {"component": "auth", "points": 5},
    }
    values.update(overrides)
    return WorkItem(**values)


@pytest.mark.parametrize(
    "condition, expected",
    [
        ('${story.tags} CONTAINS "api"', True),
        ("'${story.tags} CONTAINS \"api\"'", True),
        ('${story.tags} CONTAINS "frontend"', False),
        ('${story.tags} NOT CONTAINS "frontend"', True),
        ("${story.tags} CONTAINS 'API'", True),
        ('${story.title} CONTAINS "login"', True),
        ("${story.estimation} >= 5", True),
        ("${story.estimation} > 10", False),
        ("${story.estimation} == 8", True),
        ("${story.estimation} == 8.0", True),
        ("${story.estimation} != 8", False),
        ("${story.priority} <= 1", True),
        ("${story.priority} < 1", False),
        ('${story.customFields.component} == "auth"', True),
        ("${story.customFields.points} > 3", True),
        ('${story.priority} == 1 AND ${story.tags} CONTAINS "backend"', True),
        ('${story.priority} == 2 AND ${story.tags} CONTAINS "backend"', False),
        ('${story.priority} == 2 OR ${story.tags} CONTAINS "api"', True),
        ("${story.assignedTo}", True),
        ("${story.description}", False),
    ],
)
def test_evaluate_supported_grammar(condition, expected):
    assert ConditionEvaluator().evaluate(condition, _story()) is expected


@pytest.mark.parametrize("condition", [None, "", "   "])
def test_empty_condition_is_met(condition):
    assert ConditionEvaluator().evaluate(condition, _story()) is True


@pytest.mark.parametrize(
    "condition",
    [
        "${story.estimation > 5",
        "${story.estimation} >",
        "== 5",
        "${story.title} > 3",
    ],
)
def test_malformed_condition_is_not_met(condition, caplog):
    with caplog.at_level(logging.WARNING):
        assert ConditionEvaluator().evaluate(condition, _story()) is False
    assert "malformed" in caplog.text


def test_contains_on_missing_field_is_false_and_not_contains_true():
    story = _story(custom_fields={})
    evaluator = ConditionEvaluator()

    assert evaluator.evaluate('${story.customFields.component} CONTAINS "auth"', story) is False
    assert evaluator.evaluate('${story.customFields.component} NOT CONTAINS "auth"', story) is True


def test_quoted_operator_text_is_not_split():
    story = _story(title="Search AND filter")

    assert ConditionEvaluator().evaluate('${story.title} == "Search AND filter"', story) is True


def test_quoted_literal_compares_as_text():
    story = _story(custom_fields={"code": "007"})
    evaluator = ConditionEvaluator()

    assert evaluator.evaluate("${story.customFields.code} == 7", story) is True
    assert evaluator.evaluate('${story.customFields.code} == "7"', story) is False
    assert evaluator.evaluate('${story.customFields.code} != "7"', story) is True
    assert evaluator.evaluate('${story.customFields.code} == "007"', story) is True
    assert evaluator.evaluate('${story.estimation} == "8"', story) is True
