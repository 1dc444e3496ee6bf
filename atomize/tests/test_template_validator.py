from __future__ import annotations

import pytest

from atomize.application.services.template_validator import TemplateValidator
from atomize.domain.errors import AtomizeError, ErrorKind


def _document(tasks=None, **extra) -> dict:
    document = {
        "name": "Backend API",
        "filter": {"workItemTypes": ["User Story"], "tags": {"include": ["backend"]}},
        "tasks": tasks
        if tasks is not None
        else [
            {"id": "design", "title": "Design ${story.title}", "estimationPercent": 20},
            {"id": "build", "title": "Build", "estimationPercent": 50, "dependsOn": ["design"]},
            {"id": "test", "title": "Test", "estimationPercent": 30, "dependsOn": ["build"]},
        ],
    }
    document.update(extra)
    return document


def test_valid_template_has_no_findings():
    result = TemplateValidator().validate(_document())

    assert result.valid is True
    assert result.errors == []
    assert result.warnings == []


def test_total_off_hundred_is_only_a_warning_without_rules():
    tasks = [{"title": "Design", "estimationPercent": 40}, {"title": "Build", "estimationPercent": 50}]

    result = TemplateValidator().validate(_document(tasks))

    assert result.valid is True
    assert result.warnings == ["Total estimation is 90% (expected 100%)."]


def test_total_must_be_rule():
    tasks = [
        {"title": "Design", "estimationPercent": 40},
        {"title": "Build", "estimationPercent": 50},
        {"title": "Mobile", "estimationPercent": 10, "condition": '${story.tags} CONTAINS "mobile"'},
    ]

    result = TemplateValidator().validate(_document(tasks, validation={"totalEstimationMustBe": 100}))

    assert result.valid is False
    assert result.errors == ["Total estimation is 90%, but must be 100%. Add 10% to existing tasks."]
    assert result.warnings == []


def test_total_range_and_task_count_rules():
    tasks = [{"title": "Design", "estimationPercent": 70}, {"title": "Build", "estimationPercent": 50}]
    rules = {"totalEstimationRange": {"min": 95, "max": 105}, "minTasks": 3, "maxTasks": 1}

    result = TemplateValidator().validate(_document(tasks, validation=rules))

    assert result.errors == [
        "Total estimation is 120%, but must be between 95% and 105%. Reduce by 15%.",
        "Template has 2 task(s), but minimum is 3.",
        "Template has 2 task(s), but maximum is 1.",
    ]


def test_cycle_is_an_error():
    tasks = [
        {"id": "a", "title": "A", "estimationPercent": 50, "dependsOn": ["b"]},
        {"id": "b", "title": "B", "estimationPercent": 50, "dependsOn": ["a"]},
    ]

    result = TemplateValidator().validate(_document(tasks))

    assert result.valid is False
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Circular dependency detected")


def test_dependency_and_condition_warnings():
    tasks = [
        {"id": "a", "title": "A", "estimationPercent": 50, "dependsOn": ["ghost"]},
        {"title": "B", "estimationPercent": 50, "dependsOn": ["a"], "condition": "backend"},
    ]

    result = TemplateValidator().validate(_document(tasks))

    assert result.valid is True
    assert any('non-existent task ID: "ghost"' in warning for warning in result.warnings)
    assert any(warning.startswith("tasks[1]: Task \"B\" has dependencies but no id") for warning in result.warnings)
    assert any("might be invalid" in warning for warning in result.warnings)


def test_structural_errors_are_reported_by_location():
    document = _document()
    del document["tasks"]

    result = TemplateValidator().validate(document)

    assert result.valid is False
    assert result.errors == ["tasks: Field required"]


def test_percent_out_of_bounds_is_structural():
    result = TemplateValidator().validate(_document([{"title": "Build", "estimationPercent": 150}]))

    assert result.valid is False
    assert result.errors[0].startswith("tasks.0.estimationPercent:")


def test_validate_or_raise():
    validator = TemplateValidator()

    assert validator.validate_or_raise(_document()).valid is True
    with pytest.raises(AtomizeError) as exc_info:
        validator.validate_or_raise(_document([]))

    assert exc_info.value.kind is ErrorKind.TEMPLATE_INVALID
    assert exc_info.value.errors
