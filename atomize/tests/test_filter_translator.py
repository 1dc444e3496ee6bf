from __future__ import annotations

import logging

from atomize.application.services.filter_translator import FilterTranslator
from atomize.schemas import FilterCriteria, PriorityRange, TagFilter


def test_validate_rejects_filter_without_criteria():
    result = FilterTranslator().validate(FilterCriteria())

    assert result.valid is False
    assert "Filter must have at least one criterion" in result.errors


def test_exclude_if_has_tasks_alone_is_not_a_criterion():
    result = FilterTranslator().validate(FilterCriteria(exclude_if_has_tasks=True))

    assert result.valid is False
    assert result.errors == ["Filter must have at least one criterion"]


def test_validate_rejects_explicitly_empty_lists():
    translator = FilterTranslator()

    types = translator.validate(FilterCriteria(work_item_types=[]))
    states = translator.validate(FilterCriteria(work_item_types=["User Story"], states=[]))

    assert types.errors == ["workItemTypes cannot be empty array"]
    assert states.errors == ["states cannot be empty array"]


def test_validate_accepts_camel_case_document():
    criteria = FilterCriteria.model_validate({"workItemTypes": ["User Story"], "tags": {"include": ["backend"]}})

    assert FilterTranslator().validate(criteria).valid is True


def test_translate_copies_fields_and_project():
    criteria = FilterCriteria(
        work_item_types=["User Story"],
        states=["New"],
        tags=TagFilter(include=["backend"], exclude=["blocked"]),
        priority=PriorityRange(min=1, max=2),
        exclude_if_has_tasks=True,
    )

    query = FilterTranslator().translate(criteria, project="Payments")

    assert query.work_item_types == ["User Story"]
    assert query.states == ["New"]
    assert query.tags.include == ["backend"]
    assert query.tags.exclude == ["blocked"]
    assert query.priority.max == 2
    assert query.exclude_if_has_tasks is True
    assert query.project == "Payments"
    assert query.area_paths is None


def test_translate_resolves_me_macro_to_identity():
    criteria = FilterCriteria(assigned_to=["@Me", "bob@example.com"])

    query = FilterTranslator().translate(criteria, "me@example.com")

    assert query.assigned_to == ["me@example.com", "bob@example.com"]


def test_translate_drops_me_macro_without_identity(caplog):
    criteria = FilterCriteria(assigned_to=["@Me", "bob@example.com"])

    with caplog.at_level(logging.WARNING):
        query = FilterTranslator().translate(criteria)

    assert query.assigned_to == ["bob@example.com"]
    assert "@Me" in caplog.text


def test_merge_unions_lists_and_last_scalar_wins():
    first = FilterCriteria(
        work_item_types=["User Story"],
        tags=TagFilter(include=["api"]),
        exclude_if_has_tasks=True,
        custom_query="first",
    )
    second = FilterCriteria(
        work_item_types=["User Story", "Bug"],
        states=["New"],
        tags=TagFilter(include=["api", "backend"], exclude=["legacy"]),
        exclude_if_has_tasks=False,
        custom_query="second",
    )

    merged = FilterTranslator().merge([first, second])

    assert merged.work_item_types == ["User Story", "Bug"]
    assert merged.states == ["New"]
    assert merged.tags.include == ["api", "backend"]
    assert merged.tags.exclude == ["legacy"]
    assert merged.exclude_if_has_tasks is False
    assert merged.custom_query == "second"
