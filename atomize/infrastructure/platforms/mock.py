from __future__ import annotations

import itertools
import logging
from typing import Any, Iterable, Sequence

from atomize.infrastructure.platforms.mock_data import MOCK_STORIES
from atomize.schemas import CalculatedTask, CustomFieldFilter, CustomFieldOperator, PlatformFilter, WorkItem

logger = logging.getLogger(__name__)


def _matches_custom_field(item: WorkItem, rule: CustomFieldFilter) -> bool:
    actual = item.custom_fields.get(rule.field)
    expected = rule.value
    if rule.operator is CustomFieldOperator.EQUALS:
        return actual == expected
    if rule.operator is CustomFieldOperator.NOT_EQUALS:
        return actual != expected
    if rule.operator is CustomFieldOperator.CONTAINS:
        return actual is not None and str(expected).lower() in str(actual).lower()
    try:
        actual_number, expected_number = float(actual), float(expected)
    except (TypeError, ValueError):
        return False
    if rule.operator is CustomFieldOperator.GREATER_THAN:
        return actual_number > expected_number
    return actual_number < expected_number


class MockPlatformAdapter:
    """In-memory work-item platform with seeded stories."""

    name = "mock"

    def __init__(self, stories: Iterable[WorkItem | dict[str, Any]] | None = None, *, identity: str | None = None) -> None:
        seed = MOCK_STORIES if stories is None else stories
        self._stories = [
            item.model_copy(deep=True) if isinstance(item, WorkItem) else WorkItem.model_validate(item) for item in seed
        ]
        self._identity = identity
        self._created: list[WorkItem] = []
        self._ids = itertools.count(1000)
        self.links: list[tuple[str, str]] = []

    @property
    def created_tasks(self) -> list[WorkItem]:
        return list(self._created)

    def reset(self) -> None:
        self._created.clear()
        self.links.clear()
        self._ids = itertools.count(1000)
        logger.debug("MockPlatform: reset")

    async def get_current_user_identity(self) -> str | None:
        return self._identity

    async def query_work_items(self, filter: PlatformFilter) -> list[WorkItem]:
        results = [story for story in self._stories if self._matches(story, filter)]
        if filter.custom_query:
            logger.debug("MockPlatform: custom queries are not evaluated: %s", filter.custom_query)
        if filter.limit:
            results = results[: filter.limit]
        logger.info("MockPlatform: found %d work items", len(results))
        return [story.model_copy(deep=True) for story in results]

    def _matches(self, item: WorkItem, filter: PlatformFilter) -> bool:
        if filter.work_item_types and item.type not in filter.work_item_types:
            return False
        if filter.states and item.state not in filter.states:
            return False
        if filter.tags is not None:
            if filter.tags.include and not any(tag in item.tags for tag in filter.tags.include):
                return False
            if filter.tags.exclude and any(tag in item.tags for tag in filter.tags.exclude):
                return False
        if filter.exclude_if_has_tasks and self._children_of(item.id):
            return False
        if filter.assigned_to and (item.assigned_to or "") not in filter.assigned_to:
            return False
        if filter.area_paths and (item.area_path or "") not in filter.area_paths:
            return False
        if filter.iterations and (item.iteration or "") not in filter.iterations:
            return False
        if filter.priority is not None:
            if filter.priority.min is not None and (item.priority or 999) < filter.priority.min:
                return False
            if filter.priority.max is not None and (item.priority or 0) > filter.priority.max:
                return False
        if filter.custom_fields and not all(_matches_custom_field(item, rule) for rule in filter.custom_fields):
            return False
        return True

    async def create_tasks_bulk(self, parent_id: str, tasks: Sequence[CalculatedTask]) -> list[WorkItem]:
        created = [
            WorkItem(
                id=f"TASK-{next(self._ids)}",
                title=task.title,
                type="Task",
                state="New",
                assigned_to=task.assign_to,
                estimation=task.estimation,
                tags=list(task.tags),
                description=task.description,
                priority=task.priority,
                parent_id=parent_id,
                custom_fields=dict(task.custom_fields),
            )
            for task in tasks
        ]
        self._created.extend(created)
        logger.info("MockPlatform: created %d tasks under %s", len(created), parent_id)
        return created

    async def create_dependency_link(self, from_id: str, to_id: str) -> None:
        self.links.append((from_id, to_id))
        logger.debug("MockPlatform: %s now depends on %s", from_id, to_id)

    async def get_work_item(self, work_item_id: str) -> WorkItem | None:
        for item in itertools.chain(self._stories, self._created):
            if item.id == work_item_id:
                return item.model_copy(deep=True)
        logger.warning("MockPlatform: work item %s not found", work_item_id)
        return None

    async def get_children(self, parent_id: str) -> list[WorkItem]:
        return [child.model_copy(deep=True) for child in self._children_of(parent_id)]

    def _children_of(self, parent_id: str) -> list[WorkItem]:
        seeded: list[WorkItem] = []
        for story in self._stories:
            if story.id == parent_id:
                seeded = list(story.children or [])
        return seeded + [task for task in self._created if task.parent_id == parent_id]
