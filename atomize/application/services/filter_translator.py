from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from atomize.schemas import AssignMacro, FilterCriteria, PlatformFilter, TagFilter

logger = logging.getLogger(__name__)

# excludeIfHasTasks narrows a selection but never selects anything by itself.
_CRITERIA_FIELDS = (
    "work_item_types",
    "states",
    "tags",
    "area_paths",
    "iterations",
    "assigned_to",
    "priority",
    "custom_fields",
    "custom_query",
)


@dataclass(slots=True)
class FilterValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


def _union(existing: Sequence | None, incoming: Iterable) -> list:
    merged = list(existing or [])
    for entry in incoming:
        if entry not in merged:
            merged.append(entry)
    return merged


class FilterTranslator:
    """Turns a template filter into the query a work-item platform expects."""

    def translate(
        self,
        criteria: FilterCriteria,
        identity: str | None = None,
        *,
        project: str | None = None,
    ) -> PlatformFilter:
        values = criteria.model_dump(exclude_none=True)
        if criteria.assigned_to is not None:
            values["assigned_to"] = self._resolve_assignees(criteria.assigned_to, identity)
        if project:
            values["project"] = project
        return PlatformFilter.model_validate(values)

    @staticmethod
    def _resolve_assignees(assignees: Sequence[str], identity: str | None) -> list[str]:
        resolved: list[str] = []
        for assignee in assignees:
            if AssignMacro.parse(assignee) is not AssignMacro.ME:
                resolved.append(assignee)
            elif identity:
                logger.debug("Resolving %s to %s", AssignMacro.ME.value, identity)
                resolved.append(identity)
            else:
                logger.warning("%s used in filter but no user identity is available; dropping it", AssignMacro.ME.value)
        return resolved

    def validate(self, criteria: FilterCriteria) -> FilterValidation:
        errors: list[str] = []
        if all(getattr(criteria, name) is None for name in _CRITERIA_FIELDS):
            errors.append("Filter must have at least one criterion")
        if criteria.work_item_types is not None and not criteria.work_item_types:
            errors.append("workItemTypes cannot be empty array")
        if criteria.states is not None and not criteria.states:
            errors.append("states cannot be empty array")
        return FilterValidation(valid=not errors, errors=errors)

    def merge(self, filters: Sequence[FilterCriteria]) -> FilterCriteria:
        logger.debug("Merging %d filters", len(filters))
        merged = FilterCriteria()
        for criteria in filters:
            for name in ("work_item_types", "states", "area_paths", "iterations", "assigned_to", "custom_fields"):
                incoming = getattr(criteria, name)
                if incoming is not None:
                    setattr(merged, name, _union(getattr(merged, name), incoming))
            if criteria.tags is not None:
                tags = merged.tags or TagFilter()
                if criteria.tags.include is not None:
                    tags.include = _union(tags.include, criteria.tags.include)
                if criteria.tags.exclude is not None:
                    tags.exclude = _union(tags.exclude, criteria.tags.exclude)
                merged.tags = tags
            if criteria.priority is not None:
                merged.priority = criteria.priority.model_copy()
            if criteria.exclude_if_has_tasks is not None:
                merged.exclude_if_has_tasks = criteria.exclude_if_has_tasks
            if criteria.custom_query:
                merged.custom_query = criteria.custom_query
        return merged
