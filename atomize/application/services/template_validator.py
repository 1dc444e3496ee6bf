from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from atomize.application.services.dependency_resolver import DependencyResolver
from atomize.domain.errors import AtomizeError, ErrorKind
from atomize.schemas import TaskTemplate

logger = logging.getLogger(__name__)

_CONDITION_OPERATOR = re.compile(r"AND|OR|==|!=|>|<|CONTAINS")


class TemplateValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def _percent(value: float) -> str:
    return f"{value:g}%"


class TemplateValidator:
    """Checks a template against its own validation rules before it is used."""

    def __init__(self, resolver: DependencyResolver | None = None) -> None:
        self._resolver = resolver or DependencyResolver()

    def validate(self, template: TaskTemplate | Mapping[str, Any]) -> TemplateValidationResult:
        if not isinstance(template, TaskTemplate):
            try:
                template = TaskTemplate.model_validate(template)
            except ValidationError as exc:
                errors = [
                    f"{'.'.join(str(part) for part in issue['loc'])}: {issue['msg']}" for issue in exc.errors()
                ]
                return TemplateValidationResult(valid=False, errors=errors)

        errors = self._rule_errors(template)
        errors.extend(
            AtomizeError.circular_dependency(cycle).args[0] for cycle in self._resolver.detect_cycles(template.tasks)
        )
        warnings = self._warnings(template)
        logger.debug("Template %r: %d errors, %d warnings", template.name, len(errors), len(warnings))
        return TemplateValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def validate_or_raise(self, template: TaskTemplate | Mapping[str, Any]) -> TemplateValidationResult:
        result = self.validate(template)
        if not result.valid:
            raise AtomizeError("Template validation failed", kind=ErrorKind.TEMPLATE_INVALID, errors=result.errors)
        return result

    @staticmethod
    def _rule_errors(template: TaskTemplate) -> list[str]:
        rules = template.validation
        if rules is None:
            return []
        errors: list[str] = []
        total = sum(task.estimation_percent or 0 for task in template.tasks if not task.condition)

        if rules.total_estimation_must_be is not None:
            required = rules.total_estimation_must_be
            if total != required:
                diff = required - total
                hint = f"Add {_percent(diff)} to existing tasks." if diff > 0 else f"Reduce tasks by {_percent(-diff)}."
                errors.append(f"Total estimation is {_percent(total)}, but must be {_percent(required)}. {hint}")
        elif rules.total_estimation_range is not None:
            low, high = rules.total_estimation_range.min, rules.total_estimation_range.max
            if total < low or total > high:
                hint = f"Increase by {_percent(low - total)}." if total < low else f"Reduce by {_percent(total - high)}."
                errors.append(
                    f"Total estimation is {_percent(total)}, but must be between {_percent(low)} and {_percent(high)}. {hint}"
                )

        count = len(template.tasks)
        if rules.min_tasks is not None and count < rules.min_tasks:
            errors.append(f"Template has {count} task(s), but minimum is {rules.min_tasks}.")
        if rules.max_tasks is not None and count > rules.max_tasks:
            errors.append(f"Template has {count} task(s), but maximum is {rules.max_tasks}.")
        return errors

    def _warnings(self, template: TaskTemplate) -> list[str]:
        warnings: list[str] = []
        rules = template.validation
        strict = rules is not None and (
            rules.total_estimation_must_be is not None or rules.total_estimation_range is not None
        )
        total = sum(task.estimation_percent or 0 for task in template.tasks)
        if not strict and total != 100:
            warnings.append(f"Total estimation is {_percent(total)} (expected 100%).")

        warnings.extend(self._resolver.validate_dependencies(template.tasks))
        for index, task in enumerate(template.tasks):
            if task.depends_on and not task.id:
                warnings.append(
                    f'tasks[{index}]: Task "{task.title}" has dependencies but no id field. '
                    "Add an id to enable dependency linking."
                )
            if task.condition and "${" not in task.condition and not _CONDITION_OPERATOR.search(task.condition):
                warnings.append(f'tasks[{index}].condition: Condition "{task.condition}" might be invalid (no variables found)')
        return warnings
