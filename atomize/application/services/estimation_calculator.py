from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Sequence

from atomize.application.services.condition_evaluator import ConditionEvaluator
from atomize.schemas import (
    AssignMacro,
    CalculatedTask,
    EstimationConfig,
    EstimationSummary,
    MissingEstimationPolicy,
    Rounding,
    SkippedTask,
    TaskDefinition,
    WorkItem,
)

logger = logging.getLogger(__name__)

ESTIMATION_TOLERANCE = 0.5


@dataclass(slots=True)
class TaskCalculationResult:
    calculated_tasks: list[CalculatedTask] = field(default_factory=list)
    skipped_tasks: list[SkippedTask] = field(default_factory=list)


@dataclass(slots=True)
class EstimationValidation:
    valid: bool
    warnings: list[str] = field(default_factory=list)


def round_half_up(value: float) -> int:
    return int(Decimal(repr(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def round_to(value: float, places: int = 2) -> float:
    return float(Decimal(repr(value)).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))


def apply_rounding(value: float, rounding: Rounding) -> float:
    if rounding is Rounding.UP:
        return float(math.ceil(value))
    if rounding is Rounding.DOWN:
        return float(math.floor(value))
    if rounding is Rounding.NEAREST:
        return float(round_half_up(value))
    return float(Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_DOWN))


def normalize_percentages(percents: Sequence[float | None]) -> list[float]:
    """Rescale percentages so they sum to exactly 100.

    Every entry but the last is rounded; the last one takes the remainder.
    A zero total is split equally with the rounding remainder on the first entry.
    """
    values = [p or 0 for p in percents]
    if not values:
        return []
    total = sum(values)
    if total == 0:
        base = 100 // len(values)
        remainder = 100 - base * len(values)
        return [float(base + remainder if i == 0 else base) for i in range(len(values))]

    scaled: list[float] = []
    for value in values[:-1]:
        scaled.append(float(round_half_up(value * 100 / total)))
    scaled.append(100 - sum(scaled))
    return scaled


def _is_percentage_task(task: TaskDefinition) -> bool:
    if task.estimation_fixed is not None:
        return False
    return task.estimation_percent is not None or task.estimation_formula is None


class EstimationCalculator:
    """Resolves template tasks against a story and proportions its estimation."""

    def __init__(self, condition_evaluator: ConditionEvaluator | None = None) -> None:
        self._conditions = condition_evaluator or ConditionEvaluator()

    def calculate(
        self,
        story: WorkItem,
        template_tasks: Sequence[TaskDefinition],
        config: EstimationConfig | None = None,
        *,
        identity: str | None = None,
    ) -> TaskCalculationResult:
        config = config or EstimationConfig()
        result = TaskCalculationResult()
        parent_estimation = self._parent_estimation(story, config)

        if parent_estimation is None:
            reason = f"Story {story.id} has no estimation"
            result.skipped_tasks = [SkippedTask(template_task=task, reason=reason) for task in template_tasks]
            logger.warning("%s; skipping all %d tasks", reason, len(template_tasks))
            return result

        retained: list[tuple[int, TaskDefinition]] = []
        for index, task in enumerate(template_tasks):
            if task.condition and not self._conditions.evaluate(task.condition, story):
                reason = f"Condition not met: {task.condition}"
                logger.debug("Skipping task %r - %s", task.title, reason)
                result.skipped_tasks.append(SkippedTask(template_task=task, reason=reason))
                continue
            retained.append((index, task))

        percents = self._effective_percentages(
            [task for _, task in retained], renormalize=bool(result.skipped_tasks)
        )

        for (index, task), percent in zip(retained, percents):
            estimation = self._estimation_for(task, percent, parent_estimation, config)
            calculated = CalculatedTask(
                title=self._interpolate(task.title, story),
                description=self._interpolate(task.description, story) if task.description else None,
                estimation=estimation,
                estimation_percent=percent,
                tags=list(task.tags),
                assign_to=self._resolve_assignment(task.assign_to, story, identity),
                priority=task.priority,
                activity=task.activity,
                remaining_work=task.remaining_work,
                custom_fields=dict(task.custom_fields),
                depends_on=list(task.depends_on),
                template_id=task.id,
                template_index=index,
            )
            result.calculated_tasks.append(calculated)
            logger.debug("Calculated task %r = %s points (%s%%)", calculated.title, estimation, percent)

        logger.info(
            "Calculated %d tasks, skipped %d tasks for story %s",
            len(result.calculated_tasks),
            len(result.skipped_tasks),
            story.id,
        )
        return result

    @staticmethod
    def _parent_estimation(story: WorkItem, config: EstimationConfig) -> float | None:
        if story.estimation:
            return story.estimation
        policy = config.if_parent_has_no_estimation
        if policy is MissingEstimationPolicy.SKIP:
            return None
        if policy is MissingEstimationPolicy.USE_DEFAULT and config.default_parent_estimation:
            logger.warning(
                "Story %s has no estimation; using default estimation %s",
                story.id,
                config.default_parent_estimation,
            )
            return config.default_parent_estimation
        logger.warning("Story %s has no estimation. Tasks will have 0 estimation.", story.id)
        return 0.0

    @staticmethod
    def _effective_percentages(tasks: Sequence[TaskDefinition], *, renormalize: bool) -> list[float | None]:
        percents: list[float | None] = [
            task.estimation_percent if _is_percentage_task(task) else None for task in tasks
        ]
        if not renormalize:
            return percents

        positions = [i for i, task in enumerate(tasks) if _is_percentage_task(task)]
        declared = [percents[i] or 0 for i in positions]
        if not positions or sum(declared) == 100:
            return percents

        logger.debug("Renormalizing %d retained percentages (total %s%%) to 100%%", len(positions), sum(declared))
        for position, value in zip(positions, normalize_percentages(declared)):
            percents[position] = value
        return percents

    @staticmethod
    def _estimation_for(
        task: TaskDefinition,
        percent: float | None,
        parent_estimation: float,
        config: EstimationConfig,
    ) -> float:
        if task.estimation_fixed is not None:
            return float(task.estimation_fixed)
        if task.estimation_percent is None and task.estimation_formula is not None:
            logger.warning("Estimation formulas are not supported: %s", task.estimation_formula)
            return 0.0
        raw = parent_estimation * (percent or 0) / 100
        rounded = apply_rounding(raw, config.rounding)
        return max(rounded, float(config.minimum_task_points))

    @staticmethod
    def _interpolate(text: str, story: WorkItem) -> str:
        return (
            text.replace("${story.title}", story.title)
            .replace("${story.id}", story.id)
            .replace("${story.description}", story.description or "")
        )

    @staticmethod
    def _resolve_assignment(assign_to: str | None, story: WorkItem, identity: str | None) -> str | None:
        if not assign_to:
            return None
        macro = AssignMacro.parse(assign_to)
        if macro is None:
            return assign_to
        if macro in (AssignMacro.PARENT_ASSIGNEE, AssignMacro.INHERIT):
            return story.assigned_to
        if macro is AssignMacro.ME:
            if not identity:
                logger.warning("%s assignment requested but no user identity is available", macro.value)
            return identity
        return None

    def calculate_total_estimation(self, tasks: Sequence[CalculatedTask]) -> float:
        return sum(task.estimation or 0 for task in tasks)

    def get_estimation_summary(self, story: WorkItem, tasks: Sequence[CalculatedTask]) -> EstimationSummary:
        story_estimation = story.estimation or 0
        total = self.calculate_total_estimation(tasks)
        return EstimationSummary(
            story_estimation=story_estimation,
            total_task_estimation=total,
            difference=story_estimation - total,
            percentage_used=(total / story_estimation) * 100 if story_estimation > 0 else 0,
        )

    def validate_estimation(self, story: WorkItem, tasks: Sequence[CalculatedTask]) -> EstimationValidation:
        warnings: list[str] = []
        summary = self.get_estimation_summary(story, tasks)
        if abs(summary.difference) > ESTIMATION_TOLERANCE:
            warnings.append(
                f"Total task estimation ({summary.total_task_estimation:g}) differs from story estimation "
                f"({summary.story_estimation:g}) by {summary.difference:g}"
            )
        zero = [task.title for task in tasks if not task.estimation]
        if zero:
            warnings.append(f"{len(zero)} task(s) have zero estimation: {', '.join(zero)}")
        return EstimationValidation(valid=not warnings, warnings=warnings)
