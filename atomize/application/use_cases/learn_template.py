from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass
from typing import Sequence

from atomize.application.services.confidence_scorer import ConfidenceScorer
from atomize.application.services.estimation_calculator import normalize_percentages, round_half_up, round_to
from atomize.application.services.outlier_detector import OutlierDetector
from atomize.application.services.pattern_detector import PatternDetector, slugify_task_title
from atomize.application.services.task_merger import TaskMerger
from atomize.domain.errors import AtomizeError, ErrorKind
from atomize.domain.ports import TelemetryPort, WorkItemReaderPort
from atomize.schemas import (
    EstimationConfig,
    FilterCriteria,
    LearningResult,
    MergedTask,
    Rounding,
    SkippedStory,
    StoryAnalysis,
    TagFilter,
    TaskDefinition,
    TaskTemplate,
    WorkItem,
)

logger = logging.getLogger(__name__)

LEARNED_STATES = ["New", "Active", "Approved"]
_STORY_REFERENCE = re.compile(r"(?:Story-|#|STORY-)(\d+)", re.IGNORECASE)

# First match wins; review work is filed under documentation.
_ACTIVITY_RULES = (
    (re.compile(r"design|architect|plan|spec", re.IGNORECASE), "Design"),
    (re.compile(r"test|qa|verify|validation", re.IGNORECASE), "Testing"),
    (re.compile(r"deploy|release|publish", re.IGNORECASE), "Deployment"),
    (re.compile(r"document|readme|wiki", re.IGNORECASE), "Documentation"),
    (re.compile(r"review|code review|pr", re.IGNORECASE), "Documentation"),
)


@dataclass(slots=True)
class LearnOptions:
    normalize_percentages: bool = True


def extract_title_pattern(task_title: str, story_title: str) -> str:
    title = task_title
    if story_title and story_title in title:
        title = title.replace(story_title, "${story.title}", 1)
    return _STORY_REFERENCE.sub("${story.id}", title)


def detect_activity(title: str, description: str | None = None) -> str:
    text = f"{title} {description or ''}"
    for pattern, activity in _ACTIVITY_RULES:
        if pattern.search(text):
            return activity
    return "Development"


def _normalized(tasks: list[TaskDefinition]) -> list[TaskDefinition]:
    percents = normalize_percentages([task.estimation_percent for task in tasks])
    return [task.model_copy(update={"estimation_percent": percent}) for task, percent in zip(tasks, percents)]


def _unique_ids(tasks: list[TaskDefinition]) -> list[TaskDefinition]:
    seen: set[str] = set()
    unique: list[TaskDefinition] = []
    for task in tasks:
        candidate, suffix = task.id, 2
        while candidate in seen:
            candidate = f"{task.id}-{suffix}"
            suffix += 1
        seen.add(candidate)
        unique.append(task if candidate == task.id else task.model_copy(update={"id": candidate}))
    return unique


class StoryLearner:
    """Infers a task template from stories that were already broken down by hand."""

    def __init__(
        self,
        *,
        reader: WorkItemReaderPort,
        telemetry: TelemetryPort | None = None,
        pattern_detector: PatternDetector | None = None,
        merger: TaskMerger | None = None,
        scorer: ConfidenceScorer | None = None,
        outlier_detector: OutlierDetector | None = None,
    ) -> None:
        self._reader = reader
        self._telemetry = telemetry
        self._patterns = pattern_detector or PatternDetector()
        self._merger = merger or TaskMerger()
        self._scorer = scorer or ConfidenceScorer()
        self._outliers = outlier_detector or OutlierDetector()

    async def learn_from_story(self, story_id: str, normalize: bool = True) -> TaskTemplate:
        analysis = await self.analyze_story(story_id, normalize)
        return analysis.template

    async def analyze_story(self, story_id: str, normalize: bool = True) -> StoryAnalysis:
        logger.info("Learning template from story: %s", story_id)
        story = await self._reader.get_work_item(story_id)
        if story is None:
            raise AtomizeError(f"Story {story_id} not found", kind=ErrorKind.STORY_NOT_FOUND, story_id=story_id)
        tasks = await self._reader.get_children(story_id)
        if not tasks:
            raise AtomizeError(
                f"Story {story_id} has no child tasks to learn from",
                kind=ErrorKind.LEARNING_FAILED,
                story_id=story_id,
            )
        logger.info("Found %d tasks to analyze", len(tasks))

        warnings: list[str] = []
        story_estimation = story.estimation or 0
        if story_estimation <= 0:
            warnings.append(f"Story {story.id} has no estimation; task percentages are 0")

        definitions = [self._task_definition(story, task, index) for index, task in enumerate(tasks)]
        unestimated = sum(1 for task in tasks if not task.estimation)
        if story_estimation > 0 and unestimated:
            warnings.append(f"{unestimated} of {len(tasks)} tasks have no estimation")
        if normalize:
            definitions = _normalized(definitions)
        else:
            logger.info("Skipping percentage normalization as configured")

        template = TaskTemplate(
            name=f"Template learned from {story.id}",
            description=f"Auto-generated template based on {story.type}: {story.title}",
            author="Atomize",
            created=datetime.datetime.now(datetime.timezone.utc).isoformat(),
            filter=FilterCriteria(
                work_item_types=[story.type],
                states=list(LEARNED_STATES),
                tags=TagFilter(include=list(story.tags)) if story.tags else None,
            ),
            tasks=_unique_ids(definitions),
            estimation=EstimationConfig(
                rounding=Rounding.NONE,
                minimum_task_points=0,
                default_parent_estimation=story_estimation,
            ),
        )
        return StoryAnalysis(story=story, tasks=tasks, template=template, warnings=warnings)

    @staticmethod
    def _task_definition(story: WorkItem, task: WorkItem, index: int) -> TaskDefinition:
        story_estimation = story.estimation or 0
        percent = round_half_up((task.estimation or 0) / story_estimation * 100) if story_estimation > 0 else 0
        return TaskDefinition(
            id=slugify_task_title(task.title, index),
            title=extract_title_pattern(task.title, story.title),
            description=task.description,
            estimation_percent=min(100, percent),
            activity=detect_activity(task.title, task.description),
            tags=list(task.tags),
            priority=task.priority,
        )

    async def learn(self, story_ids: Sequence[str], options: LearnOptions | None = None) -> LearningResult:
        options = options or LearnOptions()
        analyses: list[StoryAnalysis] = []
        skipped: list[SkippedStory] = []
        for story_id in dict.fromkeys(story_ids):
            try:
                analyses.append(await self.analyze_story(story_id, options.normalize_percentages))
            except Exception as exc:
                logger.warning("Skipping story %s: %s", story_id, exc)
                skipped.append(SkippedStory(story_id=story_id, reason=str(exc) or exc.__class__.__name__))

        if not analyses:
            reasons = [f"{entry.story_id}: {entry.reason}" for entry in skipped]
            raise AtomizeError(
                "Could not learn from any story: " + "; ".join(reasons),
                kind=ErrorKind.LEARNING_FAILED,
                errors=reasons,
            )

        patterns = self._patterns.detect(analyses)
        merged = self._merger.merge(analyses)
        template = analyses[0].template if len(analyses) == 1 else self._merged_template(analyses, merged, options)
        result = LearningResult(
            template=template,
            confidence=self._scorer.score(analyses, patterns, merged),
            analyses=analyses,
            skipped=skipped,
            patterns=patterns,
            merged_tasks=merged,
            outliers=self._outliers.detect(analyses, patterns),
        )
        logger.info(
            "Learned %r from %d stories (%d skipped): confidence %d (%s)",
            template.name,
            len(analyses),
            len(skipped),
            result.confidence.overall,
            result.confidence.level.value,
        )
        if self._telemetry is not None:
            self._telemetry.log_learning_run(result)
        return result

    @staticmethod
    def _merged_template(
        analyses: Sequence[StoryAnalysis], merged: Sequence[MergedTask], options: LearnOptions
    ) -> TaskTemplate:
        stories = [analysis.story for analysis in analyses]
        shared_tags = [tag for tag in stories[0].tags if all(tag in story.tags for story in stories[1:])]
        estimations = [story.estimation or 0 for story in stories]

        tasks = _unique_ids([item.task for item in merged])
        if options.normalize_percentages:
            tasks = _normalized(tasks)

        return TaskTemplate(
            name=f"Template learned from {len(stories)} stories",
            description="Auto-generated template based on " + ", ".join(story.id for story in stories),
            author="Atomize",
            created=datetime.datetime.now(datetime.timezone.utc).isoformat(),
            filter=FilterCriteria(
                work_item_types=list(dict.fromkeys(story.type for story in stories)),
                states=list(LEARNED_STATES),
                tags=TagFilter(include=shared_tags) if shared_tags else None,
            ),
            tasks=tasks,
            estimation=EstimationConfig(
                rounding=Rounding.NONE,
                minimum_task_points=0,
                default_parent_estimation=round_to(sum(estimations) / len(estimations)),
            ),
        )
