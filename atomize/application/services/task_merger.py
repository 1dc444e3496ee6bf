from __future__ import annotations

import logging
from itertools import combinations
from typing import Sequence

from atomize.application.services.estimation_calculator import round_half_up, round_to
from atomize.application.services.pattern_detector import (
    DEFAULT_ACTIVITY,
    canonical_title,
    cluster,
    most_common,
    normalize_title,
    slugify_task_title,
    title_similarity,
)
from atomize.schemas import MergedTask, StoryAnalysis, TaskDefinition, TaskSource

logger = logging.getLogger(__name__)

MERGE_THRESHOLD = 0.45


def group_similarity(normalized_titles: Sequence[str]) -> float:
    pairs = list(combinations(normalized_titles, 2))
    if not pairs:
        return 1.0
    return round_to(sum(title_similarity(a, b) for a, b in pairs) / len(pairs))


class TaskMerger:
    """Collapses near-duplicate tasks of several stories into one task list."""

    def __init__(self, similarity_threshold: float = MERGE_THRESHOLD) -> None:
        self.similarity_threshold = similarity_threshold

    def merge(self, analyses: Sequence[StoryAnalysis]) -> list[MergedTask]:
        entries = [
            (analysis.story.id, task, normalize_title(task.title))
            for analysis in analyses
            for task in analysis.template.tasks
        ]
        if not entries:
            return []

        groups = cluster(entries, lambda entry: entry[2], self.similarity_threshold)
        merged: list[MergedTask] = []
        for index, group in enumerate(groups):
            tasks = [task for _, task, _ in group]
            title = canonical_title([task.title for task in tasks])
            percents = [task.estimation_percent or 0 for task in tasks]
            priorities = [task.priority for task in tasks if task.priority is not None]
            tags = list(dict.fromkeys(tag for task in tasks for tag in task.tags))

            definition = TaskDefinition(
                id=slugify_task_title(title, index),
                title=title,
                estimation_percent=round_half_up(sum(percents) / len(percents)),
                activity=most_common(task.activity or DEFAULT_ACTIVITY for task in tasks),
                tags=tags,
                priority=round_half_up(sum(priorities) / len(priorities)) if priorities else None,
            )
            merged.append(
                MergedTask(
                    task=definition,
                    sources=[TaskSource(story_id=story_id, task_title=task.title) for story_id, task, _ in group],
                    similarity=group_similarity([normalized for _, _, normalized in group]),
                )
            )

        merged.sort(key=lambda item: (len(item.sources), item.task.estimation_percent or 0), reverse=True)
        logger.debug("Merged %d tasks into %d", len(entries), len(merged))
        return merged
