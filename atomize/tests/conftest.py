from __future__ import annotations

from typing import Sequence

import pytest

from atomize.schemas import FilterCriteria, StoryAnalysis, TaskDefinition, TaskTemplate, WorkItem

STANDARD_TASKS = (
    ("Design API", 20, 2, "Design"),
    ("Implement backend service", 50, 5, "Development"),
    ("Write unit tests", 30, 3, "Testing"),
)


def build_analysis(
    story_id: str,
    tasks: Sequence[tuple[str, float, float, str]] = STANDARD_TASKS,
    *,
    story_estimation: float = 10,
) -> StoryAnalysis:
    """Analysis of a story whose children are ``(title, percent, estimation, activity)`` tuples."""
    story = WorkItem(id=story_id, title=f"Story {story_id}", estimation=story_estimation)
    children = [
        WorkItem(id=f"{story_id}-{index}", title=title, type="Task", estimation=estimation, parent_id=story_id)
        for index, (title, _, estimation, _) in enumerate(tasks)
    ]
    template = TaskTemplate(
        name=f"Template learned from {story_id}",
        filter=FilterCriteria(work_item_types=["User Story"]),
        tasks=[
            TaskDefinition(title=title, estimation_percent=percent, activity=activity)
            for title, percent, _, activity in tasks
        ],
    )
    return StoryAnalysis(story=story, tasks=children, template=template)


@pytest.fixture
def make_analysis():
    return build_analysis
