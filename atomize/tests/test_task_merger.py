from __future__ import annotations

from atomize.application.services.task_merger import TaskMerger, group_similarity
from atomize.schemas import TaskDefinition


def test_group_similarity():
    assert group_similarity(["api"]) == 1.0
    assert group_similarity(["api", "api", "api"]) == 1.0
    assert group_similarity(["api", "deploy"]) == 0.0


def test_merge_identical_stories(make_analysis):
    analyses = [
        make_analysis("S1"),
        make_analysis("S2"),
        make_analysis(
            "S3",
            [
                ("Design API", 20, 2, "Design"),
                ("Implement backend service", 40, 3, "Development"),
                ("Write unit tests", 30, 3, "Testing"),
                ("Release to staging", 10, 1, "Deployment"),
            ],
        ),
    ]

    merged = TaskMerger().merge(analyses)

    assert [item.task.title for item in merged] == [
        "Implement backend service",
        "Write unit tests",
        "Design API",
        "Release to staging",
    ]
    assert [item.task.id for item in merged] == ["backend-service", "write-unit-tests", "api", "release-to-staging"]
    assert [len(item.sources) for item in merged] == [3, 3, 3, 1]
    assert merged[0].task.estimation_percent == 47
    assert merged[0].task.activity == "Development"
    assert all(item.similarity == 1.0 for item in merged)
    assert {source.story_id for source in merged[0].sources} == {"S1", "S2", "S3"}


def test_merge_near_duplicate_titles(make_analysis):
    first = make_analysis("S1", [("Design API", 30, 3, "Design"), ("Write unit tests", 70, 5, "Testing")])
    second = make_analysis("S2", [("Design API", 40, 3, "Design"), ("Write unit tests for API", 60, 5, "Testing")])
    first.template.tasks[1] = TaskDefinition(
        title="Write unit tests", estimation_percent=70, activity="Testing", tags=["qa"], priority=1
    )
    second.template.tasks[1] = TaskDefinition(
        title="Write unit tests for API", estimation_percent=60, activity="Testing", tags=["unit"], priority=2
    )

    merged = TaskMerger().merge([first, second])
    tests, design = merged

    assert len(merged) == 2
    assert tests.task.title == "Write unit tests for API"
    assert tests.task.estimation_percent == 65
    assert tests.task.tags == ["qa", "unit"]
    assert tests.task.priority == 2
    assert 0.45 <= tests.similarity < 1
    assert [source.task_title for source in tests.sources] == ["Write unit tests", "Write unit tests for API"]
    assert design.task.estimation_percent == 35


def test_merge_without_analyses():
    assert TaskMerger().merge([]) == []
