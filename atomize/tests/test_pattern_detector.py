from __future__ import annotations

import pytest

from atomize.application.services.pattern_detector import (
    PatternDetector,
    canonical_title,
    cluster,
    normalize_title,
    population_std_dev,
    slugify_task_title,
    title_similarity,
)
from atomize.schemas import EstimationStyle

RELEASE = ("Release to staging", 10, 1, "Deployment")


def test_normalize_title_strips_placeholders_and_verbs():
    assert normalize_title("Implement: ${story.title} API") == "api"
    assert normalize_title("Design   Login   Flow") == "login flow"
    assert normalize_title("Write unit tests") == "write unit tests"


def test_slugify_task_title():
    assert slugify_task_title("Implement CSV writer", 0) == "csv-writer"
    assert slugify_task_title("Implement: ${story.title}", 2) == "task-3"
    assert slugify_task_title("Write unit tests for the export module", 0) == "write-unit-tests-for-the-expor"


def test_title_similarity_bounds():
    assert title_similarity("design api", "design api") == 1.0
    assert title_similarity("abc", "xyz") == 0.0
    assert 0 < title_similarity("write unit tests", "write unit tests for api") < 1


def test_canonical_title_prefers_frequent_then_longer():
    assert canonical_title(["Tests", "Unit tests", "Tests"]) == "Tests"
    assert canonical_title(["Tests", "Unit tests"]) == "Unit tests"


def test_cluster_groups_similar_keys_only():
    items = ["write unit tests", "write unit tests for api", "deploy"]

    groups = cluster(items, lambda item: item, 0.45)

    assert sorted(map(len, groups)) == [1, 2]


def test_population_std_dev():
    assert population_std_dev([3]) == 0
    assert population_std_dev([3, 3, 4]) == pytest.approx(0.47)


def test_detect_common_tasks_and_distribution(make_analysis):
    analyses = [
        make_analysis("S1"),
        make_analysis("S2"),
        make_analysis(
            "S3",
            [
                ("Design API", 20, 2, "Design"),
                ("Implement backend service", 40, 3, "Development"),
                ("Write unit tests", 30, 3, "Testing"),
                RELEASE,
            ],
        ),
    ]

    result = PatternDetector().detect(analyses)
    by_title = {pattern.canonical_title: pattern for pattern in result.common_tasks}

    assert set(by_title) == {"Design API", "Implement backend service", "Write unit tests", "Release to staging"}
    assert by_title["Design API"].frequency == 3
    assert by_title["Design API"].frequency_ratio == 1.0
    assert by_title["Implement backend service"].average_estimation_percent == pytest.approx(46.67)
    assert by_title["Release to staging"].frequency == 1
    assert by_title["Release to staging"].activity == "Deployment"
    assert result.activity_distribution == {"Design": 30.0, "Development": 30.0, "Testing": 30.0, "Deployment": 10.0}
    assert result.average_task_count == pytest.approx(3.33)
    assert result.task_count_std_dev == pytest.approx(0.47)
    assert result.estimation_pattern.detected_style is EstimationStyle.POINTS
    assert result.estimation_pattern.is_consistent is True
    assert result.estimation_pattern.average_total_estimation == 10


def test_detect_without_analyses():
    result = PatternDetector().detect([])

    assert result.common_tasks == []
    assert result.estimation_pattern.detected_style is EstimationStyle.MIXED
    assert result.estimation_pattern.is_consistent is False


def test_estimation_style_detection(make_analysis):
    fractions = [("Design API", 20, 0.2, "Design"), ("Implement backend service", 80, 0.8, "Development")]
    hours = [("Design API", 40, 2.5, "Design"), ("Implement backend service", 60, 4, "Development")]
    detector = PatternDetector()

    percentage = detector.detect([make_analysis("S1", fractions, story_estimation=1)])
    hourly = detector.detect([make_analysis("S1", hours, story_estimation=6.5)])
    mixed = detector.detect([make_analysis("S1", fractions, story_estimation=1), make_analysis("S2", hours)])

    assert percentage.estimation_pattern.detected_style is EstimationStyle.PERCENTAGE
    assert hourly.estimation_pattern.detected_style is EstimationStyle.HOURS
    assert mixed.estimation_pattern.detected_style is EstimationStyle.MIXED
    assert mixed.estimation_pattern.is_consistent is False
