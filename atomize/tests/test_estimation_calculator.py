from __future__ import annotations

import pytest

from atomize.application.services.estimation_calculator import (
    EstimationCalculator,
    apply_rounding,
    normalize_percentages,
    round_half_up,
)
from atomize.schemas import (
    CalculatedTask,
    EstimationConfig,
    MissingEstimationPolicy,
    Rounding,
    TaskDefinition,
    WorkItem,
)

FRONTEND_ONLY = '${story.tags} CONTAINS "frontend"'


def _story(**overrides) -> WorkItem:
    values = {
        "id": "STORY-1",
        "title": "Checkout flow",
        "estimation": 10,
        "tags": ["backend"],
        "assigned_to": "owner@example.com",
    }
    values.update(overrides)
    return WorkItem(**values)


def _task(title: str, percent: float | None = None, **extra) -> TaskDefinition:
    return TaskDefinition(title=title, estimation_percent=percent, **extra)


def test_skipped_task_triggers_renormalization():
    tasks = [
        _task("Design", 20),
        _task("Build", 30),
        _task("Frontend", 30, condition=FRONTEND_ONLY),
        _task("Test", 20),
    ]

    result = EstimationCalculator().calculate(_story(), tasks)

    assert [t.estimation_percent for t in result.calculated_tasks] == [29, 43, 28]
    assert [t.estimation for t in result.calculated_tasks] == pytest.approx([2.9, 4.3, 2.8])
    assert sum(t.estimation for t in result.calculated_tasks) == pytest.approx(10)
    assert len(result.skipped_tasks) == 1
    assert result.skipped_tasks[0].reason == f"Condition not met: {FRONTEND_ONLY}"


def test_nearest_rounding_without_skips():
    tasks = [_task("Design", 30), _task("Build", 50), _task("Test", 20)]

    result = EstimationCalculator().calculate(_story(), tasks, EstimationConfig(rounding=Rounding.NEAREST))

    assert [t.estimation for t in result.calculated_tasks] == [3, 5, 2]
    assert result.skipped_tasks == []


def test_single_remaining_task_takes_everything():
    tasks = [
        _task("Frontend", 30, condition=FRONTEND_ONLY),
        _task("Build", 40),
        _task("Mobile", 30, condition='${story.tags} CONTAINS "mobile"'),
    ]

    result = EstimationCalculator().calculate(_story(), tasks)

    assert len(result.calculated_tasks) == 1
    assert result.calculated_tasks[0].estimation_percent == 100
    assert result.calculated_tasks[0].estimation == 10


def test_declared_percentages_kept_when_nothing_skipped():
    tasks = [_task("Design", 30), _task("Build", 30)]

    result = EstimationCalculator().calculate(_story(), tasks)

    assert [t.estimation_percent for t in result.calculated_tasks] == [30, 30]
    assert [t.estimation for t in result.calculated_tasks] == [3, 3]


def test_renormalization_ignores_fixed_and_formula_tasks():
    tasks = [
        _task("Kickoff", estimation_fixed=2),
        _task("Build", 40),
        _task("Frontend", 40, condition=FRONTEND_ONLY),
        _task("Test", 30),
        _task("Stretch", estimation_formula="story.estimation * 0.1"),
    ]

    result = EstimationCalculator().calculate(_story(), tasks)
    by_title = {t.title: t for t in result.calculated_tasks}

    assert by_title["Kickoff"].estimation == 2
    assert by_title["Kickoff"].estimation_percent is None
    assert by_title["Build"].estimation_percent == 57
    assert by_title["Test"].estimation_percent == 43
    assert by_title["Build"].estimation == pytest.approx(5.7)
    assert by_title["Stretch"].estimation == 0


def test_fixed_estimation_wins_over_percentage():
    tasks = [_task("Spike", 50, estimation_fixed=1.5)]

    result = EstimationCalculator().calculate(_story(), tasks)

    assert result.calculated_tasks[0].estimation == 1.5


def test_declared_percentage_wins_over_formula():
    tasks = [
        _task("Build", 50, estimation_formula="story.estimation * 0.5"),
        _task("Test", 50),
    ]

    result = EstimationCalculator().calculate(_story(), tasks)

    assert [(t.estimation, t.estimation_percent) for t in result.calculated_tasks] == [(5, 50), (5, 50)]


def test_percentage_with_formula_is_renormalized():
    tasks = [
        _task("Build", 40, estimation_formula="story.estimation * 0.4"),
        _task("Frontend", 40, condition=FRONTEND_ONLY),
        _task("Test", 30),
    ]

    result = EstimationCalculator().calculate(_story(), tasks)

    assert [t.estimation_percent for t in result.calculated_tasks] == [57, 43]


@pytest.mark.parametrize("story_estimation", [7, 13, 0.5])
@pytest.mark.parametrize(
    "percents",
    [[33, 33, 34], [20, 30, 50], [12.5, 12.5, 25, 50], [17, 17, 17, 17, 16, 16], [100]],
)
def test_unrounded_total_tracks_story_estimation(story_estimation, percents):
    tasks = [_task(f"Task {i}", percent) for i, percent in enumerate(percents)]

    result = EstimationCalculator().calculate(_story(estimation=story_estimation), tasks)
    total = sum(t.estimation for t in result.calculated_tasks)

    assert result.skipped_tasks == []
    # Each task is truncated to two decimals.
    assert abs(total - story_estimation) <= 0.01 * len(tasks) + 1e-9


def test_minimum_task_points_applies_after_rounding():
    config = EstimationConfig(rounding=Rounding.DOWN, minimum_task_points=1)
    tasks = [_task("Review", 10), _task("Build", 90)]

    result = EstimationCalculator().calculate(_story(estimation=3), tasks, config)

    assert [t.estimation for t in result.calculated_tasks] == [1, 2]


def test_missing_estimation_warn_policy_yields_zero_tasks():
    tasks = [_task("Design", 50), _task("Build", 50)]

    result = EstimationCalculator().calculate(_story(estimation=None), tasks)

    assert [t.estimation for t in result.calculated_tasks] == [0, 0]


def test_missing_estimation_skip_policy_skips_every_task():
    config = EstimationConfig(if_parent_has_no_estimation=MissingEstimationPolicy.SKIP)
    tasks = [_task("Design", 50), _task("Build", 50)]

    result = EstimationCalculator().calculate(_story(estimation=None), tasks, config)

    assert result.calculated_tasks == []
    assert len(result.skipped_tasks) == 2
    assert "has no estimation" in result.skipped_tasks[0].reason


def test_missing_estimation_default_policy_uses_default():
    config = EstimationConfig(
        if_parent_has_no_estimation=MissingEstimationPolicy.USE_DEFAULT,
        default_parent_estimation=20,
    )

    result = EstimationCalculator().calculate(_story(estimation=None), [_task("Build", 50)], config)

    assert result.calculated_tasks[0].estimation == 10


def test_assignment_macros_and_interpolation():
    tasks = [
        _task("Design ${story.title}", 25, assign_to="@ParentAssignee", id="design"),
        _task("Build ${story.id}", 25, assign_to="@Me", description="Part of ${story.title}"),
        _task("Triage", 25, assign_to="@Unassigned"),
        _task("Review", 25, assign_to="reviewer@example.com", depends_on=["design"]),
    ]

    result = EstimationCalculator().calculate(_story(), tasks, identity="me@example.com")
    design, build, triage, review = result.calculated_tasks

    assert design.title == "Design Checkout flow"
    assert design.assign_to == "owner@example.com"
    assert design.template_id == "design"
    assert build.title == "Build STORY-1"
    assert build.description == "Part of Checkout flow"
    assert build.assign_to == "me@example.com"
    assert triage.assign_to is None
    assert review.assign_to == "reviewer@example.com"
    assert review.depends_on == ["design"]
    assert [t.template_index for t in result.calculated_tasks] == [0, 1, 2, 3]


def test_me_assignment_without_identity_is_unassigned():
    result = EstimationCalculator().calculate(_story(), [_task("Build", 100, assign_to="@Me")])

    assert result.calculated_tasks[0].assign_to is None


@pytest.mark.parametrize(
    "percents, expected",
    [
        ([20, 30, 20], [29, 43, 28]),
        ([50, 50], [50, 50]),
        ([0, 0, 0], [34, 33, 33]),
        ([60, 60], [50, 50]),
        ([], []),
    ],
)
def test_normalize_percentages(percents, expected):
    assert normalize_percentages(percents) == expected


def test_normalized_percentages_always_sum_to_hundred():
    assert sum(normalize_percentages([7, 11, 13, 17, 19])) == 100


def test_rounding_helpers():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert apply_rounding(2.1, Rounding.UP) == 3
    assert apply_rounding(2.9, Rounding.DOWN) == 2
    assert apply_rounding(2.4, Rounding.NEAREST) == 2
    assert apply_rounding(2.456, Rounding.NONE) == 2.45


def test_estimation_summary_and_validation():
    calculator = EstimationCalculator()
    story = _story()
    tasks = [
        CalculatedTask(title="Design", estimation=3),
        CalculatedTask(title="Build", estimation=5),
        CalculatedTask(title="Notes", estimation=0),
    ]

    summary = calculator.get_estimation_summary(story, tasks)
    validation = calculator.validate_estimation(story, tasks)

    assert calculator.calculate_total_estimation(tasks) == 8
    assert summary.difference == 2
    assert summary.percentage_used == 80
    assert validation.valid is False
    assert any("differs from story estimation" in w for w in validation.warnings)
    assert any("1 task(s) have zero estimation: Notes" in w for w in validation.warnings)


def test_validation_passes_within_tolerance():
    tasks = [CalculatedTask(title="Design", estimation=4.8), CalculatedTask(title="Build", estimation=5)]

    assert EstimationCalculator().validate_estimation(_story(), tasks).valid is True
