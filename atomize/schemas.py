from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire (template documents, API payloads)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _as_list(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set)):
        return list(value)
    raise TypeError("must be a list of strings")


class Rounding(str, Enum):
    NEAREST = "nearest"
    UP = "up"
    DOWN = "down"
    NONE = "none"


class AssignMacro(str, Enum):
    PARENT_ASSIGNEE = "@ParentAssignee"
    INHERIT = "@Inherit"
    ME = "@Me"
    UNASSIGNED = "@Unassigned"

    @classmethod
    def parse(cls, value: str | None) -> "AssignMacro | None":
        if value is None:
            return None
        try:
            return cls(value.strip())
        except ValueError:
            return None


class MissingEstimationPolicy(str, Enum):
    WARN = "warn"
    SKIP = "skip"
    USE_DEFAULT = "use-default"


class CustomFieldOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"


class ConfidenceLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EstimationStyle(str, Enum):
    PERCENTAGE = "percentage"
    POINTS = "points"
    HOURS = "hours"
    MIXED = "mixed"


class OutlierKind(str, Enum):
    ESTIMATION = "estimation"
    TASK_COUNT = "task-count"
    MISSING_TASK = "missing-task"
    EXTRA_TASK = "extra-task"


# --- work items -------------------------------------------------------------


class WorkItem(CamelModel):
    """A story or task as reported by the work-item platform."""

    id: str
    title: str
    type: str = "User Story"
    state: str = "New"
    assigned_to: Optional[str] = None
    estimation: Optional[float] = Field(default=None, ge=0)
    tags: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    area_path: Optional[str] = None
    iteration: Optional[str] = None
    priority: Optional[int] = None
    parent_id: Optional[str] = None
    children: Optional[list[WorkItem]] = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator("tags", mode="before")
    @classmethod
    def _ensure_tags(cls, value):
        return _as_list(value)

    def field_values(self) -> dict[str, Any]:
        """Field values addressable by both attribute and camelCase names."""
        values = self.model_dump()
        values.update(self.model_dump(by_alias=True))
        return values


WorkItem.model_rebuild()


# --- templates --------------------------------------------------------------


class TagFilter(CamelModel):
    include: Optional[list[str]] = None
    exclude: Optional[list[str]] = None


class PriorityRange(CamelModel):
    min: Optional[int] = None
    max: Optional[int] = None


class CustomFieldFilter(CamelModel):
    field: str
    operator: CustomFieldOperator
    value: str | float | bool


class FilterCriteria(CamelModel):
    """Abstract story selection. A field left as None is not a criterion."""

    work_item_types: Optional[list[str]] = None
    states: Optional[list[str]] = None
    tags: Optional[TagFilter] = None
    area_paths: Optional[list[str]] = None
    iterations: Optional[list[str]] = None
    assigned_to: Optional[list[str]] = None
    priority: Optional[PriorityRange] = None
    exclude_if_has_tasks: Optional[bool] = None
    custom_fields: Optional[list[CustomFieldFilter]] = None
    custom_query: Optional[str] = None


class PlatformFilter(FilterCriteria):
    """Query shape handed to the work-item platform."""

    project: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)


class TaskDefinition(CamelModel):
    id: Optional[str] = None
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    estimation_percent: Optional[float] = Field(default=None, ge=0, le=100)
    estimation_fixed: Optional[float] = Field(default=None, ge=0)
    estimation_formula: Optional[str] = None
    condition: Optional[str] = None
    depends_on: list[str] = Field(default_factory=list)
    assign_to: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    priority: Optional[int] = None
    activity: Optional[str] = None
    remaining_work: Optional[float] = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator("tags", "depends_on", mode="before")
    @classmethod
    def _ensure_list(cls, value):
        return _as_list(value)

    @field_validator("depends_on")
    @classmethod
    def _unique_dependencies(cls, value: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for entry in value:
            cleaned = entry.strip()
            if cleaned:
                seen.setdefault(cleaned, None)
        return list(seen)


class EstimationConfig(CamelModel):
    strategy: str = "percentage"
    rounding: Rounding = Rounding.NONE
    minimum_task_points: float = Field(default=0, ge=0)
    if_parent_has_no_estimation: MissingEstimationPolicy = MissingEstimationPolicy.WARN
    default_parent_estimation: Optional[float] = Field(default=None, ge=0)

    @field_validator("minimum_task_points", mode="before")
    @classmethod
    def _default_minimum(cls, value):
        return 0 if value is None else value


class EstimationRange(CamelModel):
    min: float
    max: float


class ValidationConfig(CamelModel):
    total_estimation_must_be: Optional[float] = None
    total_estimation_range: Optional[EstimationRange] = None
    min_tasks: Optional[int] = None
    max_tasks: Optional[int] = None


class TaskTemplate(CamelModel):
    version: str = "1.0"
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    author: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    created: Optional[str] = None
    filter: FilterCriteria
    tasks: list[TaskDefinition] = Field(..., min_length=1)
    estimation: EstimationConfig = Field(default_factory=EstimationConfig)
    validation: Optional[ValidationConfig] = None


# --- atomization results ----------------------------------------------------


class CalculatedTask(CamelModel):
    """A template task resolved against one story, ready for creation."""

    title: str
    description: Optional[str] = None
    estimation: float = 0
    estimation_percent: Optional[float] = None
    tags: list[str] = Field(default_factory=list)
    assign_to: Optional[str] = None
    priority: Optional[int] = None
    activity: Optional[str] = None
    remaining_work: Optional[float] = None
    custom_fields: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)
    template_id: Optional[str] = None
    template_index: int = 0


class SkippedTask(CamelModel):
    template_task: TaskDefinition
    reason: str


class EstimationSummary(CamelModel):
    story_estimation: float
    total_task_estimation: float
    difference: float
    percentage_used: float


class StoryAtomizationResult(CamelModel):
    story: WorkItem
    tasks_calculated: list[CalculatedTask] = Field(default_factory=list)
    tasks_created: list[WorkItem] = Field(default_factory=list)
    tasks_skipped: list[SkippedTask] = Field(default_factory=list)
    success: bool
    error: Optional[str] = None
    estimation_summary: Optional[EstimationSummary] = None


class StoryError(CamelModel):
    story_id: str
    error: str


class AtomizationReport(CamelModel):
    model_config = ConfigDict(frozen=True)

    template_name: str
    stories_processed: int
    stories_success: int
    stories_failed: int
    tasks_calculated: int
    tasks_created: int
    tasks_skipped: int
    results: list[StoryAtomizationResult] = Field(default_factory=list)
    errors: list[StoryError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    execution_time_ms: float
    dry_run: bool


# --- learning ---------------------------------------------------------------


class StoryAnalysis(CamelModel):
    story: WorkItem
    tasks: list[WorkItem]
    template: TaskTemplate
    warnings: list[str] = Field(default_factory=list)


class CommonTaskPattern(CamelModel):
    canonical_title: str
    title_variants: list[str]
    frequency: int
    frequency_ratio: float = Field(..., ge=0, le=1)
    average_estimation_percent: float
    estimation_std_dev: float
    activity: str


class EstimationPattern(CamelModel):
    detected_style: EstimationStyle
    average_total_estimation: float
    is_consistent: bool


class PatternDetectionResult(CamelModel):
    common_tasks: list[CommonTaskPattern] = Field(default_factory=list)
    activity_distribution: dict[str, float] = Field(default_factory=dict)
    average_task_count: float = 0
    task_count_std_dev: float = 0
    estimation_pattern: EstimationPattern = Field(
        default_factory=lambda: EstimationPattern(
            detected_style=EstimationStyle.MIXED,
            average_total_estimation=0,
            is_consistent=False,
        )
    )


class TaskSource(CamelModel):
    story_id: str
    task_title: str


class MergedTask(CamelModel):
    task: TaskDefinition
    sources: list[TaskSource]
    similarity: float = Field(..., ge=0, le=1)


class ConfidenceFactor(CamelModel):
    name: str
    score: float
    weight: float
    description: str


class ConfidenceScore(CamelModel):
    overall: int = Field(..., ge=0, le=100)
    level: ConfidenceLevel
    factors: list[ConfidenceFactor]


class Outlier(CamelModel):
    kind: OutlierKind
    story_id: str
    message: str
    value: float
    expected_range: tuple[float, float]
    severity: float


class SkippedStory(CamelModel):
    story_id: str
    reason: str


class LearningResult(CamelModel):
    template: TaskTemplate
    confidence: ConfidenceScore
    analyses: list[StoryAnalysis] = Field(default_factory=list)
    skipped: list[SkippedStory] = Field(default_factory=list)
    patterns: PatternDetectionResult = Field(default_factory=PatternDetectionResult)
    merged_tasks: list[MergedTask] = Field(default_factory=list)
    outliers: list[Outlier] = Field(default_factory=list)
