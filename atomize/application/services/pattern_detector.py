from __future__ import annotations

import logging
import math
import re
from collections import Counter
from typing import Callable, Iterable, Sequence, TypeVar

from atomize.application.services.estimation_calculator import round_to
from atomize.schemas import (
    CommonTaskPattern,
    EstimationPattern,
    EstimationStyle,
    PatternDetectionResult,
    StoryAnalysis,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ACTIVITY = "Development"
COMMON_TASK_THRESHOLD = 0.6

PLACEHOLDER = re.compile(r"\$\{story\.(?:title|id|description)\}")
VERB_PREFIX = re.compile(r"^(?:task|implement|create|build|design|test|fix)\s*:?\s*", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_FIBONACCI = {1, 2, 3, 5, 8, 13, 21, 34}


def normalize_title(title: str) -> str:
    """Title reduced to what distinguishes one task from another."""
    cleaned = VERB_PREFIX.sub("", PLACEHOLDER.sub("", title))
    return _WHITESPACE.sub(" ", cleaned).strip().lower()


def slugify_task_title(title: str, index: int) -> str:
    slug = VERB_PREFIX.sub("", PLACEHOLDER.sub("", title.lower()))
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"-+", "-", _WHITESPACE.sub("-", slug)).strip("-")
    if not slug:
        return f"task-{index + 1}"
    return slug[:30]


def canonical_title(titles: Sequence[str]) -> str:
    """Most frequent title; ties go to the longer one."""
    best = titles[0] if titles else ""
    best_count = 0
    for title, count in Counter(titles).items():
        if count > best_count or (count == best_count and len(title) > len(best)):
            best, best_count = title, count
    return best


def most_common(values: Iterable[str], default: str = DEFAULT_ACTIVITY) -> str:
    best, best_count = default, 0
    for value, count in Counter(values).items():
        if count > best_count:
            best, best_count = value, count
    return best


def population_std_dev(values: Sequence[float]) -> float:
    if len(values) <= 1:
        return 0.0
    mean = sum(values) / len(values)
    variance = sum((value - mean) ** 2 for value in values) / len(values)
    return round_to(math.sqrt(variance))


def _bigrams(text: str) -> set[str]:
    normalized = _WHITESPACE.sub(" ", text.lower())
    return {normalized[i:i + 2] for i in range(len(normalized) - 1)}


def bigram_dice(a: str, b: str) -> float:
    left, right = _bigrams(a), _bigrams(b)
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return 2 * len(left & right) / (len(left) + len(right))


def word_jaccard(a: str, b: str) -> float:
    left, right = set(a.lower().split()), set(b.lower().split())
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def title_similarity(a: str, b: str) -> float:
    """0.6 x character-bigram Dice + 0.4 x word Jaccard, in [0, 1]."""
    return 0.6 * bigram_dice(a, b) + 0.4 * word_jaccard(a, b)


def cluster(items: Sequence[T], key: Callable[[T], str], threshold: float) -> list[list[T]]:
    """Complete-linkage agglomerative clustering on ``key`` similarity.

    The two clusters whose least similar members are most alike are merged
    until no pair reaches ``threshold``.
    """
    if len(items) <= 1:
        return [list(items)] if items else []

    keys = [key(item) for item in items]
    size = len(keys)
    similarity = [[1.0] * size for _ in range(size)]
    for i in range(size):
        for j in range(i + 1, size):
            similarity[i][j] = similarity[j][i] = title_similarity(keys[i], keys[j])

    clusters: list[list[int]] = [[i] for i in range(size)]
    while len(clusters) > 1:
        best_pair: tuple[int, int] | None = None
        best = -1.0
        for i in range(len(clusters)):
            for j in range(i + 1, len(clusters)):
                linkage = min(similarity[a][b] for a in clusters[i] for b in clusters[j])
                if linkage > best:
                    best, best_pair = linkage, (i, j)
        if best_pair is None or best < threshold:
            break
        i, j = best_pair
        clusters[i] = clusters[i] + clusters[j]
        del clusters[j]

    return [[items[index] for index in members] for members in clusters]


class PatternDetector:
    """Finds what recurs across several analyzed stories."""

    def __init__(self, similarity_threshold: float = COMMON_TASK_THRESHOLD) -> None:
        self.similarity_threshold = similarity_threshold

    def detect(self, analyses: Sequence[StoryAnalysis]) -> PatternDetectionResult:
        if not analyses:
            return PatternDetectionResult()

        counts = [len(analysis.tasks) for analysis in analyses]
        result = PatternDetectionResult(
            common_tasks=self._common_tasks(analyses),
            activity_distribution=self._activity_distribution(analyses),
            average_task_count=round_to(sum(counts) / len(counts)),
            task_count_std_dev=population_std_dev(counts),
            estimation_pattern=self._estimation_pattern(analyses),
        )
        logger.debug(
            "Detected %d common tasks across %d stories (style=%s)",
            len(result.common_tasks),
            len(analyses),
            result.estimation_pattern.detected_style.value,
        )
        return result

    def _common_tasks(self, analyses: Sequence[StoryAnalysis]) -> list[CommonTaskPattern]:
        entries = [
            (analysis.story.id, task)
            for analysis in analyses
            for task in analysis.template.tasks
        ]
        groups = cluster(entries, lambda entry: normalize_title(entry[1].title), self.similarity_threshold)

        patterns: list[CommonTaskPattern] = []
        for group in groups:
            titles = [task.title for _, task in group]
            percents = [task.estimation_percent or 0 for _, task in group]
            stories = {story_id for story_id, _ in group}
            patterns.append(
                CommonTaskPattern(
                    canonical_title=canonical_title(titles),
                    title_variants=list(dict.fromkeys(titles)),
                    frequency=len(stories),
                    frequency_ratio=len(stories) / len(analyses),
                    average_estimation_percent=round_to(sum(percents) / len(percents)),
                    estimation_std_dev=population_std_dev(percents),
                    activity=most_common(task.activity or DEFAULT_ACTIVITY for _, task in group),
                )
            )
        return patterns

    @staticmethod
    def _activity_distribution(analyses: Sequence[StoryAnalysis]) -> dict[str, float]:
        counts = Counter(
            task.activity or DEFAULT_ACTIVITY
            for analysis in analyses
            for task in analysis.template.tasks
        )
        total = sum(counts.values())
        if not total:
            return {}
        return {activity: round_to(count / total * 100) for activity, count in counts.items()}

    @staticmethod
    def _estimation_pattern(analyses: Sequence[StoryAnalysis]) -> EstimationPattern:
        totals: list[float] = []
        styles: list[EstimationStyle] = []
        for analysis in analyses:
            story_estimation = analysis.story.estimation or 0
            totals.append(story_estimation)
            if story_estimation <= 0:
                continue
            estimations = [task.estimation for task in analysis.tasks if task.estimation]
            if not estimations:
                styles.append(EstimationStyle.PERCENTAGE)
            elif all(value <= 1 for value in estimations) and abs(sum(estimations) - 1) < 0.1:
                styles.append(EstimationStyle.PERCENTAGE)
            elif all(value in _FIBONACCI for value in estimations):
                styles.append(EstimationStyle.POINTS)
            else:
                styles.append(EstimationStyle.HOURS)

        distinct = list(dict.fromkeys(styles))
        return EstimationPattern(
            detected_style=distinct[0] if len(distinct) == 1 else EstimationStyle.MIXED,
            average_total_estimation=round_to(sum(totals) / len(totals)) if totals else 0,
            is_consistent=len(distinct) <= 1,
        )
