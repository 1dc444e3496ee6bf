from __future__ import annotations

import logging
import math
from itertools import combinations
from typing import Sequence

from atomize.application.services.estimation_calculator import round_half_up
from atomize.schemas import (
    ConfidenceFactor,
    ConfidenceLevel,
    ConfidenceScore,
    MergedTask,
    PatternDetectionResult,
    StoryAnalysis,
)

logger = logging.getLogger(__name__)

SAMPLE_SIZE = "Sample Size"
TASK_CONSISTENCY = "Task Consistency"
ESTIMATION_CONSISTENCY = "Estimation Consistency"
MERGE_QUALITY = "Merge Quality"
ESTIMATION_COVERAGE = "Estimation Coverage"

HIGH_CONFIDENCE = 75
MEDIUM_CONFIDENCE = 45

# Extra weight on the sample-size gap for 1..4 stories.
_SMALL_SAMPLE_PENALTY = {1: 0.5, 2: 0.25, 3: 0.10, 4: 0.05}
_SAMPLE_SIZE_STEPS = {0: 0, 1: 20, 2: 40, 3: 60, 4: 75}


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def _histogram(analysis: StoryAnalysis) -> list[int]:
    bins = [0] * 10
    for task in analysis.template.tasks:
        bins[min(9, int((task.estimation_percent or 0) // 10))] += 1
    return bins


class ConfidenceScorer:
    """Scores how far a learned template can be trusted, 0 to 100."""

    def score(
        self,
        analyses: Sequence[StoryAnalysis],
        patterns: PatternDetectionResult,
        merged_tasks: Sequence[MergedTask],
    ) -> ConfidenceScore:
        factors = [
            self._sample_size(len(analyses)),
            self._task_consistency(analyses, patterns),
            self._estimation_consistency(analyses),
            self._merge_quality(merged_tasks, analyses),
            self._estimation_coverage(analyses),
        ]
        weighted = sum(factor.score * factor.weight for factor in factors)
        penalty = (100 - factors[0].score) * _SMALL_SAMPLE_PENALTY.get(len(analyses), 0)
        overall = max(0, round_half_up(weighted - penalty))

        if overall >= HIGH_CONFIDENCE:
            level = ConfidenceLevel.HIGH
        elif overall >= MEDIUM_CONFIDENCE:
            level = ConfidenceLevel.MEDIUM
        else:
            level = ConfidenceLevel.LOW

        logger.debug("Confidence %d (%s) from %d stories", overall, level.value, len(analyses))
        return ConfidenceScore(overall=min(100, overall), level=level, factors=factors)

    @staticmethod
    def _sample_size(count: int) -> ConfidenceFactor:
        score = _SAMPLE_SIZE_STEPS.get(count, min(90, 75 + (count - 4) * 5)) if count > 0 else 0
        noun = "story" if count == 1 else "stories"
        return ConfidenceFactor(
            name=SAMPLE_SIZE, score=score, weight=0.25, description=f"Based on {count} {noun} analyzed"
        )

    @staticmethod
    def _task_consistency(analyses: Sequence[StoryAnalysis], patterns: PatternDetectionResult) -> ConfidenceFactor:
        total = sum(len(analysis.tasks) for analysis in analyses)
        if not total:
            return ConfidenceFactor(name=TASK_CONSISTENCY, score=0, weight=0.30, description="No tasks to analyze")

        common = sum(1 for task in patterns.common_tasks if task.frequency_ratio > 0.5)
        average = total / len(analyses)
        score = round_half_up(min(100.0, common / average * 100))
        return ConfidenceFactor(
            name=TASK_CONSISTENCY,
            score=score,
            weight=0.30,
            description=f"{common} common tasks of ~{round_half_up(average)} avg per story",
        )

    @staticmethod
    def _estimation_consistency(analyses: Sequence[StoryAnalysis]) -> ConfidenceFactor:
        if len(analyses) < 2:
            return ConfidenceFactor(
                name=ESTIMATION_CONSISTENCY,
                score=50,
                weight=0.20,
                description="Insufficient stories for comparison",
            )
        pairs = list(combinations([_histogram(analysis) for analysis in analyses], 2))
        average = sum(cosine_similarity(a, b) for a, b in pairs) / len(pairs)
        score = round_half_up(average * 100)
        return ConfidenceFactor(
            name=ESTIMATION_CONSISTENCY,
            score=score,
            weight=0.20,
            description=f"Estimation distribution similarity: {score}%",
        )

    @staticmethod
    def _merge_quality(merged_tasks: Sequence[MergedTask], analyses: Sequence[StoryAnalysis]) -> ConfidenceFactor:
        if not merged_tasks:
            return ConfidenceFactor(name=MERGE_QUALITY, score=0, weight=0.15, description="No tasks to merge")

        original = sum(len(analysis.tasks) for analysis in analyses)
        merge_ratio = max(0.0, 1 - len(merged_tasks) / original) if original else 0.0
        similarity = sum(task.similarity for task in merged_tasks) / len(merged_tasks)
        return ConfidenceFactor(
            name=MERGE_QUALITY,
            score=round_half_up((merge_ratio * 0.6 + similarity * 0.4) * 100),
            weight=0.15,
            description=f"Merge ratio {round_half_up(merge_ratio * 100)}%, similarity {round_half_up(similarity * 100)}%",
        )

    @staticmethod
    def _estimation_coverage(analyses: Sequence[StoryAnalysis]) -> ConfidenceFactor:
        tasks = [task for analysis in analyses for task in analysis.template.tasks]
        estimated = sum(1 for task in tasks if (task.estimation_percent or 0) > 0)
        coverage = estimated / len(tasks) if tasks else 0
        return ConfidenceFactor(
            name=ESTIMATION_COVERAGE,
            score=round_half_up(coverage * 100),
            weight=0.10,
            description=f"{estimated}/{len(tasks)} tasks have estimation values",
        )
