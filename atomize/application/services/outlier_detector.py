from __future__ import annotations

import logging
from statistics import median
from typing import Sequence

from atomize.application.services.estimation_calculator import round_half_up, round_to
from atomize.application.services.pattern_detector import normalize_title, title_similarity
from atomize.schemas import Outlier, OutlierKind, PatternDetectionResult, StoryAnalysis

logger = logging.getLogger(__name__)

Z_THRESHOLD = 3.5
MAD_TO_STD_DEV = 0.6745
COMMON_TASK_RATIO = 0.8
RARE_TASK_RATIO = 0.2
TITLE_MATCH = 0.5


def median_absolute_deviation(values: Sequence[float]) -> tuple[float, float]:
    """Return ``(median, MAD)`` of ``values``."""
    if not values:
        return 0.0, 0.0
    center = median(values)
    return center, median(abs(value - center) for value in values)


def modified_z_score(value: float, center: float, mad: float) -> float:
    if mad == 0:
        return 0.0
    return MAD_TO_STD_DEV * (value - center) / mad


class OutlierDetector:
    """Flags stories that do not look like the rest of the sample."""

    def detect(self, analyses: Sequence[StoryAnalysis], patterns: PatternDetectionResult) -> list[Outlier]:
        if len(analyses) < 2:
            return []
        outliers = [
            *self._numeric_outliers(
                OutlierKind.ESTIMATION,
                [(a.story.id, a.story.estimation or 0) for a in analyses if (a.story.estimation or 0) > 0],
            ),
            *self._numeric_outliers(OutlierKind.TASK_COUNT, [(a.story.id, len(a.tasks)) for a in analyses]),
            *self._missing_tasks(analyses, patterns),
            *self._extra_tasks(analyses, patterns),
        ]
        if outliers:
            logger.info("Found %d outliers across %d stories", len(outliers), len(analyses))
        return outliers

    @staticmethod
    def _numeric_outliers(kind: OutlierKind, samples: list[tuple[str, float]]) -> list[Outlier]:
        if len(samples) < 2:
            return []
        center, mad = median_absolute_deviation([value for _, value in samples])
        if mad == 0:
            return []

        spread = Z_THRESHOLD * mad / MAD_TO_STD_DEV
        if kind is OutlierKind.TASK_COUNT:
            low, high = float(round_half_up(max(0.0, center - spread))), float(round_half_up(center + spread))
        else:
            low, high = round_to(max(0.0, center - spread)), round_to(center + spread)

        outliers: list[Outlier] = []
        for story_id, value in samples:
            z = abs(modified_z_score(value, center, mad))
            if z <= Z_THRESHOLD:
                continue
            if kind is OutlierKind.TASK_COUNT:
                message = f"Story {story_id} has {value:g} tasks which is outside the expected range [{low:g}, {high:g}]"
            else:
                message = (
                    f"Story {story_id} has estimation {value:g} which is outside the expected range [{low:g}, {high:g}]"
                )
            outliers.append(
                Outlier(
                    kind=kind,
                    story_id=story_id,
                    message=message,
                    value=value,
                    expected_range=(low, high),
                    severity=round_to(z / Z_THRESHOLD),
                )
            )
        return outliers

    @staticmethod
    def _missing_tasks(analyses: Sequence[StoryAnalysis], patterns: PatternDetectionResult) -> list[Outlier]:
        common = [task for task in patterns.common_tasks if task.frequency_ratio >= COMMON_TASK_RATIO]
        outliers: list[Outlier] = []
        for analysis in analyses:
            titles = [normalize_title(task.title) for task in analysis.template.tasks]
            for pattern in common:
                canonical = normalize_title(pattern.canonical_title)
                if any(title_similarity(title, canonical) >= TITLE_MATCH for title in titles):
                    continue
                outliers.append(
                    Outlier(
                        kind=OutlierKind.MISSING_TASK,
                        story_id=analysis.story.id,
                        message=(
                            f'Story {analysis.story.id} is missing common task "{pattern.canonical_title}" '
                            f"(found in {round_half_up(pattern.frequency_ratio * 100)}% of stories)"
                        ),
                        value=0,
                        expected_range=(1, 1),
                        severity=round_to(pattern.frequency_ratio),
                    )
                )
        return outliers

    @staticmethod
    def _extra_tasks(analyses: Sequence[StoryAnalysis], patterns: PatternDetectionResult) -> list[Outlier]:
        outliers: list[Outlier] = []
        for pattern in patterns.common_tasks:
            if pattern.frequency != 1 or pattern.frequency_ratio >= RARE_TASK_RATIO:
                continue
            titles = {pattern.canonical_title, *pattern.title_variants}
            story_id = next(
                (a.story.id for a in analyses if any(task.title in titles for task in a.template.tasks)),
                "unknown",
            )
            outliers.append(
                Outlier(
                    kind=OutlierKind.EXTRA_TASK,
                    story_id=story_id,
                    message=f'Task "{pattern.canonical_title}" only appears in story {story_id} and may be story-specific',
                    value=pattern.frequency,
                    expected_range=(2, len(analyses)),
                    severity=round_to(1 - pattern.frequency_ratio),
                )
            )
        return outliers
