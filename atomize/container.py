from __future__ import annotations

import logging
from functools import lru_cache

from atomize.application.services.pattern_detector import PatternDetector
from atomize.application.services.task_merger import TaskMerger
from atomize.application.services.template_validator import TemplateValidator
from atomize.application.use_cases.atomize_stories import Atomizer
from atomize.application.use_cases.learn_template import StoryLearner
from atomize.domain.errors import AtomizeError, ErrorKind
from atomize.infrastructure.platforms.mock import MockPlatformAdapter
from atomize.infrastructure.telemetry.mlflow_adapter import MLflowTelemetryAdapter
from atomize.settings import get_settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_platform() -> MockPlatformAdapter:
    cfg = get_settings().platform
    if cfg.provider != "mock":
        raise AtomizeError(
            f"Unknown platform provider '{cfg.provider}'. Supported providers: mock",
            kind=ErrorKind.CONFIGURATION_ERROR,
            platform=cfg.provider,
        )
    return MockPlatformAdapter(identity=cfg.identity)


@lru_cache(maxsize=1)
def get_telemetry() -> MLflowTelemetryAdapter | None:
    cfg = get_settings().telemetry
    if not cfg.enabled:
        logger.debug("MLFLOW_TRACKING_URI not set; telemetry disabled")
        return None
    return MLflowTelemetryAdapter(tracking_uri=cfg.mlflow_tracking_uri, experiment_name=cfg.experiment_name)


@lru_cache(maxsize=1)
def get_atomizer() -> Atomizer:
    return Atomizer(platform=get_platform(), telemetry=get_telemetry())


@lru_cache(maxsize=1)
def get_story_learner() -> StoryLearner:
    cfg = get_settings().learning
    return StoryLearner(
        reader=get_platform(),
        telemetry=get_telemetry(),
        pattern_detector=PatternDetector(cfg.pattern_similarity_threshold),
        merger=TaskMerger(cfg.merge_similarity_threshold),
    )


@lru_cache(maxsize=1)
def get_template_validator() -> TemplateValidator:
    return TemplateValidator()
