from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _TRUTHY


class PlatformSettings(BaseModel):
    provider: str = "mock"
    identity: str | None = None
    project: str | None = None


class RunSettings(BaseModel):
    continue_on_error: bool = False


class LearningSettings(BaseModel):
    pattern_similarity_threshold: float = 0.6
    merge_similarity_threshold: float = 0.45
    normalize_percentages: bool = True


class TelemetrySettings(BaseModel):
    mlflow_tracking_uri: str | None = None
    experiment_name: str = "atomize"

    @property
    def enabled(self) -> bool:
        return bool(self.mlflow_tracking_uri)


class ApiSettings(BaseModel):
    cors_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]


class AppConfig(BaseModel):
    log_level: str = "INFO"
    platform: PlatformSettings = PlatformSettings()
    run: RunSettings = RunSettings()
    learning: LearningSettings = LearningSettings()
    telemetry: TelemetrySettings = TelemetrySettings()
    api: ApiSettings = ApiSettings()

    @classmethod
    def load(cls) -> "AppConfig":
        origins = os.getenv("ATOMIZE_CORS_ORIGINS")
        return cls(
            log_level=os.getenv("ATOMIZE_LOG_LEVEL", "INFO").upper(),
            platform=PlatformSettings(
                provider=os.getenv("ATOMIZE_PLATFORM", "mock").lower(),
                identity=os.getenv("ATOMIZE_IDENTITY"),
                project=os.getenv("ATOMIZE_PROJECT"),
            ),
            run=RunSettings(
                continue_on_error=_flag("ATOMIZE_CONTINUE_ON_ERROR", "false"),
            ),
            learning=LearningSettings(
                pattern_similarity_threshold=float(os.getenv("ATOMIZE_PATTERN_SIMILARITY", "0.6")),
                merge_similarity_threshold=float(os.getenv("ATOMIZE_MERGE_SIMILARITY", "0.45")),
                normalize_percentages=_flag("ATOMIZE_NORMALIZE_PERCENTAGES", "true"),
            ),
            telemetry=TelemetrySettings(
                mlflow_tracking_uri=os.getenv("MLFLOW_TRACKING_URI"),
                experiment_name=os.getenv("MLFLOW_EXPERIMENT_NAME", "atomize"),
            ),
            api=ApiSettings(
                cors_origins=[origin.strip() for origin in origins.split(",") if origin.strip()]
            )
            if origins
            else ApiSettings(),
        )


@lru_cache(maxsize=1)
def get_settings() -> AppConfig:
    return AppConfig.load()
