from __future__ import annotations

import logging
from typing import Any, Mapping

import mlflow
from mlflow.exceptions import MlflowException

from atomize.schemas import AtomizationReport, LearningResult

logger = logging.getLogger(__name__)

DEFAULT_EXPERIMENT_NAME = "atomize"


def _clean_mapping(mapping: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in mapping.items() if value is not None}


def _metric_key(name: str) -> str:
    return "factor_" + name.lower().replace(" ", "_")


class MLflowTelemetryAdapter:
    """Records atomization and learning runs as MLflow runs."""

    def __init__(self, *, tracking_uri: str | None = None, experiment_name: str = DEFAULT_EXPERIMENT_NAME) -> None:
        self._tracking_uri = tracking_uri
        self._experiment_name = experiment_name
        self._configured = False

    def _configure(self) -> None:
        if self._configured:
            return
        if self._tracking_uri:
            mlflow.set_tracking_uri(self._tracking_uri)
        experiment = mlflow.set_experiment(self._experiment_name)
        logger.info("Using MLflow experiment '%s' (%s)", self._experiment_name, experiment.experiment_id)
        self._configured = True

    def log_atomization_run(self, report: AtomizationReport) -> None:
        try:
            self._configure()
            with mlflow.start_run(run_name=f"atomize-{report.template_name}", tags={"kind": "atomization"}):
                mlflow.log_params(_clean_mapping({"template_name": report.template_name, "dry_run": report.dry_run}))
                mlflow.log_metrics(
                    {
                        "stories_processed": float(report.stories_processed),
                        "stories_success": float(report.stories_success),
                        "stories_failed": float(report.stories_failed),
                        "tasks_calculated": float(report.tasks_calculated),
                        "tasks_created": float(report.tasks_created),
                        "tasks_skipped": float(report.tasks_skipped),
                        "execution_time_ms": float(report.execution_time_ms),
                    }
                )
                mlflow.log_dict(report.model_dump(mode="json", by_alias=True), "reports/atomization_report.json")
        except MlflowException as exc:
            logger.exception("MLflow logging failed for template=%s: %s", report.template_name, exc)
        except Exception as exc:  # pragma: no cover
            logger.exception("Unexpected MLflow logging failure for template=%s: %s", report.template_name, exc)

    def log_learning_run(self, result: LearningResult) -> None:
        try:
            self._configure()
            with mlflow.start_run(run_name=f"learn-{result.template.name}", tags={"kind": "learning"}):
                mlflow.log_params(
                    _clean_mapping(
                        {
                            "template_name": result.template.name,
                            "stories_analyzed": len(result.analyses),
                            "stories_skipped": len(result.skipped),
                            "confidence_level": result.confidence.level.value,
                        }
                    )
                )
                metrics = {"confidence_overall": float(result.confidence.overall), "outliers": float(len(result.outliers))}
                metrics.update({_metric_key(factor.name): float(factor.score) for factor in result.confidence.factors})
                mlflow.log_metrics(metrics)
                mlflow.log_dict(result.template.model_dump(mode="json", by_alias=True, exclude_none=True), "templates/learned.json")
        except MlflowException as exc:
            logger.exception("MLflow logging failed for learned template=%s: %s", result.template.name, exc)
        except Exception as exc:  # pragma: no cover
            logger.exception("Unexpected MLflow logging failure for learned template=%s: %s", result.template.name, exc)
