from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from atomize.application.services.template_validator import TemplateValidationResult, TemplateValidator
from atomize.application.use_cases.atomize_stories import AtomizationOptions, Atomizer
from atomize.application.use_cases.learn_template import LearnOptions, StoryLearner
from atomize.domain.errors import AtomizeError
from atomize.presentation.http.dependencies import app_settings, atomizer, story_learner, template_validator
from atomize.schemas import AtomizationReport, CamelModel, LearningResult, TaskTemplate
from atomize.settings import AppConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["atomize"])


class RunOptions(CamelModel):
    dry_run: bool = False
    continue_on_error: Optional[bool] = None
    project: Optional[str] = None


class AtomizeRequest(CamelModel):
    template: TaskTemplate
    options: RunOptions = Field(default_factory=RunOptions)


class CountResponse(CamelModel):
    count: int


class LearnRequest(CamelModel):
    story_ids: list[str] = Field(..., min_length=1)
    normalize_percentages: Optional[bool] = None


def _to_options(options: RunOptions, settings: AppConfig) -> AtomizationOptions:
    return AtomizationOptions(
        dry_run=options.dry_run,
        continue_on_error=(
            settings.run.continue_on_error if options.continue_on_error is None else options.continue_on_error
        ),
        project=options.project or settings.platform.project,
    )


def _http_error(exc: AtomizeError) -> HTTPException:
    detail: dict[str, Any] = {"kind": exc.kind.value, "message": str(exc)}
    if exc.errors:
        detail["errors"] = exc.errors
    if exc.cycle:
        detail["cycle"] = exc.cycle
    return HTTPException(status_code=exc.status_code, detail=detail)


@router.post("/atomize", response_model=AtomizationReport)
async def atomize_endpoint(
    payload: AtomizeRequest,
    workflow: Atomizer = Depends(atomizer),
    settings: AppConfig = Depends(app_settings),
):
    try:
        return await workflow.atomize(payload.template, _to_options(payload.options, settings))
    except AtomizeError as exc:
        raise _http_error(exc) from exc


@router.post("/preview", response_model=AtomizationReport)
async def preview_endpoint(
    payload: AtomizeRequest,
    workflow: Atomizer = Depends(atomizer),
    settings: AppConfig = Depends(app_settings),
):
    try:
        return await workflow.preview(payload.template, _to_options(payload.options, settings))
    except AtomizeError as exc:
        raise _http_error(exc) from exc


@router.post("/stories/count", response_model=CountResponse)
async def count_endpoint(
    payload: AtomizeRequest,
    workflow: Atomizer = Depends(atomizer),
    settings: AppConfig = Depends(app_settings),
):
    try:
        count = await workflow.count_matching_stories(payload.template, _to_options(payload.options, settings))
    except AtomizeError as exc:
        raise _http_error(exc) from exc
    return CountResponse(count=count)


@router.post("/learn", response_model=LearningResult)
async def learn_endpoint(
    payload: LearnRequest,
    learner: StoryLearner = Depends(story_learner),
    settings: AppConfig = Depends(app_settings),
):
    normalize = payload.normalize_percentages
    options = LearnOptions(
        normalize_percentages=settings.learning.normalize_percentages if normalize is None else normalize
    )
    try:
        return await learner.learn(payload.story_ids, options)
    except AtomizeError as exc:
        raise _http_error(exc) from exc


@router.post("/templates/validate", response_model=TemplateValidationResult)
async def validate_template_endpoint(
    payload: dict[str, Any],
    validator: TemplateValidator = Depends(template_validator),
):
    result = validator.validate(payload)
    logger.info("Validated template: valid=%s errors=%d warnings=%d", result.valid, len(result.errors), len(result.warnings))
    return result
