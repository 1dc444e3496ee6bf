from __future__ import annotations

from fastapi import HTTPException

from atomize.application.services.template_validator import TemplateValidator
from atomize.application.use_cases.atomize_stories import Atomizer
from atomize.application.use_cases.learn_template import StoryLearner
from atomize.container import get_atomizer, get_story_learner, get_template_validator
from atomize.domain.errors import AtomizeError
from atomize.settings import AppConfig, get_settings


def app_settings() -> AppConfig:
    return get_settings()


def atomizer() -> Atomizer:
    try:
        return get_atomizer()
    except AtomizeError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


def story_learner() -> StoryLearner:
    try:
        return get_story_learner()
    except AtomizeError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


def template_validator() -> TemplateValidator:
    return get_template_validator()
