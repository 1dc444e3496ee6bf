from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Sequence

from atomize.application.services.dependency_resolver import DependencyResolver
from atomize.application.services.estimation_calculator import EstimationCalculator
from atomize.application.services.filter_translator import FilterTranslator
from atomize.domain.errors import AtomizeError, ErrorKind
from atomize.domain.ports import DependencyLinkPort, TelemetryPort, WorkItemPlatformPort
from atomize.schemas import (
    AtomizationReport,
    CalculatedTask,
    PlatformFilter,
    StoryAtomizationResult,
    StoryError,
    TaskTemplate,
    WorkItem,
)

logger = logging.getLogger(__name__)

_RULE = "=" * 60


@dataclass(slots=True)
class AtomizationOptions:
    dry_run: bool = False
    continue_on_error: bool = False
    project: str | None = None


@dataclass(slots=True)
class _RunState:
    """Mutable accumulator for one run; frozen into an AtomizationReport at the end."""

    results: list[StoryAtomizationResult] = field(default_factory=list)
    errors: list[StoryError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class Atomizer:
    """Generates proportioned, dependency-ordered child tasks for every story a template selects."""

    def __init__(
        self,
        *,
        platform: WorkItemPlatformPort,
        telemetry: TelemetryPort | None = None,
        filter_translator: FilterTranslator | None = None,
        calculator: EstimationCalculator | None = None,
        resolver: DependencyResolver | None = None,
    ) -> None:
        self._platform = platform
        self._telemetry = telemetry
        self._filters = filter_translator or FilterTranslator()
        self._calculator = calculator or EstimationCalculator()
        self._resolver = resolver or DependencyResolver()

    async def atomize(self, template: TaskTemplate, options: AtomizationOptions | None = None) -> AtomizationReport:
        options = options or AtomizationOptions()
        started = time.perf_counter()
        logger.info("Starting atomization: template=%s dry_run=%s", template.name, options.dry_run)

        platform_filter, identity = await self._prepare_query(template, options)

        stories = await self._query(platform_filter)
        logger.info("Found %d stories", len(stories))
        if not stories:
            logger.warning("No stories found matching filter criteria")

        state = _RunState()
        for story in stories:
            try:
                result = await self._process_story(story, template, identity, options, state)
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                logger.error("Error processing story %s: %s", story.id, message)
                state.errors.append(StoryError(story_id=story.id, error=message))
                state.results.append(StoryAtomizationResult(story=story, success=False, error=message))
                if not options.continue_on_error:
                    logger.error("Stopping on first error (continue_on_error is off)")
                    break
            else:
                state.results.append(result)

        report = self._build_report(template, options, state, started)
        self._log_summary(report)
        if self._telemetry is not None:
            self._telemetry.log_atomization_run(report)
        return report

    async def preview(self, template: TaskTemplate, options: AtomizationOptions | None = None) -> AtomizationReport:
        options = options or AtomizationOptions()
        return await self.atomize(
            template,
            AtomizationOptions(dry_run=True, continue_on_error=options.continue_on_error, project=options.project),
        )

    async def count_matching_stories(self, template: TaskTemplate, options: AtomizationOptions | None = None) -> int:
        platform_filter, _ = await self._prepare_query(template, options or AtomizationOptions())
        return len(await self._query(platform_filter))

    async def _prepare_query(
        self, template: TaskTemplate, options: AtomizationOptions
    ) -> tuple[PlatformFilter, str | None]:
        validation = self._filters.validate(template.filter)
        if not validation.valid:
            raise AtomizeError(
                f"Invalid filter: {', '.join(validation.errors)}",
                kind=ErrorKind.FILTER_INVALID,
                errors=validation.errors,
            )
        try:
            identity = await self._platform.get_current_user_identity()
        except Exception as exc:
            raise self._platform_error("Could not resolve current user", exc) from exc
        return self._filters.translate(template.filter, identity, project=options.project), identity

    async def _query(self, platform_filter: PlatformFilter) -> list[WorkItem]:
        try:
            return await self._platform.query_work_items(platform_filter)
        except AtomizeError:
            raise
        except Exception as exc:
            raise self._platform_error("Story query failed", exc) from exc

    def _platform_error(self, message: str, exc: Exception) -> AtomizeError:
        name = getattr(self._platform, "name", None)
        return AtomizeError(f"{message} on {name}: {exc}", kind=ErrorKind.PLATFORM_ERROR, platform=name)

    async def _process_story(
        self,
        story: WorkItem,
        template: TaskTemplate,
        identity: str | None,
        options: AtomizationOptions,
        state: _RunState,
    ) -> StoryAtomizationResult:
        logger.info("Processing: %s - %s", story.id, story.title)
        ordered_templates = self._resolver.resolve_order(template.tasks)
        position = {id(task): index for index, task in enumerate(ordered_templates)}
        calculation = self._calculator.calculate(story, template.tasks, template.estimation, identity=identity)
        # Estimations are computed in template order, then laid out in dependency order.
        tasks = sorted(
            calculation.calculated_tasks,
            key=lambda task: position[id(template.tasks[task.template_index])],
        )
        for skipped in calculation.skipped_tasks:
            logger.debug("Skipped %r - %s", skipped.template_task.title, skipped.reason)

        validation = self._calculator.validate_estimation(story, tasks)
        for warning in validation.warnings:
            logger.warning("%s: %s", story.id, warning)
            state.warnings.append(f"{story.id}: {warning}")

        created: list[WorkItem] = []
        if options.dry_run:
            logger.info("DRY RUN: would create %d tasks", len(tasks))
        elif tasks:
            created = await self._create_tasks(story, tasks, state)
            logger.info("Created %d tasks", len(created))

        return StoryAtomizationResult(
            story=story,
            tasks_calculated=tasks,
            tasks_created=created,
            tasks_skipped=calculation.skipped_tasks,
            success=True,
            estimation_summary=self._calculator.get_estimation_summary(story, tasks),
        )

    async def _create_tasks(
        self, story: WorkItem, tasks: Sequence[CalculatedTask], state: _RunState
    ) -> list[WorkItem]:
        try:
            created = await self._platform.create_tasks_bulk(story.id, tasks)
        except AtomizeError:
            raise
        except Exception as exc:
            raise AtomizeError(
                f"Task creation failed for story {story.id}: {exc}",
                kind=ErrorKind.CREATION_FAILED,
                platform=getattr(self._platform, "name", None),
                story_id=story.id,
            ) from exc
        if len(created) != len(tasks):
            raise AtomizeError(
                f"Platform created {len(created)} of {len(tasks)} tasks for story {story.id}",
                kind=ErrorKind.CREATION_FAILED,
                platform=getattr(self._platform, "name", None),
                story_id=story.id,
            )

        created_by_template_id: dict[str, WorkItem] = {
            task.template_id: item for task, item in zip(tasks, created) if task.template_id
        }
        if any(task.depends_on for task in tasks):
            await self._link_dependencies(tasks, created_by_template_id, state)
        return created

    async def _link_dependencies(
        self,
        tasks: Sequence[CalculatedTask],
        created_by_template_id: dict[str, WorkItem],
        state: _RunState,
    ) -> None:
        if not isinstance(self._platform, DependencyLinkPort):
            message = "Platform does not support dependency links - dependencies will not be created"
            logger.warning(message)
            state.warnings.append(message)
            return

        for task in tasks:
            if not task.depends_on:
                continue
            dependent = created_by_template_id.get(task.template_id or "")
            if dependent is None:
                logger.warning("Cannot create dependency links for task %r - task has no id", task.title)
                continue
            for dependency in task.depends_on:
                predecessor = created_by_template_id.get(dependency)
                if predecessor is None:
                    logger.warning("Cannot create dependency link: predecessor task %r was not created", dependency)
                    continue
                try:
                    await self._platform.create_dependency_link(dependent.id, predecessor.id)
                except Exception as exc:
                    logger.warning(
                        "Failed to create dependency link %r -> %r: %s", dependent.title, predecessor.title, exc
                    )
                    continue
                logger.debug("Linked %r to depend on %r", dependent.title, predecessor.title)

    @staticmethod
    def _build_report(
        template: TaskTemplate, options: AtomizationOptions, state: _RunState, started: float
    ) -> AtomizationReport:
        results = state.results
        return AtomizationReport(
            template_name=template.name,
            stories_processed=len(results),
            stories_success=sum(1 for result in results if result.success),
            stories_failed=sum(1 for result in results if not result.success),
            tasks_calculated=sum(len(result.tasks_calculated) for result in results),
            tasks_created=sum(len(result.tasks_created) for result in results),
            tasks_skipped=sum(len(result.tasks_skipped) for result in results),
            results=results,
            errors=state.errors,
            warnings=state.warnings,
            execution_time_ms=round((time.perf_counter() - started) * 1000, 2),
            dry_run=options.dry_run,
        )

    @staticmethod
    def _log_summary(report: AtomizationReport) -> None:
        logger.info(_RULE)
        logger.info("ATOMIZATION COMPLETE")
        logger.info(_RULE)
        logger.info("Template:          %s", report.template_name)
        logger.info("Stories processed: %d", report.stories_processed)
        logger.info("Stories success:   %d", report.stories_success)
        logger.info("Stories failed:    %d", report.stories_failed)
        logger.info("Tasks calculated:  %d", report.tasks_calculated)
        logger.info("Tasks created:     %d", report.tasks_created)
        logger.info("Tasks skipped:     %d", report.tasks_skipped)
        logger.info("Execution time:    %.0fms", report.execution_time_ms)
        logger.info("Mode:              %s", "DRY RUN" if report.dry_run else "LIVE")
        logger.info(_RULE)
        for error in report.errors:
            logger.error("  - %s: %s", error.story_id, error.error)
        for warning in report.warnings:
            logger.warning("  - %s", warning)
