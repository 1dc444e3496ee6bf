from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from atomize.schemas import AtomizationReport, CalculatedTask, LearningResult, PlatformFilter, WorkItem


@runtime_checkable
class WorkItemPlatformPort(Protocol):
    name: str

    async def query_work_items(self, filter: PlatformFilter) -> list[WorkItem]:
        """Return the stories matching the filter, in platform order."""

    async def get_current_user_identity(self) -> str | None:
        """Return the identifier of the connected user."""

    async def create_tasks_bulk(self, parent_id: str, tasks: Sequence[CalculatedTask]) -> list[WorkItem]:
        """Create child tasks; one created item per input, in input order."""


@runtime_checkable
class DependencyLinkPort(Protocol):
    async def create_dependency_link(self, from_id: str, to_id: str) -> None:
        """Record that ``from_id`` depends on ``to_id``."""


@runtime_checkable
class WorkItemReaderPort(Protocol):
    async def get_work_item(self, work_item_id: str) -> WorkItem | None:
        """Fetch a single work item, or None when it does not exist."""

    async def get_children(self, parent_id: str) -> list[WorkItem]:
        """Return the child work items of a story."""


@runtime_checkable
class TelemetryPort(Protocol):
    def log_atomization_run(self, report: AtomizationReport) -> None:
        """Emit telemetry for a completed atomization run."""

    def log_learning_run(self, result: LearningResult) -> None:
        """Emit telemetry for a completed learning run."""
