from __future__ import annotations

from enum import Enum
from typing import Sequence


class ErrorKind(str, Enum):
    FILTER_INVALID = "filter_invalid"
    CONDITION_MALFORMED = "condition_malformed"
    CYCLE_DETECTED = "cycle_detected"
    CREATION_FAILED = "creation_failed"
    PLATFORM_ERROR = "platform_error"
    TEMPLATE_INVALID = "template_invalid"
    LEARNING_FAILED = "learning_failed"
    STORY_NOT_FOUND = "story_not_found"
    CONFIGURATION_ERROR = "configuration_error"


_STATUS_CODES = {
    ErrorKind.FILTER_INVALID: 400,
    ErrorKind.CONDITION_MALFORMED: 400,
    ErrorKind.CYCLE_DETECTED: 400,
    ErrorKind.TEMPLATE_INVALID: 400,
    ErrorKind.STORY_NOT_FOUND: 404,
    ErrorKind.LEARNING_FAILED: 422,
    ErrorKind.PLATFORM_ERROR: 502,
    ErrorKind.CREATION_FAILED: 502,
    ErrorKind.CONFIGURATION_ERROR: 500,
}


class AtomizeError(RuntimeError):
    """Raised by the engine; ``kind`` says what went wrong, the payload says where."""

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind,
        errors: Sequence[str] = (),
        cycle: Sequence[str] = (),
        platform: str | None = None,
        story_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.errors = list(errors)
        self.cycle = list(cycle)
        self.platform = platform
        self.story_id = story_id

    @property
    def status_code(self) -> int:
        return _STATUS_CODES.get(self.kind, 500)

    @classmethod
    def circular_dependency(cls, cycle: Sequence[str]) -> "AtomizeError":
        path = list(cycle)
        closed = path + path[:1]
        display = " → ".join(f'"{node}"' for node in closed)
        edges = ", ".join(
            f'"{closed[i]}" depends on "{closed[i + 1]}"' for i in range(len(closed) - 1)
        )
        return cls(
            f"Circular dependency detected: {display}. "
            f"Break the circular dependency by removing one of these dependencies: {edges}",
            kind=ErrorKind.CYCLE_DETECTED,
            cycle=path,
        )
