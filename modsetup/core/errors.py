"""Exception taxonomy for setup runs.

Every fatal fault carries the stage it happened in so the CLI can tell the
user where a run stopped. Cancellation sits outside the ``SetupError``
hierarchy: it is a clean abort, not a failure.
"""

from enum import Enum


class Stage(str, Enum):
    """Pipeline stage a fault is attributed to."""

    READING_MODULE = "reading module"
    RESOLVING_DEPENDENCY = "resolving dependency"
    PLANNING = "planning"
    EXECUTING_ITEM = "executing item"
    WRITING_DESCRIPTOR = "writing descriptor"


# =============================================================================
# EXCEPTIONS
# =============================================================================


class SetupError(Exception):
    """Base exception for setup run faults."""

    def __init__(self, message: str, stage: Stage) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        return f"[{self.stage.value}] {self.message}"


class ModuleReadError(SetupError):
    """A module file could not be opened or parsed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, Stage.READING_MODULE)


class VersionMismatchError(SetupError):
    """A module declares a different version than the one expected."""

    def __init__(self, module_name: str, found: object, expected: object) -> None:
        super().__init__(
            f"{module_name} version {found}. Expected {expected}",
            Stage.READING_MODULE,
        )
        self.module_name = module_name
        self.found = found
        self.expected = expected


class PlanningCollisionError(SetupError):
    """Two planned files landed on the same output path."""

    def __init__(self, path: str, existing: str) -> None:
        super().__init__(
            f"Planned path {path!r} collides with {existing!r}",
            Stage.PLANNING,
        )
        self.path = path
        self.existing = existing


class ItemExecutionError(SetupError):
    """A work item's action raised."""

    def __init__(self, label: str, stage: Stage, cause: BaseException) -> None:
        super().__init__(f"{label} failed: {cause}", stage)
        self.label = label


class DecompilerError(Exception):
    """The external decompiler reported a failure."""


class OperationCancelledError(Exception):
    """The run was cancelled before it could finish."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)
