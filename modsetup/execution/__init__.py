"""Work execution - bounded-parallel, cancellable work item scheduling."""

from modsetup.execution.scheduler import (
    CancellationToken,
    ExecutionCallback,
    ExecutionReport,
    ItemResult,
    WorkItem,
    WorkScheduler,
)

__all__ = [
    "CancellationToken",
    "ExecutionCallback",
    "ExecutionReport",
    "ItemResult",
    "WorkItem",
    "WorkScheduler",
]
