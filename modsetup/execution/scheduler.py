"""
Work scheduler for setup runs.

This module executes independent, named units of work with a bounded
worker pool, a shared cooperative cancellation token and fail-fast fault
handling.
"""

import asyncio
import os
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any

from loguru import logger

from modsetup.core.errors import ItemExecutionError, OperationCancelledError, Stage

# =============================================================================
# CANCELLATION
# =============================================================================


class CancellationToken:
    """
    A single cancellation signal shared by every work item of a run.

    Backed by a ``threading.Event`` so it may be signaled from any thread
    (a signal handler, a UI thread) while items run on the event loop.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        if not self._event.is_set():
            logger.info("Cancellation requested")
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Safe point for long-running actions.

        Raises:
            OperationCancelledError: If cancellation was requested.
        """
        if self._event.is_set():
            raise OperationCancelledError()


# =============================================================================
# WORK ITEMS AND RESULTS
# =============================================================================


Action = Callable[[], Awaitable[None]]


class WorkItem:
    """A labelled, zero-argument async action run at most once."""

    def __init__(self, label: str, action: Action, stage: Stage = Stage.EXECUTING_ITEM):
        self.label = label
        self.action = action
        self.stage = stage

    def __repr__(self) -> str:
        return f"WorkItem({self.label!r})"


class ItemResult:
    """Result of a single work item."""

    def __init__(
        self,
        label: str,
        success: bool,
        error: str | None = None,
        cancelled: bool = False,
        duration_seconds: float = 0.0,
    ):
        self.label = label
        self.success = success
        self.error = error
        self.cancelled = cancelled
        self.duration_seconds = duration_seconds
        self.completed_at = datetime.now().isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "label": self.label,
            "success": self.success,
            "error": self.error,
            "cancelled": self.cancelled,
            "duration_seconds": self.duration_seconds,
            "completed_at": self.completed_at,
        }


class ExecutionReport:
    """Outcome of one ``WorkScheduler.execute`` call."""

    def __init__(self, total_items: int = 0, worker_count: int = 0):
        self.total_items = total_items
        self.worker_count = worker_count
        self.results: list[ItemResult] = []
        self.duration_seconds = 0.0

    @property
    def completed(self) -> list[str]:
        """Labels of items that finished successfully."""
        return [r.label for r in self.results if r.success]

    @property
    def failed(self) -> list[str]:
        return [r.label for r in self.results if not r.success and not r.cancelled]

    @property
    def cancelled(self) -> list[str]:
        return [r.label for r in self.results if r.cancelled]

    @property
    def not_started(self) -> int:
        return self.total_items - len(self.results)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_items": self.total_items,
            "worker_count": self.worker_count,
            "completed": len(self.completed),
            "failed": self.failed,
            "cancelled": self.cancelled,
            "not_started": self.not_started,
            "duration_seconds": self.duration_seconds,
        }


# =============================================================================
# EXECUTION CALLBACK TYPE
# =============================================================================


ExecutionCallback = Callable[[str, ItemResult], None]


# =============================================================================
# WORK SCHEDULER
# =============================================================================


class WorkScheduler:
    """
    Execute independent work items with bounded parallelism.

    A fixed pool of worker coroutines pulls items from a shared queue.
    Items run at most once and in no particular order. The first fault or
    cancellation stops dispatch; items already running are allowed to
    finish, then the fault (or cancellation) is raised to the caller.

    Attributes:
        max_parallelism: Requested parallelism; 0 means one worker per CPU.
        token: Cancellation token shared with the items.

    Example:
        >>> scheduler = WorkScheduler(max_parallelism=1)
        >>> report = await scheduler.execute([WorkItem("Writing: a.txt", write_a)])
        >>> report.completed
        ['Writing: a.txt']
    """

    def __init__(
        self,
        max_parallelism: int = 0,
        token: CancellationToken | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            max_parallelism: 0 for all available cores, 1 for strictly
                sequential execution, N for at most N concurrent items.
            token: Shared cancellation token (a new one if omitted).
        """
        if max_parallelism < 0:
            raise ValueError("max_parallelism must be >= 0")
        self.max_parallelism = max_parallelism
        self.token = token or CancellationToken()
        self.last_report: ExecutionReport | None = None
        self._callbacks: list[ExecutionCallback] = []

    @property
    def worker_count(self) -> int:
        if self.max_parallelism == 0:
            return os.cpu_count() or 1
        return self.max_parallelism

    def add_callback(self, callback: ExecutionCallback) -> None:
        """Add a callback for item completion events."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: ExecutionCallback) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _emit_callback(self, label: str, result: ItemResult) -> None:
        """Emit callback to all registered listeners."""
        for callback in self._callbacks:
            try:
                callback(label, result)
            except Exception as e:
                logger.warning(f"Callback error: {e}")

    async def execute(self, items: Iterable[WorkItem]) -> ExecutionReport:
        """
        Run every item, or stop early on the first fault or cancellation.

        Args:
            items: Independent work items.

        Returns:
            ExecutionReport with one result per started item.

        Raises:
            ItemExecutionError: If an item's action raised; chained from
                the original exception and labelled with the item.
            OperationCancelledError: If the token was signaled.
        """
        pending = deque(items)
        workers = min(self.worker_count, len(pending))
        report = ExecutionReport(total_items=len(pending), worker_count=workers)
        self.last_report = report

        self.token.raise_if_cancelled()
        if not pending:
            return report

        logger.info(f"Executing {report.total_items} items with {workers} workers")
        faults: list[tuple[WorkItem, Exception]] = []
        started = time.perf_counter()

        async def worker() -> None:
            while pending and not faults and not self.token.is_cancelled:
                item = pending.popleft()
                result = await self._run_item(item, faults)
                report.results.append(result)
                self._emit_callback(item.label, result)

        await asyncio.gather(*(worker() for _ in range(workers)))
        report.duration_seconds = time.perf_counter() - started

        if faults:
            item, error = faults[0]
            raise ItemExecutionError(item.label, item.stage, error) from error

        if self.token.is_cancelled:
            raise OperationCancelledError(
                f"Cancelled after {len(report.completed)} of {report.total_items} items"
            )

        logger.info(
            f"Executed {len(report.completed)} items in {report.duration_seconds:.1f}s"
        )
        return report

    async def _run_item(
        self,
        item: WorkItem,
        faults: list[tuple[WorkItem, Exception]],
    ) -> ItemResult:
        started = time.perf_counter()
        try:
            await item.action()
        except OperationCancelledError:
            # Items self-abort at their safe points; make sure nothing new starts.
            self.token.cancel()
            logger.debug(f"Cancelled: {item.label}")
            return ItemResult(
                item.label,
                success=False,
                cancelled=True,
                duration_seconds=time.perf_counter() - started,
            )
        except Exception as e:
            logger.error(f"{item.label} failed: {e}")
            faults.append((item, e))
            return ItemResult(
                item.label,
                success=False,
                error=str(e),
                duration_seconds=time.perf_counter() - started,
            )

        duration = time.perf_counter() - started
        logger.debug(f"Completed: {item.label} ({duration:.2f}s)")
        return ItemResult(item.label, success=True, duration_seconds=duration)
