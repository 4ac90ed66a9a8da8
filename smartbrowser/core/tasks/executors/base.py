"""Abstract base class for task executors.

An executor is the capability implementation for one task type.  The
base class owns everything that is the same for every capability:
shape validation, the ``can_handle`` guard, per-attempt timeouts, retry
with exponential backoff and chunked batch execution.  Subclasses only
implement :meth:`BaseExecutor.can_handle` and
:meth:`BaseExecutor._execute_impl`.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Awaitable

from smartbrowser.core.tasks.models import (
    ExecutionContext,
    Task,
    TaskResult,
    TaskStatus,
    utcnow,
)
from smartbrowser.utils.exceptions import (
    ExecutionTimeoutError,
    ExecutorMismatchError,
    MaxRetriesExceededError,
    SmartBrowserError,
    TaskCancelledError,
    ValidationError,
)
from smartbrowser.utils.logging import get_logger

logger = get_logger("tasks.executor")

MAX_BACKOFF_SECONDS = 10.0


@dataclass
class ExecutorConfig:
    """Execution limits for one executor.

    ``timeout`` is in seconds and applies per attempt; ``retries`` is the
    total number of attempts; ``concurrency`` bounds how many tasks of a
    batch run at once.
    """

    timeout: float = 30.0
    retries: int = 3
    concurrency: int = 1


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed *attempt* (1-based)."""
    return min(2 ** (attempt - 1), MAX_BACKOFF_SECONDS)


def _reap(background: set[asyncio.Future]):
    def _done(fut: asyncio.Future) -> None:
        background.discard(fut)
        if not fut.cancelled() and fut.exception() is not None:
            logger.debug("abandoned_work_failed", error=str(fut.exception()))

    return _done


async def await_with_timeout(
    aw: Awaitable[Any],
    timeout: float,
    background: set[asyncio.Future],
) -> Any:
    """Await *aw* for at most *timeout* seconds.

    On expiry :class:`ExecutionTimeoutError` is raised but the underlying
    work is not cancelled: it is parked in *background* until it finishes
    and its result is thrown away.
    """
    inner = asyncio.ensure_future(aw)
    try:
        return await asyncio.wait_for(asyncio.shield(inner), timeout)
    except asyncio.TimeoutError:
        background.add(inner)
        inner.add_done_callback(_reap(background))
        raise ExecutionTimeoutError(timeout) from None
    except asyncio.CancelledError:
        inner.cancel()
        raise


class BaseExecutor(ABC):
    """Base class that every executor must inherit from.

    Parameters
    ----------
    name:
        Executor name, reported in result metadata and logs.
    config:
        Timeout, retry and concurrency limits.  Defaults to
        ``ExecutorConfig()`` (30s, 3 attempts, concurrency 1).
    """

    def __init__(self, name: str, config: ExecutorConfig | None = None) -> None:
        self.name = name
        self.config = config or ExecutorConfig()
        self._background: set[asyncio.Future] = set()

    # ------------------------------------------------------------------
    # Capability
    # ------------------------------------------------------------------

    @abstractmethod
    def can_handle(self, task: Task) -> bool:
        """Return ``True`` when this executor is able to run *task*."""
        ...

    @abstractmethod
    async def _execute_impl(self, task: Task, context: ExecutionContext) -> Any:
        """Do the actual work for *task* and return its result data.

        Raise to signal failure; :class:`SmartBrowserError` subclasses
        with ``retryable = False`` are not retried.
        """
        ...

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        task: Task,
        context: ExecutionContext,
        retries: int | None = None,
    ) -> TaskResult:
        """Execute *task* end-to-end and return a :class:`TaskResult`.

        Errors are caught and returned inside the result rather than
        propagated.
        """
        start = time.monotonic()
        started_at = utcnow()
        execution_id = str(uuid.uuid4())
        attempts_used = 0

        logger.info(
            "task_execution_start",
            execution_id=execution_id,
            task_id=task.id,
            task_type=task.type.value if task.type else None,
            executor=self.name,
            user_id=context.user_id,
        )

        try:
            self.validate_task(task)
            if not self.can_handle(task):
                raise ExecutorMismatchError(self.name, task.type.value)

            max_attempts = self._max_attempts(task, retries)
            data = None
            last_error: Exception | None = None

            for attempt in range(1, max_attempts + 1):
                attempts_used = attempt
                try:
                    data = await await_with_timeout(
                        self._execute_impl(task, context),
                        self.config.timeout,
                        self._background,
                    )
                    last_error = None
                    break
                except SmartBrowserError as exc:
                    if not exc.retryable:
                        raise
                    last_error = exc
                except Exception as exc:
                    last_error = exc

                logger.warning(
                    "task_attempt_failed",
                    task_id=task.id,
                    executor=self.name,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(last_error),
                )
                if attempt < max_attempts:
                    await self._sleep(backoff_delay(attempt))

            if last_error is not None:
                raise MaxRetriesExceededError(max_attempts, str(last_error)) from last_error

        except Exception as exc:
            elapsed = round((time.monotonic() - start) * 1000, 2)
            task.retry_count = max(attempts_used - 1, 0)
            code = exc.code if isinstance(exc, SmartBrowserError) else "INTERNAL_ERROR"
            logger.error(
                "task_execution_failed",
                execution_id=execution_id,
                task_id=task.id,
                executor=self.name,
                execution_time=elapsed,
                error=str(exc),
                error_code=code,
            )
            return TaskResult(
                task_id=task.id,
                success=False,
                error=str(exc),
                error_code=code,
                metadata=self._metadata(
                    execution_id, started_at, attempts_used, error_type=type(exc).__name__
                ),
                execution_time=elapsed,
            )

        elapsed = round((time.monotonic() - start) * 1000, 2)
        task.retry_count = attempts_used - 1
        logger.info(
            "task_execution_complete",
            execution_id=execution_id,
            task_id=task.id,
            executor=self.name,
            execution_time=elapsed,
            attempts=attempts_used,
        )
        return TaskResult(
            task_id=task.id,
            success=True,
            data=data,
            metadata=self._metadata(execution_id, started_at, attempts_used),
            execution_time=elapsed,
        )

    async def execute_batch(
        self,
        tasks: list[Task],
        context: ExecutionContext,
    ) -> list[TaskResult]:
        """Run every task this executor can handle, ``concurrency`` at a time.

        Tasks are settled independently: one failure never aborts its
        siblings.  Results come back in the order of the compatible tasks.
        """
        compatible = [t for t in tasks if self.can_handle(t)]
        if not compatible:
            logger.warning(
                "batch_no_compatible_tasks", executor=self.name, total_tasks=len(tasks)
            )
            return []

        logger.info(
            "batch_start",
            executor=self.name,
            task_count=len(compatible),
            user_id=context.user_id,
        )

        results: list[TaskResult] = []
        size = max(self.config.concurrency, 1)
        for offset in range(0, len(compatible), size):
            chunk = compatible[offset : offset + size]
            settled = await asyncio.gather(
                *(self.execute(task, context) for task in chunk),
                return_exceptions=True,
            )
            for index, (task, outcome) in enumerate(zip(chunk, settled)):
                if isinstance(outcome, BaseException):
                    results.append(
                        TaskResult(
                            task_id=task.id,
                            success=False,
                            error=str(outcome) or type(outcome).__name__,
                            error_code="INTERNAL_ERROR",
                            metadata={"executor": self.name, "batch_index": offset + index},
                        )
                    )
                else:
                    results.append(outcome)

        logger.info(
            "batch_complete",
            executor=self.name,
            successful=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
        )
        return results

    async def health_check(self) -> bool:
        """Override in subclasses that depend on external resources."""
        return True

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "config": asdict(self.config),
            "background_tasks": len(self._background),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def validate_task(self, task: Task) -> None:
        if not task.id:
            raise ValidationError("Task ID is required")
        if not task.type:
            raise ValidationError("Task type is required")
        if not task.user_id:
            raise ValidationError("User ID is required")
        if task.status == TaskStatus.CANCELLED:
            raise TaskCancelledError(task.id)

    def _max_attempts(self, task: Task, override: int | None) -> int:
        if override is not None:
            return max(override, 1)
        return max(min(self.config.retries, task.max_retries), 1)

    def _metadata(
        self,
        execution_id: str,
        started_at,
        attempts: int,
        **extra: Any,
    ) -> dict[str, Any]:
        return {
            "executor": self.name,
            "execution_id": execution_id,
            "start_time": started_at.isoformat(),
            "end_time": utcnow().isoformat(),
            "attempts": attempts,
            **extra,
        }

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def log_progress(self, task_id: str, step: str, progress: float, **extra: Any) -> None:
        logger.debug(
            "task_progress",
            task_id=task_id,
            executor=self.name,
            step=step,
            progress=f"{round(progress * 100)}%",
            **extra,
        )
