"""Task orchestrator -- resolves an executor for each task and runs it.

The :class:`TaskOrchestrator` sits between callers (the goal executor, the
HTTP routes) and the executors.  For every :class:`Task` it:

1. Joins an execution already in flight for the same task id.
2. Validates the task and resolves its executor.
3. Runs the executor under a timeout.
4. Records the :class:`TaskResult` in the owner's bounded history.
5. Returns a :class:`TaskExecutionResult`; it never raises for task failures.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict, deque

from smartbrowser.core.tasks.executors.base import BaseExecutor, await_with_timeout
from smartbrowser.core.tasks.models import (
    ExecutionContext,
    Task,
    TaskExecutionOptions,
    TaskExecutionResult,
    TaskResult,
    TaskStatus,
)
from smartbrowser.core.tasks.registry import ExecutorRegistry
from smartbrowser.utils.exceptions import (
    ExecutorMismatchError,
    SmartBrowserError,
    TaskCancelledError,
    ValidationError,
)
from smartbrowser.utils.logging import get_logger

DEFAULT_HISTORY_LIMIT = 100


class OrchestratorState:
    """The orchestrator's shared mutable state.

    ``in_flight`` maps a task id to the task and the future every caller
    of that id awaits.  ``history`` keeps the last ``history_limit``
    results per user, oldest dropped first.
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.history_limit = history_limit
        self.in_flight: dict[str, tuple[Task, asyncio.Future]] = {}
        self.history: dict[str, deque[TaskResult]] = defaultdict(
            lambda: deque(maxlen=self.history_limit)
        )

    def record(self, user_id: str, result: TaskResult) -> None:
        self.history[user_id].append(result)

    def clear(self) -> None:
        self.in_flight.clear()
        self.history.clear()


class TaskOrchestrator:
    """Dispatch tasks to executors with dedup, timeouts and history.

    Parameters
    ----------
    registry:
        The :class:`ExecutorRegistry` tasks are resolved against.
    state:
        Explicit state object; a fresh one is created when not provided.
    default_timeout:
        Timeout in seconds used when neither the call options nor the
        executor's config supply one.
    """

    def __init__(
        self,
        registry: ExecutorRegistry,
        state: OrchestratorState | None = None,
        default_timeout: float = 30.0,
    ) -> None:
        self.registry = registry
        self.state = state or OrchestratorState()
        self.default_timeout = default_timeout
        self._background: set[asyncio.Future] = set()
        self.logger = get_logger("tasks.orchestrator")

    # ------------------------------------------------------------------
    # Single task
    # ------------------------------------------------------------------

    async def execute_task(
        self,
        task: Task,
        context: ExecutionContext,
        options: TaskExecutionOptions | None = None,
    ) -> TaskExecutionResult:
        """Execute *task*, or join the execution already running for its id."""
        existing = self.state.in_flight.get(task.id)
        if existing is not None:
            self.logger.info("task_join_in_flight", task_id=task.id)
            return await asyncio.shield(existing[1])

        start = time.monotonic()
        try:
            self._validate(task)
            executor = self._resolve_executor(task)
        except SmartBrowserError as exc:
            return self._reject(task, exc, start)

        options = options or TaskExecutionOptions()
        future = asyncio.ensure_future(self._run(task, executor, context, options))
        self.state.in_flight[task.id] = (task, future)
        return await asyncio.shield(future)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def execute_batch(
        self,
        tasks: list[Task],
        context: ExecutionContext,
    ) -> list[TaskExecutionResult]:
        """Execute *tasks* grouped by executor; results follow input order.

        Groups run concurrently, each through its executor's own
        ``execute_batch``.  A group that raises produces a failed result
        for every one of its tasks.
        """
        start = time.monotonic()
        slots: list[asyncio.Future | TaskExecutionResult] = []
        groups: dict[int, tuple[BaseExecutor, list[Task]]] = {}
        owned: dict[str, asyncio.Future] = {}
        loop = asyncio.get_running_loop()

        for task in tasks:
            existing = self.state.in_flight.get(task.id)
            if existing is not None:
                slots.append(existing[1])
                continue
            try:
                self._validate(task)
                executor = self._resolve_executor(task)
            except SmartBrowserError as exc:
                slots.append(self._reject(task, exc, start))
                continue

            future = loop.create_future()
            self.state.in_flight[task.id] = (task, future)
            owned[task.id] = future
            task.transition_to(TaskStatus.PROCESSING)
            groups.setdefault(id(executor), (executor, []))[1].append(task)
            slots.append(future)

        self.logger.info(
            "batch_start",
            user_id=context.user_id,
            task_count=len(tasks),
            group_count=len(groups),
        )

        await asyncio.gather(
            *(
                self._run_group(executor, group, context, owned, start)
                for executor, group in groups.values()
            )
        )

        results: list[TaskExecutionResult] = []
        for slot in slots:
            if isinstance(slot, TaskExecutionResult):
                results.append(slot)
            else:
                results.append(await asyncio.shield(slot))

        self.logger.info(
            "batch_complete",
            user_id=context.user_id,
            successful=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
        )
        return results

    async def _run_group(
        self,
        executor: BaseExecutor,
        group: list[Task],
        context: ExecutionContext,
        owned: dict[str, asyncio.Future],
        start: float,
    ) -> None:
        try:
            results = await executor.execute_batch(group, context)
        except Exception as exc:
            self.logger.error(
                "batch_group_failed", executor=executor.name, error=str(exc)
            )
            code = exc.code if isinstance(exc, SmartBrowserError) else "INTERNAL_ERROR"
            results = [
                TaskResult(
                    task_id=task.id,
                    success=False,
                    error=str(exc),
                    error_code=code,
                    metadata={"executor": executor.name},
                )
                for task in group
            ]

        by_position = list(results)
        by_id = {r.task_id: r for r in results}
        for index, task in enumerate(group):
            if index < len(by_position) and by_position[index].task_id == task.id:
                result = by_position[index]
            else:
                result = by_id.get(task.id) or TaskResult(
                    task_id=task.id,
                    success=False,
                    error=f"Executor '{executor.name}' returned no result",
                    error_code="INTERNAL_ERROR",
                    metadata={"executor": executor.name},
                )
            outcome = self._settle(task, executor, result, owned[task.id], start)
            if not owned[task.id].done():
                owned[task.id].set_result(outcome)

    # ------------------------------------------------------------------
    # Cancellation & introspection
    # ------------------------------------------------------------------

    def cancel_task(self, task_id: str) -> bool:
        """Stop tracking *task_id* and mark it cancelled.

        Work already handed to an executor keeps running; its result is
        discarded when it arrives.  Returns ``False`` if the id is not in
        flight.
        """
        entry = self.state.in_flight.pop(task_id, None)
        if entry is None:
            return False
        task, _ = entry
        if not task.status.is_terminal:
            task.transition_to(TaskStatus.CANCELLED)
        self.logger.info("task_cancelled", task_id=task_id)
        return True

    def get_running_tasks(self) -> list[str]:
        return list(self.state.in_flight.keys())

    def get_task_history(self, user_id: str) -> list[TaskResult]:
        return list(self.state.history.get(user_id, ()))

    def get_available_executors(self) -> list[str]:
        return [e.name for e in self.registry.list_all()]

    async def health_check(self) -> dict[str, bool]:
        health: dict[str, bool] = {}
        for executor in self.registry.list_all():
            try:
                health[executor.name] = await executor.health_check()
            except Exception as exc:
                self.logger.error(
                    "executor_health_check_failed", executor=executor.name, error=str(exc)
                )
                health[executor.name] = False
        return health

    async def cleanup(self) -> None:
        """Cancel everything in flight and forget all history."""
        pending = [fut for _, fut in self.state.in_flight.values()] + list(self._background)
        for fut in pending:
            fut.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self.state.clear()
        self._background.clear()
        self.logger.info("orchestrator_cleanup", cancelled=len(pending))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validate(self, task: Task) -> None:
        if not task.id:
            raise ValidationError("Task ID is required")
        if not task.type:
            raise ValidationError("Task type is required")
        if not task.user_id:
            raise ValidationError("User ID is required")
        if task.status == TaskStatus.CANCELLED:
            raise TaskCancelledError(task.id)
        if task.status.is_terminal:
            raise ValidationError(
                f"Task {task.id} already finished with status {task.status.value}"
            )

    def _resolve_executor(self, task: Task) -> BaseExecutor:
        executor = self.registry.get(task.type)
        if not executor.can_handle(task):
            raise ExecutorMismatchError(executor.name, task.type.value)
        return executor

    async def _run(
        self,
        task: Task,
        executor: BaseExecutor,
        context: ExecutionContext,
        options: TaskExecutionOptions,
    ) -> TaskExecutionResult:
        start = time.monotonic()
        own = asyncio.current_task()
        timeout = options.timeout or executor.config.timeout or self.default_timeout
        self.logger.info(
            "task_start",
            task_id=task.id,
            task_type=task.type.value,
            executor=executor.name,
            timeout=timeout,
        )

        try:
            task.transition_to(TaskStatus.PROCESSING)
            result = await await_with_timeout(
                executor.execute(task, context, retries=options.retries),
                timeout,
                self._background,
            )
        except SmartBrowserError as exc:
            result = TaskResult(
                task_id=task.id,
                success=False,
                error=str(exc),
                error_code=exc.code,
                metadata={"executor": executor.name},
                execution_time=round((time.monotonic() - start) * 1000, 2),
            )
        except Exception as exc:
            self.logger.error(
                "task_unexpected_error", task_id=task.id, error=str(exc), exc_info=True
            )
            result = TaskResult(
                task_id=task.id,
                success=False,
                error=f"Unexpected error: {exc}",
                error_code="INTERNAL_ERROR",
                metadata={"executor": executor.name},
                execution_time=round((time.monotonic() - start) * 1000, 2),
            )

        return self._settle(task, executor, result, own, start)

    def _settle(
        self,
        task: Task,
        executor: BaseExecutor,
        result: TaskResult,
        own: asyncio.Future | None,
        start: float,
    ) -> TaskExecutionResult:
        """Release the in-flight slot, update the task and record history."""
        entry = self.state.in_flight.get(task.id)
        if entry is not None and entry[1] is own:
            del self.state.in_flight[task.id]

        elapsed = round((time.monotonic() - start) * 1000, 2)

        if task.status == TaskStatus.CANCELLED:
            self.logger.info("task_result_discarded", task_id=task.id)
            return TaskExecutionResult(
                task_id=task.id,
                success=False,
                error=str(TaskCancelledError(task.id)),
                error_code=TaskCancelledError.code,
                execution_time=elapsed,
                executor_used=executor.name,
            )

        task.error = None if result.success else result.error
        task.transition_to(TaskStatus.COMPLETED if result.success else TaskStatus.FAILED)
        self.state.record(task.user_id, result)

        log_fn = self.logger.info if result.success else self.logger.warning
        log_fn(
            "task_complete",
            task_id=task.id,
            executor=executor.name,
            success=result.success,
            error_code=result.error_code,
            execution_time=elapsed,
        )
        return TaskExecutionResult(
            task_id=task.id,
            success=result.success,
            result=result,
            error=result.error,
            error_code=result.error_code,
            execution_time=elapsed,
            executor_used=executor.name,
        )

    def _reject(self, task: Task, exc: SmartBrowserError, start: float) -> TaskExecutionResult:
        """Failure result for a task that never reached an executor."""
        self.logger.warning(
            "task_rejected",
            task_id=task.id,
            task_type=task.type.value if task.type else None,
            error_code=exc.code,
            error=str(exc),
        )
        return TaskExecutionResult(
            task_id=task.id,
            success=False,
            error=str(exc),
            error_code=exc.code,
            execution_time=round((time.monotonic() - start) * 1000, 2),
        )
