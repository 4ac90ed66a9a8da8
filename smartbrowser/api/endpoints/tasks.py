"""Direct task execution and task introspection endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from smartbrowser.api.schemas.common import ApiResponse, fail, ok
from smartbrowser.api.schemas.task import (
    BatchTaskRequest,
    HistoryData,
    RunningTasksData,
    TaskRequest,
)
from smartbrowser.core.tasks.models import (
    ExecutionContext,
    Task,
    TaskExecutionOptions,
    TaskExecutionResult,
)
from smartbrowser.core.tasks.orchestrator import TaskOrchestrator
from smartbrowser.dependencies import get_orchestrator, get_user_id, get_validator
from smartbrowser.utils.logging import get_logger
from smartbrowser.utils.validator import Validator, scrub_error_message

logger = get_logger(__name__)

router = APIRouter()

HISTORY_PAGE = 10


def _build_task(request: TaskRequest, user_id: str, validator: Validator) -> Task:
    payload = request.payload
    url, query, content = validator.validate_task_payload(payload.url, payload.query, payload.content)
    fields = {} if request.id is None else {"id": request.id}
    return Task(
        type=request.type,
        user_id=user_id,
        payload=payload.model_copy(update={"url": url, "query": query, "content": content}),
        priority=request.priority,
        **fields,
    )


def _scrubbed(result: TaskExecutionResult) -> TaskExecutionResult:
    if result.error is None:
        return result
    return result.model_copy(update={"error": scrub_error_message(result.error)})


@router.post(
    "/tasks",
    response_model=ApiResponse,
    summary="Run a single task",
)
async def run_task(
    body: TaskRequest,
    user_id: str = Depends(get_user_id),
    validator: Validator = Depends(get_validator),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    task = _build_task(body, user_id, validator)
    result = _scrubbed(
        await orchestrator.execute_task(
            task,
            ExecutionContext(user_id=user_id),
            TaskExecutionOptions(timeout=body.timeout, retries=body.retries),
        )
    )
    if result.success:
        return ok(result)
    return fail(result.error or "Task failed", result.error_code or "INTERNAL_ERROR", data=result)


@router.post(
    "/tasks/batch",
    response_model=ApiResponse,
    summary="Run a batch of tasks",
    description="Tasks are grouped by executor; results follow the request order.",
)
async def run_batch(
    body: BatchTaskRequest,
    user_id: str = Depends(get_user_id),
    validator: Validator = Depends(get_validator),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    tasks = [_build_task(t, user_id, validator) for t in body.tasks]
    results = await orchestrator.execute_batch(tasks, ExecutionContext(user_id=user_id))
    return ok([_scrubbed(r) for r in results])


@router.delete(
    "/tasks/{task_id}",
    response_model=ApiResponse,
    summary="Cancel a running task",
    description=(
        "Best effort: the task leaves the in-flight map and its result is "
        "discarded, but work already issued to the browser keeps running."
    ),
)
async def cancel_task(
    task_id: str,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    if orchestrator.cancel_task(task_id):
        return ok({"task_id": task_id, "cancelled": True})
    return fail(f"Task is not running: {task_id}", "TASK_NOT_FOUND", data={"task_id": task_id})


@router.get("/history", response_model=ApiResponse, summary="Recent task results for the caller")
async def task_history(
    user_id: str = Depends(get_user_id),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    history = orchestrator.get_task_history(user_id)
    return ok(HistoryData(history=history[-HISTORY_PAGE:], total=len(history)))


@router.get("/running-tasks", response_model=ApiResponse, summary="Tasks currently in flight")
async def running_tasks(
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> ApiResponse:
    running = orchestrator.get_running_tasks()
    return ok(RunningTasksData(count=len(running), task_ids=running))
