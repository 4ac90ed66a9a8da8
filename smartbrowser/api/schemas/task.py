"""Request/response schemas for direct task execution and introspection."""

from pydantic import BaseModel, Field

from smartbrowser.core.tasks.models import TaskPayload, TaskPriority, TaskResult, TaskType


class TaskRequest(BaseModel):
    """One task submitted directly by a caller."""

    id: str | None = None
    type: TaskType
    payload: TaskPayload = Field(default_factory=TaskPayload)
    priority: TaskPriority = TaskPriority.MEDIUM
    timeout: float | None = Field(default=None, gt=0, le=300)
    retries: int | None = Field(default=None, ge=1, le=10)


class BatchTaskRequest(BaseModel):
    tasks: list[TaskRequest] = Field(..., min_length=1, max_length=50)


class HistoryData(BaseModel):
    history: list[TaskResult]
    total: int


class RunningTasksData(BaseModel):
    count: int
    task_ids: list[str]
