"""Task-related data models.

Defines the typed unit of work (:class:`Task`), the results an executor
and the orchestrator hand back, and the ambient :class:`ExecutionContext`
every execution runs under.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from smartbrowser.utils.exceptions import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskType(str, Enum):
    """Closed set of task kinds a goal can be decomposed into."""

    NAVIGATE = "navigate"
    EXTRACT_CONTENT = "extract_content"
    SUMMARIZE = "summarize"
    SEARCH = "search"
    BOOK_HOTEL = "book_hotel"
    FIND_PRODUCT = "find_product"
    SEND_EMAIL = "send_email"


class TaskStatus(str, Enum):
    """Lifecycle states for a single task."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)

# Allowed forward moves.  Terminal states have no outgoing edges.
_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.PROCESSING, TaskStatus.CANCELLED}),
    TaskStatus.PROCESSING: frozenset(
        {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TaskPayload(BaseModel):
    """Inputs for a task.  Which fields matter depends on the task type."""

    url: str | None = None
    query: str | None = None
    content: str | None = None
    options: dict[str, Any] = {}


class Task(BaseModel):
    """A single typed unit of work.

    Attributes:
        id: Unique identifier; also the deduplication key in the orchestrator.
        type: What kind of work this is; selects the executor.
        user_id: Owner of the task; history is kept per user.
        goal_id: The goal this task was planned from, if any.
        payload: Type-specific inputs.
        status: Lifecycle state.  Only moves forward, see :meth:`transition_to`.
        priority: ``critical`` failures abort the rest of a goal's plan.
        retry_count: Attempts consumed by the last execution.
        max_retries: Upper bound on attempts for this task.
        error: Error message populated if the task fails.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: TaskType
    user_id: str
    goal_id: str | None = None
    payload: TaskPayload = Field(default_factory=TaskPayload)
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    retry_count: int = 0
    max_retries: int = 3
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    error: str | None = None

    def transition_to(self, status: TaskStatus) -> None:
        """Move to *status*, refusing any backwards or sideways move."""
        if status == self.status:
            return
        if status not in _TRANSITIONS[self.status]:
            raise ValidationError(
                f"Illegal task status transition: {self.status.value} -> {status.value}"
            )
        self.status = status
        self.updated_at = utcnow()
        if status.is_terminal:
            self.completed_at = self.updated_at


class TaskResult(BaseModel):
    """Outcome of one execution of a task by an executor.

    ``metadata`` carries the executor name, a per-execution id, start and
    end times and the number of attempts used.
    """

    task_id: str
    success: bool
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    metadata: dict[str, Any] = {}
    execution_time: float = 0.0  # milliseconds


class TaskExecutionResult(BaseModel):
    """What :class:`~smartbrowser.core.tasks.orchestrator.TaskOrchestrator` returns."""

    task_id: str
    success: bool
    result: TaskResult | None = None
    error: str | None = None
    error_code: str | None = None
    execution_time: float = 0.0  # milliseconds
    executor_used: str | None = None


class ExecutionContext(BaseModel):
    """Ambient state for one execution: who asked and what they were looking at."""

    user_id: str
    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    goal: Any = None
    current_url: str | None = None
    current_title: str | None = None
    recent_page_titles: list[str] = []
    user_history: list[str] = []


class TaskExecutionOptions(BaseModel):
    """Per-call overrides accepted by the orchestrator."""

    timeout: float | None = None  # seconds
    retries: int | None = None
    priority: TaskPriority | None = None
