"""Goal-related data models.

A :class:`Goal` is a free-text user objective.  The translator turns it
into a :class:`GoalAnalysis` whose action plan steps become tasks; the
goal executor reports back a :class:`GoalExecutionResult`.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from smartbrowser.core.tasks.models import TaskExecutionResult, TaskPriority, utcnow


class GoalState(str, Enum):
    """Goal execution states.

    ``analyzing -> running_tasks -> summarizing -> done``, or ``failed``
    straight out of ``analyzing``.
    """

    PENDING = "pending"
    ANALYZING = "analyzing"
    RUNNING_TASKS = "running_tasks"
    SUMMARIZING = "summarizing"
    DONE = "done"
    FAILED = "failed"


class GoalIntent(BaseModel):
    type: str = "search"
    confidence: float = 0.5
    parameters: dict[str, Any] = {}


class GoalEntity(BaseModel):
    type: str = "other"
    value: str
    confidence: float = 0.5
    span: tuple[int, int] | None = None  # [start, end) in the goal text


class Goal(BaseModel):
    """A free-text objective owned by one user.

    ``intent`` and ``entities`` are filled in by the translator once
    analysis completes.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    text: str
    priority: TaskPriority = TaskPriority.MEDIUM
    status: GoalState = GoalState.PENDING
    intent: GoalIntent | None = None
    entities: list[GoalEntity] = []
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def set_state(self, state: GoalState) -> None:
        self.status = state
        self.updated_at = utcnow()


class ActionPlanStep(BaseModel):
    step: int
    action: str
    description: str = ""
    url: str | None = None
    selector: str | None = None


class GoalAnalysisOptions(BaseModel):
    include_steps: bool = True
    include_recommendations: bool = True
    max_steps: int = Field(default=5, ge=1, le=20)


class GoalAnalysis(BaseModel):
    """Translator output.  ``degraded`` marks the safe default used on a bad reply."""

    intent: GoalIntent = Field(default_factory=GoalIntent)
    entities: list[GoalEntity] = []
    action_plan: list[ActionPlanStep] = []
    recommendations: list[str] = []
    degraded: bool = False


class GoalExecutionResult(BaseModel):
    goal_id: str
    success: bool
    tasks: list[TaskExecutionResult] = []
    summary: str = ""
    execution_time: float = 0.0  # milliseconds
    state: GoalState = GoalState.DONE
    degraded: bool = False
