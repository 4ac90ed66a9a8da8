"""Request/response schemas for goal execution."""

from typing import Literal

from pydantic import BaseModel, Field


class GoalContext(BaseModel):
    """What the caller is currently looking at."""

    current_url: str | None = None
    current_title: str | None = None
    recent_page_titles: list[str] = []
    user_history: list[str] = []


class ExecuteGoalRequest(BaseModel):
    goal: str = Field(..., min_length=1, max_length=1000)
    priority: Literal["low", "medium", "high", "critical"] = "medium"
    context: GoalContext | None = None


class GoalTaskOutcome(BaseModel):
    task_id: str
    success: bool
    executor: str | None = None
    error: str | None = None
    error_code: str | None = None
    execution_time: float = 0.0


class ExecuteGoalData(BaseModel):
    goal_id: str
    summary: str
    tasks_executed: int
    successful_tasks: int
    execution_time: float
    degraded: bool = False
    tasks: list[GoalTaskOutcome]
