"""Free-text goal execution endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from smartbrowser.api.schemas.common import ApiResponse
from smartbrowser.api.schemas.goal import ExecuteGoalData, ExecuteGoalRequest, GoalTaskOutcome
from smartbrowser.core.goals.executor import GoalExecutor
from smartbrowser.core.goals.models import Goal
from smartbrowser.core.tasks.models import ExecutionContext, TaskPriority
from smartbrowser.dependencies import get_goal_executor, get_user_id, get_validator
from smartbrowser.utils.logging import get_logger
from smartbrowser.utils.validator import Validator, scrub_error_message

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/execute-goal",
    response_model=ApiResponse,
    summary="Execute a free-text goal",
    description=(
        "Plan the goal into browser tasks with the LLM, run them one by one "
        "and return every task outcome with a narrated summary."
    ),
)
async def execute_goal(
    body: ExecuteGoalRequest,
    user_id: str = Depends(get_user_id),
    validator: Validator = Depends(get_validator),
    goal_executor: GoalExecutor = Depends(get_goal_executor),
) -> ApiResponse:
    text = validator.validate_goal_text(body.goal, body.priority)
    goal = Goal(user_id=user_id, text=text, priority=TaskPriority(body.priority))
    ctx = body.context
    context = ExecutionContext(
        user_id=user_id,
        current_url=ctx.current_url if ctx else None,
        current_title=ctx.current_title if ctx else None,
        recent_page_titles=ctx.recent_page_titles if ctx else [],
        user_history=ctx.user_history if ctx else [],
    )
    logger.info("goal_request", goal_id=goal.id, user_id=user_id, priority=body.priority)

    result = await goal_executor.execute_goal(goal, context)

    data = ExecuteGoalData(
        goal_id=result.goal_id,
        summary=result.summary,
        tasks_executed=len(result.tasks),
        successful_tasks=sum(1 for t in result.tasks if t.success),
        execution_time=result.execution_time,
        degraded=result.degraded,
        tasks=[
            GoalTaskOutcome(
                task_id=t.task_id,
                success=t.success,
                executor=t.executor_used,
                error=scrub_error_message(t.error) if t.error else None,
                error_code=t.error_code,
                execution_time=t.execution_time,
            )
            for t in result.tasks
        ],
    )
    if result.success:
        return ApiResponse(success=True, data=data)
    return ApiResponse(
        success=False,
        data=data,
        error=result.summary if not result.tasks else "No task in the goal's plan succeeded",
        code="GOAL_FAILED",
    )
