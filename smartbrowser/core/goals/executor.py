"""Goal execution: analyse, run the plan step by step, narrate.

Steps run strictly one after another.  A failed ``critical`` step stops
the plan and the remaining steps are never turned into tasks.  Any other
failure is recorded and the next step runs.  The goal succeeds when at
least one task succeeded.
"""

from __future__ import annotations

import time

from smartbrowser.core.goals.models import (
    Goal,
    GoalAnalysis,
    GoalAnalysisOptions,
    GoalExecutionResult,
    GoalState,
)
from smartbrowser.core.goals.prompts.narration import (
    FALLBACK_SUMMARY,
    NARRATION_SYSTEM_PROMPT,
    NARRATION_USER_TEMPLATE,
)
from smartbrowser.core.goals.translator import GoalTranslator
from smartbrowser.core.tasks.models import (
    ExecutionContext,
    TaskExecutionOptions,
    TaskExecutionResult,
    TaskPriority,
    TaskType,
)
from smartbrowser.core.tasks.orchestrator import TaskOrchestrator
from smartbrowser.utils.logging import get_logger
from smartbrowser.utils.validator import Validator, scrub_error_message, validator as default_validator

logger = get_logger("goals.executor")

# Recent page titles carried between steps.
RECENT_TITLES_LIMIT = 5


class GoalExecutor:
    """Drive one goal through translator, orchestrator and narration.

    Parameters
    ----------
    translator:
        The :class:`GoalTranslator` used to build the plan.
    orchestrator:
        The :class:`TaskOrchestrator` every step is dispatched through.
    llm_client:
        Used for the closing narration.  ``None`` always uses the
        deterministic fallback summary.
    """

    def __init__(
        self,
        translator: GoalTranslator,
        orchestrator: TaskOrchestrator,
        llm_client=None,
        validator: Validator | None = None,
    ):
        self.translator = translator
        self.orchestrator = orchestrator
        self.llm = llm_client
        self.validator = validator or default_validator

    async def execute_goal(
        self,
        goal: Goal,
        context: ExecutionContext,
        options: TaskExecutionOptions | None = None,
        analysis_options: GoalAnalysisOptions | None = None,
    ) -> GoalExecutionResult:
        start = time.monotonic()
        # Steps update the page context; keep the caller's copy untouched.
        context = context.model_copy(
            update={
                "goal": goal,
                "recent_page_titles": list(context.recent_page_titles),
            }
        )
        logger.info("goal_execution_start", goal_id=goal.id, user_id=context.user_id)

        goal.set_state(GoalState.ANALYZING)
        try:
            analysis = await self.translator.analyze(goal, context, analysis_options)
        except Exception as exc:
            goal.set_state(GoalState.FAILED)
            code = getattr(exc, "code", "INTERNAL_ERROR")
            logger.error(
                "goal_analysis_failed",
                goal_id=goal.id,
                code=code,
                error=scrub_error_message(str(exc)),
            )
            return GoalExecutionResult(
                goal_id=goal.id,
                success=False,
                summary=f"Goal execution failed: goal analysis failed ({code})",
                execution_time=_elapsed_ms(start),
                state=GoalState.FAILED,
            )

        goal.set_state(GoalState.RUNNING_TASKS)
        results = await self._run_plan(goal, analysis, context, options)

        goal.set_state(GoalState.SUMMARIZING)
        summary = await self._narrate(goal, results, analysis.recommendations)

        goal.set_state(GoalState.DONE)
        successful = sum(1 for r in results if r.success)
        elapsed = _elapsed_ms(start)
        logger.info(
            "goal_execution_complete",
            goal_id=goal.id,
            total_tasks=len(results),
            successful_tasks=successful,
            planned_steps=len(analysis.action_plan),
            execution_time=elapsed,
        )
        return GoalExecutionResult(
            goal_id=goal.id,
            success=successful > 0,
            tasks=results,
            summary=summary,
            execution_time=elapsed,
            state=GoalState.DONE,
            degraded=analysis.degraded,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_plan(
        self,
        goal: Goal,
        analysis: GoalAnalysis,
        context: ExecutionContext,
        options: TaskExecutionOptions | None,
    ) -> list[TaskExecutionResult]:
        results: list[TaskExecutionResult] = []
        total = len(analysis.action_plan)
        for index, step in enumerate(analysis.action_plan):
            task = self.translator.to_task(goal, step, index, total, context.user_id)
            result = await self.orchestrator.execute_task(task, context, options)
            results.append(result)

            if result.success:
                _follow_page(context, task.type, result)
            elif task.priority == TaskPriority.CRITICAL:
                logger.warning(
                    "goal_critical_task_failed",
                    goal_id=goal.id,
                    task_id=task.id,
                    step=index + 1,
                    skipped=total - index - 1,
                    error=result.error,
                )
                break
        return results

    async def _narrate(
        self,
        goal: Goal,
        results: list[TaskExecutionResult],
        recommendations: list[str],
    ) -> str:
        successful = sum(1 for r in results if r.success)
        fallback = FALLBACK_SUMMARY.format(successful=successful, total=len(results))
        if self.llm is None:
            return fallback

        task_lines = "\n".join(
            f"- {r.task_id}: "
            + ("Success" if r.success else f"Failed - {scrub_error_message(r.error or '')}")
            for r in results
        )
        user_msg = NARRATION_USER_TEMPLATE.format(
            goal=goal.text,
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            task_lines=task_lines or "- none",
            recommendations="\n".join(recommendations) or "None",
        )
        try:
            reply = await self.llm.chat(
                [{"role": "user", "content": user_msg}],
                system=NARRATION_SYSTEM_PROMPT,
            )
        except Exception as exc:
            logger.error("goal_narration_failed", goal_id=goal.id, error=str(exc))
            return fallback

        if not self.validator.validate_llm_response(reply):
            logger.warning("goal_narration_rejected", goal_id=goal.id)
            return fallback
        return reply.strip()


def _follow_page(context: ExecutionContext, task_type: TaskType, result: TaskExecutionResult) -> None:
    """Point the context at the page a navigation step landed on."""
    if task_type != TaskType.NAVIGATE or result.result is None:
        return
    data = result.result.data
    if not isinstance(data, dict) or not data.get("url"):
        return
    context.current_url = data["url"]
    context.current_title = data.get("title")
    if context.current_title:
        titles = [*context.recent_page_titles, context.current_title]
        context.recent_page_titles = titles[-RECENT_TITLES_LIMIT:]


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)
