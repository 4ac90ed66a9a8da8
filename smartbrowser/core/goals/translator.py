"""Goal translation: free text in, an action plan and tasks out.

The LLM reply is never trusted to be well-formed.  An unparseable reply
degrades to a safe default analysis (``search`` intent, empty plan)
instead of failing the goal.  LLM transport errors still propagate.
"""

from __future__ import annotations

import re

import pydantic

from smartbrowser.core.goals.models import (
    ActionPlanStep,
    Goal,
    GoalAnalysis,
    GoalAnalysisOptions,
    GoalEntity,
    GoalIntent,
)
from smartbrowser.core.goals.prompts.analysis import (
    ACTION_VERBS,
    ANALYSIS_SYSTEM_PROMPT,
    ANALYSIS_USER_TEMPLATE,
    CONTEXT_TEMPLATE,
    INTENT_TYPES,
    NO_STEP_INSTRUCTION,
    RECOMMENDATION_INSTRUCTION,
    STEP_INSTRUCTION,
)
from smartbrowser.core.llm.parsing import extract_json
from smartbrowser.core.tasks.models import ExecutionContext, Task, TaskPayload, TaskType
from smartbrowser.utils.logging import get_logger
from smartbrowser.utils.validator import Validator, validator as default_validator

logger = get_logger("goals.translator")


# ---------------------------------------------------------------------------
# Action verb -> task type
# ---------------------------------------------------------------------------

_ACTION_TO_TASK_TYPE: dict[str, TaskType] = {
    "navigate": TaskType.NAVIGATE,
    "search": TaskType.SEARCH,
    "extract": TaskType.EXTRACT_CONTENT,
    "summarize": TaskType.SUMMARIZE,
}


def map_action(action: str) -> TaskType:
    """Anything outside the closed lookup becomes a navigation."""
    return _ACTION_TO_TASK_TYPE.get((action or "").strip().lower(), TaskType.NAVIGATE)


class GoalTranslator:
    """Analyse goals with the LLM and turn action plans into tasks.

    Parameters
    ----------
    llm_client:
        An :class:`~smartbrowser.core.llm.client.LLMClient` (anything with
        an async ``complete(user, system=None)``).
    validator:
        Used to reject empty or injected goal text.
    """

    def __init__(self, llm_client, validator: Validator | None = None):
        self.llm = llm_client
        self.validator = validator or default_validator

    async def analyze(
        self,
        goal: Goal,
        context: ExecutionContext | None = None,
        options: GoalAnalysisOptions | None = None,
    ) -> GoalAnalysis:
        """Analyse *goal* and record the intent and entities on it."""
        options = options or GoalAnalysisOptions()
        text = self.validator.validate_goal_text(goal.text, goal.priority.value)

        system = ANALYSIS_SYSTEM_PROMPT.format(
            actions=", ".join(ACTION_VERBS),
            intents=", ".join(INTENT_TYPES),
        )
        user_msg = ANALYSIS_USER_TEMPLATE.format(
            goal=text,
            priority=goal.priority.value,
            context=_render_context(context),
            step_instruction=(
                STEP_INSTRUCTION.format(max_steps=options.max_steps)
                if options.include_steps
                else NO_STEP_INSTRUCTION
            ),
            recommendation_instruction=(
                RECOMMENDATION_INSTRUCTION if options.include_recommendations else ""
            ),
        )

        raw = await self.llm.complete(user_msg, system=system)

        try:
            data = extract_json(raw)
        except ValueError:
            logger.warning("goal_analysis_unparseable", goal_id=goal.id, raw=(raw or "")[:200])
            analysis = GoalAnalysis(degraded=True)
        else:
            try:
                analysis = self._parse(data, text, options)
            except (TypeError, ValueError, pydantic.ValidationError) as exc:
                logger.warning("goal_analysis_malformed", goal_id=goal.id, error=str(exc)[:200])
                analysis = GoalAnalysis(degraded=True)

        goal.intent = analysis.intent
        goal.entities = analysis.entities
        logger.info(
            "goal_analyzed",
            goal_id=goal.id,
            intent=analysis.intent.type,
            steps=len(analysis.action_plan),
            degraded=analysis.degraded,
        )
        return analysis

    def to_task(
        self,
        goal: Goal,
        step: ActionPlanStep,
        index: int,
        total: int,
        user_id: str | None = None,
    ) -> Task:
        """Build the task for the *index*-th (0-based) of *total* plan steps."""
        return Task(
            type=map_action(step.action),
            user_id=user_id or goal.user_id,
            goal_id=goal.id,
            payload=TaskPayload(
                url=step.url,
                query=step.description,
                options={
                    "step": index + 1,
                    "total_steps": total,
                    "selector": step.selector,
                },
            ),
            priority=goal.priority,
        )

    def to_tasks(self, goal: Goal, analysis: GoalAnalysis, user_id: str | None = None) -> list[Task]:
        total = len(analysis.action_plan)
        return [
            self.to_task(goal, step, index, total, user_id)
            for index, step in enumerate(analysis.action_plan)
        ]

    # ------------------------------------------------------------------
    # Reply parsing
    # ------------------------------------------------------------------

    def _parse(self, data: dict, text: str, options: GoalAnalysisOptions) -> GoalAnalysis:
        intent_raw = data.get("intent") if isinstance(data.get("intent"), dict) else {}
        intent = GoalIntent(
            type=str(intent_raw.get("type") or "search"),
            confidence=_clamp(intent_raw.get("confidence"), 0.5),
            parameters=intent_raw.get("parameters") if isinstance(intent_raw.get("parameters"), dict) else {},
        )

        entities = []
        for item in _as_list(data.get("entities")):
            if not isinstance(item, dict) or not item.get("value"):
                continue
            value = str(item["value"])
            entities.append(
                GoalEntity(
                    type=str(item.get("type") or "other"),
                    value=value,
                    confidence=_clamp(item.get("confidence"), 0.5),
                    span=_find_span(text, value),
                )
            )

        plan: list[ActionPlanStep] = []
        if options.include_steps:
            for position, item in enumerate(_as_list(data.get("actionPlan")), start=1):
                if not isinstance(item, dict) or not item.get("action"):
                    continue
                plan.append(
                    ActionPlanStep(
                        step=_as_int(item.get("step"), position),
                        action=str(item["action"]),
                        description=str(item.get("description") or ""),
                        url=_as_text(item.get("url")),
                        selector=_as_text(item.get("selector")),
                    )
                )
            plan = plan[: options.max_steps]

        recommendations = []
        if options.include_recommendations:
            recommendations = [str(r) for r in _as_list(data.get("recommendations")) if r]

        return GoalAnalysis(
            intent=intent,
            entities=entities,
            action_plan=plan,
            recommendations=recommendations,
        )


def _render_context(context: ExecutionContext | None) -> str:
    if context is None:
        return ""
    return CONTEXT_TEMPLATE.format(
        title=context.current_title or "N/A",
        url=context.current_url or "N/A",
        recent=", ".join(context.recent_page_titles) or "None",
        history=", ".join(context.user_history) or "None",
    )


def _find_span(text: str, value: str) -> tuple[int, int] | None:
    match = re.search(re.escape(value), text, flags=re.IGNORECASE)
    return (match.start(), match.end()) if match else None


def _clamp(value, default: float) -> float:
    try:
        return min(max(float(value), 0.0), 1.0)
    except (TypeError, ValueError):
        return default


def _as_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _as_text(value) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None
