"""Tests for goal translation and goal execution."""
import json

import pytest

from smartbrowser.core.goals.models import Goal, GoalAnalysisOptions, GoalState
from smartbrowser.core.tasks.models import ExecutionContext, TaskPriority, TaskType
from smartbrowser.utils.exceptions import LLMError, SecurityError, ValidationError


def _plan_reply(*actions, url=None, recommendations=("Bookmark the page",)):
    return json.dumps(
        {
            "intent": {"type": "search", "confidence": 0.9, "parameters": {"topic": "laptops"}},
            "entities": [
                {"type": "product", "value": "laptop", "confidence": 1.4},
                {"type": "date"},
            ],
            "actionPlan": [
                {"step": n + 1, "action": action, "description": f"Step {n + 1}: {action}", "url": url}
                for n, action in enumerate(actions)
            ],
            "recommendations": list(recommendations),
        }
    )


def _goal(text="Find the best laptop under $1000", priority=TaskPriority.MEDIUM):
    return Goal(user_id="user-1", text=text, priority=priority)


def _registry(**executors):
    from smartbrowser.core.tasks.registry import ExecutorRegistry

    table = {t: None for t in TaskType}
    for name, executor in executors.items():
        table[TaskType(name)] = executor
    return ExecutorRegistry(table)


def _goal_executor(llm, **executors):
    from smartbrowser.core.goals.executor import GoalExecutor
    from smartbrowser.core.goals.translator import GoalTranslator
    from smartbrowser.core.tasks.orchestrator import TaskOrchestrator

    orchestrator = TaskOrchestrator(_registry(**executors))
    return GoalExecutor(GoalTranslator(llm), orchestrator, llm), orchestrator


# ---------------------------------------------------------------------------
# Translator
# ---------------------------------------------------------------------------


class TestMapAction:
    @pytest.mark.parametrize(
        "action,expected",
        [
            ("navigate", TaskType.NAVIGATE),
            ("search", TaskType.SEARCH),
            ("extract", TaskType.EXTRACT_CONTENT),
            ("Summarize", TaskType.SUMMARIZE),
            ("click", TaskType.NAVIGATE),
            ("fill", TaskType.NAVIGATE),
            ("", TaskType.NAVIGATE),
        ],
    )
    def test_mapping(self, action, expected):
        from smartbrowser.core.goals.translator import map_action

        assert map_action(action) == expected


class TestGoalTranslator:
    @pytest.mark.asyncio
    async def test_analyze_parses_reply(self, scripted_llm):
        from smartbrowser.core.goals.translator import GoalTranslator

        llm = scripted_llm(_plan_reply("navigate", "search", url="https://shop.example.com"))
        goal = _goal()

        analysis = await GoalTranslator(llm).analyze(goal)

        assert analysis.degraded is False
        assert analysis.intent.type == "search"
        assert analysis.intent.parameters == {"topic": "laptops"}
        assert [s.action for s in analysis.action_plan] == ["navigate", "search"]
        assert analysis.action_plan[0].url == "https://shop.example.com"
        assert analysis.recommendations == ["Bookmark the page"]
        assert len(analysis.entities) == 1
        entity = analysis.entities[0]
        assert entity.confidence == 1.0
        assert entity.span == (14, 20)
        assert goal.intent == analysis.intent
        assert goal.entities == analysis.entities

    @pytest.mark.asyncio
    async def test_prompt_carries_goal_context_and_limits(self, scripted_llm):
        from smartbrowser.core.goals.translator import GoalTranslator

        llm = scripted_llm(_plan_reply("search"))
        context = ExecutionContext(
            user_id="user-1",
            current_url="https://example.com",
            current_title="Example",
            recent_page_titles=["Home"],
        )

        await GoalTranslator(llm).analyze(_goal(), context, GoalAnalysisOptions(max_steps=3))

        call = llm.calls[0]
        assert 'Goal: "Find the best laptop under $1000"' in call["user"]
        assert "Current Page: Example (https://example.com)" in call["user"]
        assert "Recent Pages: Home" in call["user"]
        assert "Generate up to 3 specific action steps." in call["user"]
        assert "navigate, search, extract, summarize, click, fill" in call["system"]

    @pytest.mark.asyncio
    async def test_plan_truncated_to_max_steps(self, scripted_llm):
        from smartbrowser.core.goals.translator import GoalTranslator

        llm = scripted_llm(_plan_reply(*["search"] * 8))

        analysis = await GoalTranslator(llm).analyze(_goal(), options=GoalAnalysisOptions(max_steps=2))

        assert [s.step for s in analysis.action_plan] == [1, 2]

    @pytest.mark.asyncio
    async def test_intent_only_analysis(self, scripted_llm):
        from smartbrowser.core.goals.translator import GoalTranslator

        llm = scripted_llm(_plan_reply("search", "navigate"))

        analysis = await GoalTranslator(llm).analyze(
            _goal(), options=GoalAnalysisOptions(include_steps=False, include_recommendations=False)
        )

        assert analysis.action_plan == []
        assert analysis.recommendations == []
        assert "Focus on intent analysis only." in llm.calls[0]["user"]

    @pytest.mark.asyncio
    async def test_unparseable_reply_degrades(self, scripted_llm):
        from smartbrowser.core.goals.translator import GoalTranslator

        analysis = await GoalTranslator(scripted_llm("Sorry, I can't do that.")).analyze(_goal())

        assert analysis.degraded is True
        assert analysis.intent.type == "search"
        assert analysis.intent.confidence == 0.5
        assert analysis.action_plan == []

    @pytest.mark.parametrize(
        "reply",
        [
            {"intent": {"type": "search"}, "entities": 5},
            {"intent": {"type": "search"}, "actionPlan": 3},
            {"intent": {"type": "search"}, "recommendations": True},
            {"actionPlan": [{"step": 1, "action": "navigate", "url": 42}]},
            {"actionPlan": [{"step": 1, "action": "navigate", "selector": ["a"]}]},
            {"intent": "search", "actionPlan": {"action": "navigate"}},
        ],
    )
    @pytest.mark.asyncio
    async def test_wrong_field_types_never_raise(self, scripted_llm, reply):
        from smartbrowser.core.goals.translator import GoalTranslator

        analysis = await GoalTranslator(scripted_llm(json.dumps(reply))).analyze(_goal())

        assert analysis.intent.type == "search"
        assert analysis.recommendations == []
        for step in analysis.action_plan:
            assert step.url is None
            assert step.selector is None

    @pytest.mark.asyncio
    async def test_bad_step_fields_are_dropped_not_the_step(self, scripted_llm):
        from smartbrowser.core.goals.translator import GoalTranslator

        reply = {
            "actionPlan": [
                {"step": 1, "action": "navigate", "url": 42, "description": "Open shop"},
                {"step": 2, "action": "extract", "url": " https://e.com ", "selector": ".specs"},
            ]
        }

        analysis = await GoalTranslator(scripted_llm(json.dumps(reply))).analyze(_goal())

        assert [s.url for s in analysis.action_plan] == [None, "https://e.com"]
        assert analysis.action_plan[1].selector == ".specs"
        assert analysis.degraded is False

    @pytest.mark.asyncio
    async def test_llm_errors_propagate(self, scripted_llm):
        from smartbrowser.core.goals.translator import GoalTranslator

        with pytest.raises(LLMError):
            await GoalTranslator(scripted_llm(LLMError("anthropic", "down"))).analyze(_goal())

    @pytest.mark.asyncio
    async def test_invalid_goal_text(self, scripted_llm):
        from smartbrowser.core.goals.translator import GoalTranslator

        llm = scripted_llm()
        translator = GoalTranslator(llm)

        with pytest.raises(ValidationError):
            await translator.analyze(_goal(text="   "))
        with pytest.raises(SecurityError):
            await translator.analyze(_goal(text="<script>alert(1)</script>"))
        assert llm.calls == []

    def test_to_task(self, scripted_llm):
        from smartbrowser.core.goals.models import ActionPlanStep
        from smartbrowser.core.goals.translator import GoalTranslator

        goal = _goal(priority=TaskPriority.HIGH)
        step = ActionPlanStep(step=2, action="extract", description="Pull specs", url="https://e.com", selector=".specs")

        task = GoalTranslator(scripted_llm()).to_task(goal, step, 1, 3)

        assert task.type == TaskType.EXTRACT_CONTENT
        assert task.goal_id == goal.id
        assert task.user_id == "user-1"
        assert task.priority == TaskPriority.HIGH
        assert task.payload.url == "https://e.com"
        assert task.payload.query == "Pull specs"
        assert task.payload.options == {"step": 2, "total_steps": 3, "selector": ".specs"}


# ---------------------------------------------------------------------------
# Goal executor
# ---------------------------------------------------------------------------


class TestGoalExecutor:
    @pytest.mark.asyncio
    async def test_runs_every_step_and_narrates(self, scripted_llm, stub_executor):
        llm = scripted_llm(_plan_reply("search", "search"), "Found three good laptops.")
        search = stub_executor()
        executor, orchestrator = _goal_executor(llm, search=search)
        goal = _goal()

        result = await executor.execute_goal(goal, ExecutionContext(user_id="user-1"))

        assert result.success is True
        assert len(result.tasks) == 2
        assert result.summary == "Found three good laptops."
        assert result.state == GoalState.DONE
        assert goal.status == GoalState.DONE
        assert search.execute_calls == 2
        assert len(orchestrator.get_task_history("user-1")) == 2
        narration = llm.calls[1]["messages"][0]["content"]
        assert "Successful tasks: 2" in narration
        assert "Bookmark the page" in narration

    @pytest.mark.asyncio
    async def test_critical_failure_stops_the_plan(self, scripted_llm, stub_executor):
        llm = scripted_llm(_plan_reply("search", "search", "search"), "Could not finish.")
        search = stub_executor(outcomes=[ValidationError("blocked query")])
        executor, orchestrator = _goal_executor(llm, search=search)

        result = await executor.execute_goal(
            _goal(priority=TaskPriority.CRITICAL), ExecutionContext(user_id="user-1")
        )

        assert result.success is False
        assert len(result.tasks) == 1
        assert result.tasks[0].error_code == "VALIDATION_ERROR"
        assert search.execute_calls == 1
        assert len(orchestrator.get_task_history("user-1")) == 1

    @pytest.mark.asyncio
    async def test_non_critical_failure_continues(self, scripted_llm, stub_executor):
        llm = scripted_llm(_plan_reply("search", "search", "search"), "Partly done.")
        search = stub_executor(outcomes=[ValidationError("bad"), {"ok": 1}, {"ok": 2}])
        executor, _ = _goal_executor(llm, search=search)

        result = await executor.execute_goal(_goal(), ExecutionContext(user_id="user-1"))

        assert [t.success for t in result.tasks] == [False, True, True]
        assert result.success is True

    @pytest.mark.asyncio
    async def test_failed_middle_step_is_narrated(self, scripted_llm, stub_executor):
        llm = scripted_llm(
            _plan_reply("navigate", "search", "extract", url="https://hotels.example.com"),
            "Opened the site and read the listings; the search itself failed.",
        )
        navigate = stub_executor(handles=(TaskType.NAVIGATE,), outcomes=[{"url": "https://hotels.example.com"}])
        search = stub_executor(outcomes=[ValidationError("no results for query")])
        extract = stub_executor(handles=(TaskType.EXTRACT_CONTENT,), outcomes=[{"content": "listings"}])
        executor, _ = _goal_executor(llm, navigate=navigate, search=search, extract_content=extract)

        result = await executor.execute_goal(
            _goal("find hotels in Paris for next weekend"), ExecutionContext(user_id="user-1")
        )

        assert len(result.tasks) == 3
        assert [t.executor_used for t in result.tasks] == ["StubExecutor"] * 3
        assert [t.success for t in result.tasks] == [True, False, True]
        assert result.success is True
        assert result.summary == "Opened the site and read the listings; the search itself failed."
        narration = llm.calls[1]["messages"][0]["content"]
        for task in result.tasks:
            assert task.task_id in narration
        assert "Failed - no results for query" in narration
        assert "Successful tasks: 2" in narration

    @pytest.mark.asyncio
    async def test_partial_completion_fallback_summary(self, scripted_llm, stub_executor):
        llm = scripted_llm(
            _plan_reply("navigate", "search", "extract", url="https://hotels.example.com"),
            LLMError("anthropic", "overloaded"),
        )
        navigate = stub_executor(handles=(TaskType.NAVIGATE,))
        search = stub_executor(outcomes=[ValidationError("no results for query")])
        extract = stub_executor(handles=(TaskType.EXTRACT_CONTENT,))
        executor, _ = _goal_executor(llm, navigate=navigate, search=search, extract_content=extract)

        result = await executor.execute_goal(_goal(), ExecutionContext(user_id="user-1"))

        assert result.success is True
        assert result.summary == "Goal execution completed. 2 out of 3 tasks completed successfully."

    @pytest.mark.asyncio
    async def test_unsupported_steps_fail_without_stopping(self, scripted_llm, stub_executor):
        llm = scripted_llm(_plan_reply("summarize", "search"), "Done.")
        executor, _ = _goal_executor(llm, search=stub_executor())

        result = await executor.execute_goal(_goal(), ExecutionContext(user_id="user-1"))

        assert [t.error_code for t in result.tasks] == ["NO_EXECUTOR_FOUND", None]
        assert result.success is True

    @pytest.mark.asyncio
    async def test_navigation_moves_the_context(self, scripted_llm, stub_executor):
        seen = []

        class RecordingExtract(stub_executor):
            async def _execute_impl(self, task, context):
                seen.append((context.current_url, context.current_title, list(context.recent_page_titles)))
                return {"content": "ok"}

        llm = scripted_llm(_plan_reply("navigate", "extract"), "Done.")
        navigate = stub_executor(
            handles=(TaskType.NAVIGATE,),
            outcomes=[{"url": "https://shop.example.com/laptops", "title": "Laptops"}],
        )
        extract = RecordingExtract(handles=(TaskType.EXTRACT_CONTENT,))
        executor, _ = _goal_executor(llm, navigate=navigate, extract_content=extract)
        context = ExecutionContext(user_id="user-1", recent_page_titles=["Home"])

        await executor.execute_goal(_goal(), context)

        assert seen == [("https://shop.example.com/laptops", "Laptops", ["Home", "Laptops"])]
        assert context.current_url is None
        assert context.recent_page_titles == ["Home"]

    @pytest.mark.asyncio
    async def test_analysis_failure_fails_the_goal(self, scripted_llm, stub_executor):
        llm = scripted_llm(LLMError("anthropic", "api_key=sk-secret12345 rejected"))
        search = stub_executor()
        executor, _ = _goal_executor(llm, search=search)
        goal = _goal()

        result = await executor.execute_goal(goal, ExecutionContext(user_id="user-1"))

        assert result.success is False
        assert result.state == GoalState.FAILED
        assert goal.status == GoalState.FAILED
        assert result.summary == "Goal execution failed: goal analysis failed (LLM_ERROR)"
        assert "sk-secret" not in result.summary
        assert result.tasks == []
        assert search.execute_calls == 0

    @pytest.mark.asyncio
    async def test_analysis_failure_reports_code_only(self, scripted_llm, stub_executor):
        executor, _ = _goal_executor(scripted_llm(), search=stub_executor())

        result = await executor.execute_goal(_goal(text="   "), ExecutionContext(user_id="user-1"))

        assert result.state == GoalState.FAILED
        assert result.summary == "Goal execution failed: goal analysis failed (VALIDATION_ERROR)"
        assert "\n" not in result.summary

    @pytest.mark.asyncio
    async def test_degraded_analysis_runs_nothing(self, scripted_llm, stub_executor):
        from smartbrowser.core.goals.executor import GoalExecutor
        from smartbrowser.core.goals.translator import GoalTranslator
        from smartbrowser.core.tasks.orchestrator import TaskOrchestrator

        llm = scripted_llm("no json here")
        orchestrator = TaskOrchestrator(_registry(search=stub_executor()))
        executor = GoalExecutor(GoalTranslator(llm), orchestrator, llm_client=None)

        result = await executor.execute_goal(_goal(), ExecutionContext(user_id="user-1"))

        assert result.degraded is True
        assert result.success is False
        assert result.summary == "Goal execution completed. 0 out of 0 tasks completed successfully."

    @pytest.mark.asyncio
    async def test_narration_failure_uses_fallback(self, scripted_llm, stub_executor):
        llm = scripted_llm(_plan_reply("search"), LLMError("anthropic", "overloaded"))
        executor, _ = _goal_executor(llm, search=stub_executor())

        result = await executor.execute_goal(_goal(), ExecutionContext(user_id="user-1"))

        assert result.summary == "Goal execution completed. 1 out of 1 tasks completed successfully."

    @pytest.mark.asyncio
    async def test_unsafe_narration_is_rejected(self, scripted_llm, stub_executor):
        llm = scripted_llm(_plan_reply("search"), "<script>steal()</script>")
        executor, _ = _goal_executor(llm, search=stub_executor())

        result = await executor.execute_goal(_goal(), ExecutionContext(user_id="user-1"))

        assert result.summary.startswith("Goal execution completed.")
