"""Dispatch table from task type to executor."""

from __future__ import annotations

from typing import Mapping

from smartbrowser.core.tasks.executors.base import BaseExecutor
from smartbrowser.core.tasks.models import TaskType
from smartbrowser.utils.exceptions import NoExecutorFoundError
from smartbrowser.utils.logging import get_logger

logger = get_logger(__name__)


class ExecutorRegistry:
    """Exhaustive mapping of every :class:`TaskType` to an executor.

    Each task type must appear in *table*, mapped either to an executor or
    to ``None`` for types that are recognised but not supported.  A table
    that forgets a type is rejected at construction::

        registry = ExecutorRegistry({TaskType.SEARCH: search, ..., TaskType.SEND_EMAIL: None})
        executor = registry.get(TaskType.SEARCH)
    """

    def __init__(self, table: Mapping[TaskType, BaseExecutor | None]) -> None:
        missing = [t.value for t in TaskType if t not in table]
        if missing:
            raise ValueError(
                f"Executor table is missing task types: {', '.join(missing)}"
            )
        self._table: dict[TaskType, BaseExecutor | None] = dict(table)
        logger.info(
            "executor_registry_ready",
            supported=[t.value for t, e in self._table.items() if e is not None],
        )

    # ------------------------------------------------------------------
    # Registration & lookup
    # ------------------------------------------------------------------

    def register(self, task_type: TaskType, executor: BaseExecutor | None) -> None:
        """Replace the executor for *task_type*."""
        previous = self._table.get(task_type)
        if previous is not None:
            logger.warning(
                "executor_overwritten",
                task_type=task_type.value,
                old=previous.name,
                new=executor.name if executor else None,
            )
        self._table[task_type] = executor

    def get(self, task_type: TaskType) -> BaseExecutor:
        """Return the executor for *task_type*.

        Raises :class:`NoExecutorFoundError` if the type is unsupported.
        """
        executor = self._table.get(task_type)
        if executor is None:
            value = task_type.value if isinstance(task_type, TaskType) else str(task_type)
            raise NoExecutorFoundError(value)
        return executor

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def list_all(self) -> list[BaseExecutor]:
        """Return each distinct registered executor once."""
        seen: dict[int, BaseExecutor] = {}
        for executor in self._table.values():
            if executor is not None:
                seen.setdefault(id(executor), executor)
        return list(seen.values())

    def supported_types(self) -> list[TaskType]:
        return [t for t, e in self._table.items() if e is not None]

    def __len__(self) -> int:
        return len(self.list_all())

    def __contains__(self, task_type: TaskType) -> bool:
        return self._table.get(task_type) is not None


def build_default_registry(pages, extractor, summarizer, structured=None) -> ExecutorRegistry:
    """Wire the built-in executors to their collaborators.

    Parameters
    ----------
    pages:
        :class:`~smartbrowser.core.browser.page_controller.PageController`.
    extractor:
        :class:`~smartbrowser.core.content.extractor.ArticleExtractor`.
    summarizer:
        :class:`~smartbrowser.core.content.summarizer.ContentSummarizer`, or
        ``None`` when no LLM is configured.
    structured:
        Optional :class:`~smartbrowser.core.content.structured.StructuredDataExtractor`.
    """
    from smartbrowser.core.tasks.executors.extract import ExtractExecutor
    from smartbrowser.core.tasks.executors.navigate import NavigateExecutor
    from smartbrowser.core.tasks.executors.search import SearchExecutor
    from smartbrowser.core.tasks.executors.summarize import SummarizeExecutor

    return ExecutorRegistry(
        {
            TaskType.NAVIGATE: NavigateExecutor(pages),
            TaskType.EXTRACT_CONTENT: ExtractExecutor(pages, extractor, structured),
            TaskType.SUMMARIZE: (
                SummarizeExecutor(pages, extractor, summarizer) if summarizer else None
            ),
            TaskType.SEARCH: SearchExecutor(pages, extractor, summarizer),
            TaskType.BOOK_HOTEL: None,
            TaskType.FIND_PRODUCT: None,
            TaskType.SEND_EMAIL: None,
        }
    )
