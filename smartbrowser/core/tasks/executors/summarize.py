"""Summarise a page or a supplied text through the content summariser."""

from __future__ import annotations

from smartbrowser.core.browser.models import NavigationOptions, PageContent
from smartbrowser.core.content.summarizer import MIN_SUMMARY_TEXT, SummaryOptions, SummaryRequest
from smartbrowser.core.tasks.executors.base import BaseExecutor, ExecutorConfig
from smartbrowser.core.tasks.models import ExecutionContext, Task, TaskType
from smartbrowser.utils.exceptions import ContentExtractionError, ValidationError
from smartbrowser.utils.logging import get_logger

logger = get_logger("tasks.summarize")


class SummarizeExecutor(BaseExecutor):
    """Executor for ``summarize`` tasks.

    Plain text in ``payload.content`` is summarised directly.  Otherwise
    the page is loaded and the extracted article is preferred over the
    full page text.  Options ``max_length``, ``format`` and ``focus`` are
    passed through to the summariser.

    When the LLM fails the summariser's deterministic fallback is
    returned with ``fallback: true`` rather than failing the task.
    """

    def __init__(self, pages, extractor, summarizer) -> None:
        super().__init__("SummarizeExecutor", ExecutorConfig(timeout=60.0, retries=2, concurrency=2))
        self.pages = pages
        self.extractor = extractor
        self.summarizer = summarizer

    def can_handle(self, task: Task) -> bool:
        return task.type == TaskType.SUMMARIZE

    async def _execute_impl(self, task: Task, context: ExecutionContext) -> dict:
        content = await self._load(task, context)
        if len(content.text.strip()) < MIN_SUMMARY_TEXT:
            raise ContentExtractionError("Content text is too short to summarize")

        options = task.payload.options
        summary_options = SummaryOptions(
            max_length=options.get("max_length", "detailed"),
            format=options.get("format", "paragraph"),
            focus=list(options.get("focus") or []),
        )
        result = await self.summarizer.summarize(
            SummaryRequest(content=content, options=summary_options, user_id=context.user_id)
        )
        if not result.success:
            logger.warning("summary_fallback_used", task_id=task.id, error=result.error)

        return {
            "summary": result.summary.model_dump(mode="json"),
            "cached": result.cached,
            "fallback": not result.success,
            "processing_time": result.processing_time,
        }

    async def _load(self, task: Task, context: ExecutionContext) -> PageContent:
        url = task.payload.url or context.current_url
        if task.payload.content:
            return PageContent(
                url=url or "about:blank",
                title=task.payload.options.get("title", ""),
                text=task.payload.content,
            )
        if not url:
            raise ValidationError("URL or content is required for summarization")

        session_id = await self.pages.create_page_session(
            context.user_id, url, NavigationOptions(timeout=30.0)
        )
        try:
            page = await self.pages.get_page_content(session_id)
        finally:
            await self.pages.close_session(session_id)

        if self.extractor is not None:
            extraction = await self.extractor.extract(page.html, page.url)
            if extraction.success:
                return extraction.content
            logger.debug("summarize_using_page_text", url=page.url, reason=extraction.error)
        return page
