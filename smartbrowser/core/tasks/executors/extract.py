"""Main-article extraction, optionally followed by schema-driven extraction."""

from __future__ import annotations

from smartbrowser.core.browser.models import NavigationOptions
from smartbrowser.core.content.extractor import ExtractionOptions
from smartbrowser.core.tasks.executors.base import BaseExecutor, ExecutorConfig
from smartbrowser.core.tasks.models import ExecutionContext, Task, TaskType
from smartbrowser.utils.exceptions import ContentExtractionError, ValidationError
from smartbrowser.utils.logging import get_logger

logger = get_logger("tasks.extract")


class ExtractExecutor(BaseExecutor):
    """Executor for ``extract_content`` tasks.

    Raw HTML in ``payload.content`` is used as-is; otherwise the page at
    ``payload.url`` (or the context's current URL) is loaded first.  When
    the ``schema`` option lists fields and a structured extractor is
    configured, those fields are pulled out of the article as well.
    """

    def __init__(self, pages, extractor, structured=None) -> None:
        super().__init__("ExtractExecutor", ExecutorConfig(timeout=40.0, retries=2, concurrency=2))
        self.pages = pages
        self.extractor = extractor
        self.structured = structured

    def can_handle(self, task: Task) -> bool:
        return task.type == TaskType.EXTRACT_CONTENT

    async def _execute_impl(self, task: Task, context: ExecutionContext) -> dict:
        options = task.payload.options
        url = task.payload.url or context.current_url
        if not url:
            raise ValidationError("URL is required for content extraction")

        if task.payload.content:
            html = task.payload.content
        else:
            session_id = await self.pages.create_page_session(
                context.user_id, url, NavigationOptions(timeout=30.0)
            )
            try:
                page = await self.pages.get_page_content(session_id)
            finally:
                await self.pages.close_session(session_id)
            html, url = page.html, page.url

        extraction = await self.extractor.extract(
            html,
            url,
            ExtractionOptions(
                include_images=bool(options.get("include_images", False)),
                include_links=bool(options.get("include_links", False)),
            ),
        )
        if not extraction.success:
            raise ContentExtractionError(extraction.error or "Extraction failed")

        data = {
            "content": extraction.content.model_dump(mode="json", exclude={"html"}),
            "confidence": extraction.confidence,
            "extractor_used": extraction.extractor_used,
        }

        schema = options.get("schema")
        if schema:
            if self.structured is None:
                logger.warning("structured_extractor_unavailable", task_id=task.id)
            else:
                data["structured"] = await self.structured.extract(extraction.content, schema)

        logger.info(
            "content_extracted",
            task_id=task.id,
            url=url,
            confidence=extraction.confidence,
            structured="structured" in data,
        )
        return data
