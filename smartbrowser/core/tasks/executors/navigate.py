"""Open a page and report what landed."""

from __future__ import annotations

from smartbrowser.core.browser.models import NavigationOptions
from smartbrowser.core.tasks.executors.base import BaseExecutor, ExecutorConfig
from smartbrowser.core.tasks.models import ExecutionContext, Task, TaskType
from smartbrowser.utils.exceptions import ValidationError
from smartbrowser.utils.logging import get_logger

logger = get_logger("tasks.navigate")


class NavigateExecutor(BaseExecutor):
    """Executor for ``navigate`` tasks.

    Uses ``payload.url`` (or the context's current URL).  An optional
    ``selector`` option is waited for after the page loads; not finding
    it is reported, not failed.
    """

    def __init__(self, pages) -> None:
        super().__init__("NavigateExecutor", ExecutorConfig(timeout=30.0, retries=2, concurrency=2))
        self.pages = pages

    def can_handle(self, task: Task) -> bool:
        return task.type == TaskType.NAVIGATE

    async def _execute_impl(self, task: Task, context: ExecutionContext) -> dict:
        url = task.payload.url or context.current_url
        if not url:
            raise ValidationError("URL is required for navigation")

        options = task.payload.options
        selector = options.get("selector")
        nav = NavigationOptions(
            timeout=float(options.get("timeout", 30.0)),
            wait_until=options.get("wait_until", "domcontentloaded"),
        )

        session_id = await self.pages.create_page_session(context.user_id, url, nav)
        try:
            selector_found = None
            if selector:
                selector_found = await self.pages.interact(session_id, "wait", selector, timeout=5.0)
            page = await self.pages.get_page_content(session_id)
        finally:
            await self.pages.close_session(session_id)

        logger.info("navigated", task_id=task.id, url=page.url, title=page.title)
        return {
            "url": page.url,
            "title": page.title,
            "text_length": len(page.text),
            "selector_found": selector_found,
            "metadata": page.metadata.model_dump(mode="json"),
        }

    async def health_check(self) -> bool:
        return self.pages is not None
