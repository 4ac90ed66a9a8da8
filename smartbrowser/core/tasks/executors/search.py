"""Web search through a real search-engine results page.

The executor opens a page session on the engine's results URL, waits for
a known result container, scrapes and ranks the results and optionally
summarises the top three.  The page session is always closed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from urllib.parse import quote

from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from smartbrowser.core.browser.models import NavigationOptions
from smartbrowser.core.content.summarizer import SummaryOptions, SummaryRequest
from smartbrowser.core.tasks.executors.base import BaseExecutor, ExecutorConfig
from smartbrowser.core.tasks.models import ExecutionContext, Task, TaskType, utcnow
from smartbrowser.utils.exceptions import ValidationError
from smartbrowser.utils.logging import get_logger
from smartbrowser.utils.validator import sanitize_string

logger = get_logger("tasks.search")

SEARCH_ENGINES: dict[str, str] = {
    "google": "https://www.google.com/search?q=",
    "bing": "https://www.bing.com/search?q=",
    "duckduckgo": "https://duckduckgo.com/?q=",
}
DEFAULT_ENGINE = "google"
DEFAULT_MAX_RESULTS = 10
MAX_RESULTS_CAP = 20
SUMMARIZE_TOP = 3

# First one found wins; each gets its own wait budget.
RESULT_SELECTORS = (
    "div[data-sokoban-container]",
    ".b_algo",
    ".result",
    "#search",
    ".search-result",
)
SELECTOR_WAIT_SECONDS = 5.0
FALLBACK_WAIT_SECONDS = 3.0

_SKIP_PATTERNS = ("google.com", "bing.com", "duckduckgo.com", "/search", "javascript:", "mailto:")


class SearchResult(BaseModel):
    title: str
    url: str
    snippet: str = ""
    summary: str | None = None
    relevance_score: float


class SearchOutcome(BaseModel):
    query: str
    search_engine: str
    total_results: int
    results: list[SearchResult]
    executed_at: datetime = Field(default_factory=utcnow)


class SearchExecutor(BaseExecutor):
    """Executor for ``search`` tasks.

    Payload: ``query`` (required).  Options: ``search_engine`` (google,
    bing, duckduckgo), ``max_results`` (default 10, capped at 20) and
    ``summarize_results``.
    """

    def __init__(self, pages, extractor=None, summarizer=None) -> None:
        super().__init__("SearchExecutor", ExecutorConfig(timeout=45.0, retries=2, concurrency=1))
        self.pages = pages
        self.extractor = extractor
        self.summarizer = summarizer

    def can_handle(self, task: Task) -> bool:
        return task.type == TaskType.SEARCH

    async def _execute_impl(self, task: Task, context: ExecutionContext) -> dict:
        if not task.payload.query:
            raise ValidationError("Search query is required")

        options = task.payload.options
        query = sanitize_string(task.payload.query)
        engine = str(options.get("search_engine") or options.get("searchEngine") or DEFAULT_ENGINE)
        if engine not in SEARCH_ENGINES:
            raise ValidationError(f"Unsupported search engine: {engine}")
        max_results = options.get("max_results", options.get("maxResults"))
        if not isinstance(max_results, int) or max_results <= 0:
            max_results = DEFAULT_MAX_RESULTS
        max_results = min(max_results, MAX_RESULTS_CAP)
        summarize = bool(options.get("summarize_results", options.get("summarizeResults", False)))

        logger.info(
            "search_start",
            task_id=task.id,
            query=query,
            engine=engine,
            max_results=max_results,
            summarize=summarize,
        )
        self.log_progress(task.id, "initializing", 0.1)

        session_id = await self.pages.create_page_session(
            context.user_id, build_search_url(query, engine), NavigationOptions(timeout=30.0)
        )
        try:
            self.log_progress(task.id, "search_page_loaded", 0.3)
            await self._wait_for_results(session_id)

            self.log_progress(task.id, "extracting_results", 0.5)
            page = await self.pages.get_page_content(session_id)
            results = parse_results(page.html, engine, max_results)

            self.log_progress(task.id, "processing_results", 0.7)
            if summarize and results and self.summarizer is not None:
                await self._summarize_top(results[:SUMMARIZE_TOP], context)

            self.log_progress(task.id, "completed", 1.0)
        finally:
            await self.pages.close_session(session_id)

        return SearchOutcome(
            query=query,
            search_engine=engine,
            total_results=len(results),
            results=results,
        ).model_dump(mode="json")

    async def health_check(self) -> bool:
        return self.pages is not None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _wait_for_results(self, session_id: str) -> None:
        for selector in RESULT_SELECTORS:
            if await self.pages.interact(session_id, "wait", selector, timeout=SELECTOR_WAIT_SECONDS):
                logger.debug("search_results_visible", selector=selector)
                return
        await self._sleep(FALLBACK_WAIT_SECONDS)

    async def _summarize_top(self, results: list[SearchResult], context: ExecutionContext) -> None:
        logger.info("search_summarize_top", count=len(results))
        await asyncio.gather(
            *(self._summarize_one(r, context) for r in results), return_exceptions=True
        )

    async def _summarize_one(self, result: SearchResult, context: ExecutionContext) -> None:
        try:
            session_id = await self.pages.create_page_session(
                context.user_id, result.url, NavigationOptions(timeout=15.0, retries=1)
            )
        except Exception as exc:
            logger.warning("search_result_open_failed", url=result.url, error=str(exc))
            return
        try:
            page = await self.pages.get_page_content(session_id)
            content = page
            if self.extractor is not None:
                extraction = await self.extractor.extract(page.html, page.url)
                if not extraction.success:
                    return
                content = extraction.content
            outcome = await self.summarizer.summarize(
                SummaryRequest(content=content, options=SummaryOptions(max_length="brief"))
            )
            if outcome.success:
                result.summary = outcome.summary.summary
        except Exception as exc:
            logger.warning("search_result_summary_failed", url=result.url, error=str(exc))
        finally:
            await self.pages.close_session(session_id)


def build_search_url(query: str, engine: str = DEFAULT_ENGINE) -> str:
    base = SEARCH_ENGINES.get(engine)
    if base is None:
        raise ValidationError(f"Unsupported search engine: {engine}")
    return base + quote(query, safe="")


def is_result_url(url: str) -> bool:
    """Keep only outbound http(s) links that are not the engine itself."""
    if not url.startswith("http"):
        return False
    lowered = url.lower()
    return not any(p in lowered for p in _SKIP_PATTERNS)


def relevance_score(title: str, snippet: str, position: int) -> float:
    score = 1.0 - position * 0.05
    if 20 < len(title) < 100:
        score += 0.1
    if 50 < len(snippet) < 300:
        score += 0.1
    return round(max(0.1, min(1.0, score)), 4)


def parse_results(html: str, engine: str, max_results: int) -> list[SearchResult]:
    """Scrape ranked results out of a results page."""
    soup = BeautifulSoup(html or "", "lxml")
    if engine == "google":
        rows = [
            (el.find("h3"), el.select_one("a[href]"), el.select_one("[data-sncf], .s, .st"))
            for el in soup.select("div[data-sokoban-container] > div")
        ]
    elif engine == "bing":
        rows = [
            (el.select_one("h2 a"), el.select_one("h2 a"), el.select_one(".b_caption p"))
            for el in soup.select(".b_algo")
        ]
    elif engine == "duckduckgo":
        rows = [
            (el.select_one(".result__title a"), el.select_one(".result__title a"), el.select_one(".result__snippet"))
            for el in soup.select(".result")
        ]
    else:
        return _parse_generic(soup, max_results)

    results: list[SearchResult] = []
    for position, (title_el, link_el, snippet_el) in enumerate(rows[:max_results]):
        if title_el is None or link_el is None:
            continue
        title = title_el.get_text(strip=True)
        url = link_el.get("href", "")
        snippet = snippet_el.get_text(" ", strip=True) if snippet_el else ""
        if title and url and is_result_url(url):
            results.append(
                SearchResult(
                    title=title,
                    url=url,
                    snippet=snippet,
                    relevance_score=relevance_score(title, snippet, position),
                )
            )
    return results


def _parse_generic(soup: BeautifulSoup, max_results: int) -> list[SearchResult]:
    results: list[SearchResult] = []
    for link in soup.select("a[href]"):
        if len(results) >= max_results:
            break
        url = link.get("href", "")
        title = link.get_text(strip=True)
        if is_result_url(url) and len(title) > 10:
            parent = link.parent
            snippet = parent.get_text(" ", strip=True)[:200] if parent else ""
            results.append(
                SearchResult(
                    title=title,
                    url=url,
                    snippet=snippet,
                    relevance_score=relevance_score(title, snippet, len(results)),
                )
            )
    return results
