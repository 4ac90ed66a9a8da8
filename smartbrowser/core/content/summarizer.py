"""LLM-backed page summarisation with a time-bounded cache.

The cache key is a SHA-256 digest of the URL, the first 200 characters of
text, the title and the summary options.  A hit makes no LLM call at all.
When the LLM fails a deterministic summary built from the first paragraph
is returned with ``success=False``.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
import time
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Literal

from pydantic import BaseModel, Field

from smartbrowser.core.browser.models import PageContent
from smartbrowser.core.content.prompts import build_summary_prompt
from smartbrowser.core.llm.parsing import extract_json
from smartbrowser.core.tasks.models import utcnow
from smartbrowser.utils.exceptions import ContentExtractionError
from smartbrowser.utils.logging import get_logger

logger = get_logger("content.summarizer")

MIN_SUMMARY_TEXT = 50
MAX_SUMMARY_TEXT = 100_000
BATCH_CONCURRENCY = 3


class SummaryOptions(BaseModel):
    max_length: Literal["brief", "detailed", "comprehensive"] = "detailed"
    format: Literal["paragraph", "bullets", "structured"] = "paragraph"
    focus: list[str] = []


class ContentEntity(BaseModel):
    type: str = "other"
    name: str
    confidence: float = 0.5
    mentions: int = 0


class ContentSummary(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    url: str
    title: str = ""
    summary: str
    key_points: list[str] = []
    entities: list[ContentEntity] = []
    sentiment: Literal["positive", "neutral", "negative"] = "neutral"
    relevance_score: float = 0.5
    created_at: datetime = Field(default_factory=utcnow)


class SummaryRequest(BaseModel):
    content: PageContent
    options: SummaryOptions = Field(default_factory=SummaryOptions)
    user_id: str | None = None


class SummaryResult(BaseModel):
    id: str
    summary: ContentSummary
    processing_time: float  # milliseconds
    success: bool
    error: str | None = None
    cached: bool = False


class ContentSummarizer:
    """Summarise page content through the LLM client.

    Parameters
    ----------
    llm_client:
        :class:`~smartbrowser.core.llm.client.LLMClient` (or any object
        with an async ``complete(user)`` method).
    cache_ttl:
        Seconds a cached summary stays valid.
    max_cache_size:
        Oldest-inserted entries are dropped beyond this size.
    clock:
        Monotonic time source in seconds.
    """

    def __init__(
        self,
        llm_client,
        cache_ttl: float = 86_400.0,
        max_cache_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.llm = llm_client
        self.cache_ttl = cache_ttl
        self.max_cache_size = max_cache_size
        self.clock = clock
        self._cache: OrderedDict[str, tuple[float, ContentSummary]] = OrderedDict()
        self._url_index: dict[str, str] = {}
        self._hits = 0
        self._misses = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def summarize(self, request: SummaryRequest) -> SummaryResult:
        start = time.monotonic()
        summary_id = str(uuid.uuid4())
        content = request.content
        key = cache_key(content, request.options)

        cached = self._get_cached(key)
        if cached is not None:
            self._hits += 1
            logger.debug("summary_cache_hit", url=content.url)
            return SummaryResult(
                id=summary_id,
                summary=cached,
                processing_time=_elapsed_ms(start),
                success=True,
                cached=True,
            )
        self._misses += 1

        try:
            text = self._validate(content)
            prompt = build_summary_prompt(
                content.url,
                content.title,
                text,
                max_length=request.options.max_length,
                format=request.options.format,
                focus=request.options.focus,
            )
            raw = await self.llm.complete(prompt)
            summary = self._parse(raw, content, text, summary_id)
        except Exception as exc:
            logger.error("summarize_failed", url=content.url, error=str(exc))
            return SummaryResult(
                id=summary_id,
                summary=fallback_summary(content),
                processing_time=_elapsed_ms(start),
                success=False,
                error=str(exc),
            )

        self._store(key, content.url, summary)
        logger.info(
            "content_summarized",
            summary_id=summary_id,
            url=content.url,
            summary_length=len(summary.summary),
            key_points=len(summary.key_points),
            entities=len(summary.entities),
        )
        return SummaryResult(
            id=summary_id,
            summary=summary,
            processing_time=_elapsed_ms(start),
            success=True,
        )

    async def batch_summarize(self, requests: list[SummaryRequest]) -> list[SummaryResult]:
        """Summarise *requests* three at a time; failures never abort siblings."""
        results: list[SummaryResult] = []
        for offset in range(0, len(requests), BATCH_CONCURRENCY):
            chunk = requests[offset : offset + BATCH_CONCURRENCY]
            settled = await asyncio.gather(
                *(self.summarize(r) for r in chunk), return_exceptions=True
            )
            for request, outcome in zip(chunk, settled):
                if isinstance(outcome, BaseException):
                    results.append(
                        SummaryResult(
                            id=str(uuid.uuid4()),
                            summary=fallback_summary(request.content),
                            processing_time=0.0,
                            success=False,
                            error=str(outcome),
                        )
                    )
                else:
                    results.append(outcome)
        logger.info(
            "batch_summarize_complete",
            total=len(requests),
            successful=sum(1 for r in results if r.success),
        )
        return results

    async def summarize_with_context(
        self,
        content: PageContent,
        related_pages: list[PageContent] | None = None,
        user_goals: list[str] | None = None,
        focus_areas: list[str] | None = None,
        options: SummaryOptions | None = None,
    ) -> SummaryResult:
        """Summarise *content* with goals and neighbouring pages folded in."""
        options = options or SummaryOptions()
        enhanced = options.model_copy(
            update={"focus": [*options.focus, *(focus_areas or []), *(user_goals or [])]}
        )
        if related_pages:
            related = "\n".join(
                f"Related: {page.title} - {page.text[:200]}" for page in related_pages
            )
            content = content.model_copy(
                update={"text": f"{content.text}\n\n--- Related Context ---\n{related}"}
            )
        return await self.summarize(SummaryRequest(content=content, options=enhanced))

    def get_cached_summary_by_url(self, url: str) -> ContentSummary | None:
        key = self._url_index.get(url)
        return self._get_cached(key) if key else None

    def clear_cache(self) -> None:
        self._cache.clear()
        self._url_index.clear()
        logger.info("summary_cache_cleared")

    def get_cache_stats(self) -> dict:
        lookups = self._hits + self._misses
        return {
            "size": len(self._cache),
            "max_size": self.max_cache_size,
            "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validate(self, content: PageContent) -> str:
        if not content.url:
            raise ContentExtractionError("Content URL is required")
        text = content.text or ""
        if len(text.strip()) < MIN_SUMMARY_TEXT:
            raise ContentExtractionError("Content text is too short to summarize")
        if len(text) > MAX_SUMMARY_TEXT:
            logger.warning("summary_content_truncated", url=content.url, original_length=len(text))
            text = text[:MAX_SUMMARY_TEXT]
        return text

    def _parse(self, raw: str, content: PageContent, text: str, summary_id: str) -> ContentSummary:
        try:
            data = extract_json(raw)
        except ValueError:
            logger.warning("summary_parse_failed", url=content.url)
            data = {"summary": raw[:500]}

        entities = []
        for item in data.get("entities") or []:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            entities.append(
                ContentEntity(
                    type=str(item.get("type") or "other"),
                    name=str(item["name"]),
                    confidence=_clamp(item.get("confidence"), 0.5),
                    mentions=count_mentions(text, str(item["name"])),
                )
            )

        sentiment = data.get("sentiment")
        if sentiment not in ("positive", "neutral", "negative"):
            sentiment = "neutral"

        return ContentSummary(
            id=summary_id,
            url=content.url,
            title=content.title,
            summary=str(data.get("summary") or raw[:500]),
            key_points=[str(p) for p in data.get("keyPoints") or [] if p],
            entities=entities,
            sentiment=sentiment,
            relevance_score=_clamp(data.get("relevanceScore"), 0.5),
        )

    def _get_cached(self, key: str) -> ContentSummary | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, summary = entry
        if self.clock() - stored_at > self.cache_ttl:
            self._evict(key)
            return None
        return summary

    def _store(self, key: str, url: str, summary: ContentSummary) -> None:
        while len(self._cache) >= self.max_cache_size:
            self._evict(next(iter(self._cache)))
        self._cache[key] = (self.clock(), summary)
        self._url_index[url] = key

    def _evict(self, key: str) -> None:
        _, summary = self._cache.pop(key)
        # A newer entry for the same URL keeps its index slot.
        if self._url_index.get(summary.url) == key:
            del self._url_index[summary.url]


def cache_key(content: PageContent, options: SummaryOptions) -> str:
    raw = "\x1f".join(
        [
            content.url,
            (content.text or "")[:200],
            content.title,
            options.max_length,
            options.format,
            ",".join(options.focus),
        ]
    )
    return "summary:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()


def count_mentions(text: str, name: str) -> int:
    return len(re.findall(rf"\b{re.escape(name)}\b", text, flags=re.IGNORECASE))


def fallback_summary(content: PageContent) -> ContentSummary:
    text = content.text or ""
    first = text.split("\n\n")[0] if text else ""
    if not first:
        first = text[:300]
    return ContentSummary(
        url=content.url,
        title=content.title,
        summary=first + "...",
        key_points=[
            "Content extraction completed",
            f"Page title: {content.title}",
            f"Text length: {len(text)} characters",
        ],
    )


def _clamp(value, default: float) -> float:
    try:
        return min(max(float(value), 0.0), 1.0)
    except (TypeError, ValueError):
        return default


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)
