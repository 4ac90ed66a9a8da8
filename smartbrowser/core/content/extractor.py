"""Readability-based article extraction.

:class:`ArticleExtractor` isolates the main article of a page with
``readability-lxml``, reads text and metadata with BeautifulSoup and
scores how much the result can be trusted.  Short or empty articles are a
normal outcome and come back as ``success=False`` results, never as
exceptions.
"""

from __future__ import annotations

import asyncio
import json
import re
from datetime import datetime

from bs4 import BeautifulSoup
from pydantic import BaseModel
from readability import Document

from smartbrowser.core.browser.models import PageContent, PageMetadata
from smartbrowser.core.browser.page_controller import count_words, reading_time
from smartbrowser.utils.logging import get_logger

logger = get_logger("content.extractor")

# Below this many characters the article is treated as not found at all.
HARD_FLOOR = 50

_ARTICLE_INDICATORS = (
    "article",
    '[role="article"]',
    ".article",
    ".post",
    ".content",
    "main",
    ".main-content",
)
_ARTICLE_TYPES = {"Article", "NewsArticle"}


class ExtractionOptions(BaseModel):
    include_images: bool = False
    include_links: bool = False
    min_text_length: int | None = None
    max_text_length: int | None = None


class ExtractionResult(BaseModel):
    success: bool
    content: PageContent | None = None
    error: str | None = None
    confidence: float = 0.0
    extractor_used: str = "article-extractor"


class ArticleExtractor:
    """Extract the main article from raw HTML.

    Parameters
    ----------
    min_content_length:
        Articles shorter than this are reported as too short.
    max_content_length:
        Hard cap on extracted text, applied before scoring.
    """

    name = "article-extractor"

    def __init__(self, min_content_length: int = 100, max_content_length: int = 100_000) -> None:
        self.min_content_length = min_content_length
        self.max_content_length = max_content_length

    async def extract(
        self,
        html: str,
        url: str,
        options: ExtractionOptions | None = None,
    ) -> ExtractionResult:
        """Run extraction off the event loop and return the result."""
        options = options or ExtractionOptions()
        if not html or not html.strip():
            return self._failure("HTML content is empty")
        if not url:
            return self._failure("URL is required")

        try:
            result = await asyncio.to_thread(self._extract_sync, html, url, options)
        except Exception as exc:
            logger.error("article_extraction_failed", url=url, error=str(exc))
            return self._failure(str(exc))

        if result.success:
            logger.info(
                "article_extracted",
                url=url,
                title=result.content.title,
                text_length=len(result.content.text),
                confidence=result.confidence,
            )
        else:
            logger.debug("article_not_extracted", url=url, reason=result.error)
        return result

    def can_extract(self, html: str) -> bool:
        """Cheap check for whether *html* looks like it carries an article."""
        try:
            soup = BeautifulSoup(html, "lxml")
        except Exception as exc:
            logger.warning("can_extract_parse_failed", error=str(exc))
            return False

        if any(soup.select_one(sel) for sel in _ARTICLE_INDICATORS):
            return True
        paragraphs = soup.find_all("p")
        if len(paragraphs) >= 3:
            total = " ".join(p.get_text() for p in paragraphs)
            return len(total) >= self.min_content_length
        return False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract_sync(self, html: str, url: str, options: ExtractionOptions) -> ExtractionResult:
        page = BeautifulSoup(html, "lxml")
        # JSON-LD has to be read before anything strips script tags.
        json_ld = _find_json_ld(page)
        metadata = _read_metadata(page, json_ld)
        byline = _text_of(page, ".byline, [rel='author'], .author")

        doc = Document(html, url=url)
        article_html = doc.summary(html_partial=True)
        article = BeautifulSoup(article_html, "lxml")
        text = article.get_text("\n", strip=True)
        text = re.sub(r"\n{2,}", "\n\n", text)[: self.max_content_length]

        if options.max_text_length and len(text) > options.max_text_length:
            text = text[: options.max_text_length] + "..."

        min_length = options.min_text_length or self.min_content_length
        if len(text) < min_length:
            if len(text) < HARD_FLOOR:
                return self._failure("Readability failed to extract meaningful content")
            return self._failure("Extracted content is too short", confidence=0.3)

        if not options.include_images:
            for img in article.find_all("img"):
                img.decompose()
        if not options.include_links:
            for link in article.find_all("a"):
                link.unwrap()

        title = (doc.short_title() or "").strip() or _fallback_title(page) or "Untitled"
        words = count_words(text)
        metadata.word_count = words
        metadata.reading_time = reading_time(words)

        content = PageContent(
            url=url,
            title=title,
            text=text,
            html=str(article.body or article),
            metadata=metadata,
            extractor_used=self.name,
        )
        confidence = calculate_confidence(text, metadata, title, bool(byline))
        return ExtractionResult(
            success=True, content=content, confidence=confidence, extractor_used=self.name
        )

    def _failure(self, error: str, confidence: float = 0.0) -> ExtractionResult:
        return ExtractionResult(
            success=False, error=error, confidence=confidence, extractor_used=self.name
        )


def calculate_confidence(text: str, metadata: PageMetadata, title: str, has_byline: bool) -> float:
    """Score in [0, 1] for how likely *text* is the real article."""
    length = len(text)
    confidence = 0.5
    if length > 500:
        confidence += 0.1
    if length > 1000:
        confidence += 0.1
    if length > 2000:
        confidence += 0.1
    if metadata.author:
        confidence += 0.1
    if metadata.publish_date:
        confidence += 0.1
    if metadata.description:
        confidence += 0.05
    if title and len(title) > 10:
        confidence += 0.1
    if has_byline:
        confidence += 0.05
    if length < 200:
        confidence -= 0.2
    if length > 50_000:
        confidence -= 0.1
    return round(min(max(confidence, 0.0), 1.0), 4)


def _find_json_ld(page: BeautifulSoup) -> dict | None:
    for script in page.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except (json.JSONDecodeError, TypeError):
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if isinstance(item, dict) and item.get("@type") in _ARTICLE_TYPES:
                return item
    return None


def _meta(page: BeautifulSoup, **attrs) -> str | None:
    tag = page.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


def _text_of(page: BeautifulSoup, selector: str) -> str | None:
    el = page.select_one(selector)
    if el is None:
        return None
    return el.get_text(strip=True) or None


def _parse_date(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).isoformat()
    except ValueError:
        return None


def _read_metadata(page: BeautifulSoup, json_ld: dict | None) -> PageMetadata:
    json_ld = json_ld or {}
    author = json_ld.get("author")
    if isinstance(author, dict):
        author = author.get("name")
    elif isinstance(author, list):
        author = next((a.get("name") for a in author if isinstance(a, dict)), None)

    keywords_raw = _meta(page, name="keywords") or _meta(page, property="article:tag")
    keywords = [k.strip() for k in re.split(r"[,;]", keywords_raw or "") if k.strip()]

    html_tag = page.find("html")
    language = (html_tag.get("lang") if html_tag else None) or _meta(page, name="language") or "en"

    return PageMetadata(
        author=author
        or _meta(page, name="author")
        or _meta(page, property="article:author")
        or _text_of(page, ".author, .byline, [rel='author']"),
        publish_date=_parse_date(
            json_ld.get("datePublished")
            or _meta(page, property="article:published_time")
            or _meta(page, name="date")
            or _meta(page, name="publish_date")
        ),
        description=_meta(page, name="description")
        or _meta(page, property="og:description")
        or _meta(page, name="twitter:description"),
        keywords=keywords,
        language=language,
    )


def _fallback_title(page: BeautifulSoup) -> str | None:
    if page.title and page.title.string and page.title.string.strip():
        return page.title.string.strip()
    for attrs in ({"property": "og:title"}, {"name": "twitter:title"}):
        value = _meta(page, **attrs)
        if value:
            return value
    return _text_of(page, "h1, .title, .headline")
