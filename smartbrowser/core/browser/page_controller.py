"""Page sessions on top of the session pool.

A page session bundles one pooled browser context and one page that has
already been navigated to a validated URL.  Executors and HTTP routes use
:class:`PageController` rather than juggling raw pool ids.
"""

from __future__ import annotations

import math
import uuid
from typing import Literal

from smartbrowser.core.browser.models import (
    NavigationOptions,
    PageContent,
    PageMetadata,
    PageSession,
)
from smartbrowser.core.browser.session_pool import SessionPool
from smartbrowser.core.tasks.models import utcnow
from smartbrowser.utils.exceptions import BrowserError, SmartBrowserError, ValidationError
from smartbrowser.utils.logging import get_logger
from smartbrowser.utils.validator import Validator, validator as default_validator

logger = get_logger("browser.pages")

WORDS_PER_MINUTE = 200

_METADATA_JS = """() => {
    const meta = (name) => {
        const el = document.querySelector(`meta[name="${name}"], meta[property="${name}"]`);
        return el ? el.getAttribute('content') || null : null;
    };
    let jsonLd = null;
    for (const script of document.querySelectorAll('script[type="application/ld+json"]')) {
        try {
            const data = JSON.parse(script.textContent || '');
            if (data && (data.author || data.datePublished)) { jsonLd = data; break; }
        } catch (e) {}
    }
    const author = jsonLd && jsonLd.author
        ? (typeof jsonLd.author === 'string' ? jsonLd.author : jsonLd.author.name || null)
        : null;
    const keywords = meta('keywords');
    return {
        author: author || meta('author'),
        publish_date: (jsonLd && jsonLd.datePublished) || meta('article:published_time'),
        description: meta('description') || meta('og:description'),
        keywords: keywords ? keywords.split(',').map(k => k.trim()).filter(Boolean) : [],
        language: document.documentElement.lang || 'en',
        text: document.body ? document.body.innerText || '' : '',
    };
}"""


def count_words(text: str) -> int:
    return len(text.split())


def reading_time(words: int) -> int:
    return math.ceil(words / WORDS_PER_MINUTE) if words else 0


class PageController:
    """Open, read, drive and close page sessions.

    Parameters
    ----------
    pool:
        The :class:`SessionPool` that owns the underlying contexts.
    validator:
        URL validator; defaults to the module-level instance.
    """

    def __init__(self, pool: SessionPool, validator: Validator | None = None) -> None:
        self.pool = pool
        self.validator = validator or default_validator
        self._sessions: dict[str, PageSession] = {}

    async def create_page_session(
        self,
        user_id: str,
        url: str,
        options: NavigationOptions | None = None,
        session_id: str | None = None,
    ) -> str:
        """Open a context and page, navigate to *url* and return the page-session id."""
        if not user_id or not user_id.strip():
            raise ValidationError("User ID is required")
        validated = self.validator.validate_url(url)

        page_session_id = session_id or str(uuid.uuid4())
        context_id = await self.pool.create_session(user_id, page_session_id)
        try:
            page_id = await self.pool.create_page(context_id)
            await self.pool.navigate(page_id, validated, options)
            content = await self.pool.get_content(page_id)
        except SmartBrowserError:
            await self.pool.close(context_id)
            raise
        except Exception as exc:
            await self.pool.close(context_id)
            raise BrowserError(f"Failed to create page session: {exc}") from exc

        self._sessions[page_session_id] = PageSession(
            id=page_session_id,
            user_id=user_id,
            context_id=context_id,
            page_id=page_id,
            url=content.url,
            title=content.title,
        )
        logger.info(
            "page_session_created",
            session_id=page_session_id,
            user_id=user_id,
            url=validated,
            title=content.title,
        )
        return page_session_id

    async def get_page_content(self, session_id: str) -> PageContent:
        session = self._active(session_id)
        raw = await self.pool.get_content(session.page_id)
        metadata = await self._extract_metadata(session.page_id, raw.text)
        self._touch(session)
        return PageContent(
            url=raw.url,
            title=raw.title,
            text=raw.text,
            html=raw.html,
            metadata=metadata,
        )

    async def navigate(
        self,
        session_id: str,
        url: str,
        options: NavigationOptions | None = None,
    ) -> None:
        session = self._active(session_id)
        validated = self.validator.validate_url(url)
        await self.pool.navigate(session.page_id, validated, options)
        raw = await self.pool.get_content(session.page_id)
        session.url = raw.url
        session.title = raw.title
        self._touch(session)

    async def interact(
        self,
        session_id: str,
        action: Literal["click", "fill", "wait"],
        selector: str,
        value: str | None = None,
        timeout: float = 10.0,
    ) -> bool:
        session = self._active(session_id)
        if action == "click":
            result = await self.pool.click(session.page_id, selector)
        elif action == "fill":
            if value is None:
                raise ValidationError("Value required for fill action")
            result = await self.pool.fill(session.page_id, selector, value)
        elif action == "wait":
            result = await self.pool.wait_for_element(session.page_id, selector, timeout)
        else:
            raise ValidationError(f"Unknown action: {action}")
        self._touch(session)
        logger.debug(
            "page_interaction", session_id=session_id, action=action, selector=selector, success=result
        )
        return result

    async def take_screenshot(self, session_id: str, full_page: bool = False) -> bytes:
        session = self._active(session_id)
        data = await self.pool.screenshot(session.page_id, full_page=full_page)
        self._touch(session)
        return data

    async def close_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        await self.pool.close(session.context_id)
        logger.info("page_session_closed", session_id=session_id)

    def get_session(self, session_id: str) -> PageSession | None:
        return self._sessions.get(session_id)

    def active_count(self) -> int:
        return len(self._sessions)

    async def cleanup(self) -> None:
        for session_id in list(self._sessions):
            await self.close_session(session_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _active(self, session_id: str) -> PageSession:
        session = self._sessions.get(session_id)
        if session is None or self.pool.get_session(session.context_id) is None:
            # The pool may have evicted or reaped the context underneath us.
            self._sessions.pop(session_id, None)
            raise BrowserError(f"Session {session_id} not found")
        return session

    def _touch(self, session: PageSession) -> None:
        session.last_activity = utcnow()

    async def _extract_metadata(self, page_id: str, fallback_text: str) -> PageMetadata:
        try:
            data = await self.pool.evaluate(page_id, _METADATA_JS)
        except BrowserError as exc:
            logger.warning("metadata_extract_failed", page_id=page_id, error=str(exc))
            data = {}
        data = data or {}
        words = count_words(data.get("text") or fallback_text)
        return PageMetadata(
            author=data.get("author"),
            publish_date=data.get("publish_date"),
            description=data.get("description"),
            keywords=data.get("keywords") or [],
            language=data.get("language"),
            word_count=words,
            reading_time=reading_time(words),
        )
