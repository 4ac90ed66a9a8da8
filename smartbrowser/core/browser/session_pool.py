"""Bounded pool of Playwright browser contexts.

The :class:`SessionPool` owns one Chromium browser and at most
``max_sessions`` browser contexts ("sessions"), each with its child pages.
Admission at capacity evicts the least-recently-used session.  A
background reaper closes sessions idle for longer than ``idle_timeout``.

Usage::

    pool = SessionPool(max_sessions=5)
    session_id = await pool.create_session("user-1", "conversation-9")
    page_id = await pool.create_page(session_id)
    await pool.navigate(page_id, "https://example.com")
    content = await pool.get_content(page_id)
    await pool.close(session_id)
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from smartbrowser.core.browser.models import (
    BrowserOptions,
    NavigationOptions,
    RawPageContent,
    SessionInfo,
)
from smartbrowser.core.tasks.models import utcnow
from smartbrowser.utils.exceptions import BrowserError
from smartbrowser.utils.logging import get_logger

logger = get_logger("browser.pool")

# Rough per-page footprint used for the memory estimate.
PAGE_MEMORY_ESTIMATE = 50 * 1024 * 1024
BODY_WAIT_MS = 5_000

_LAUNCH_ARGS = [
    "--disable-dev-shm-usage",
    "--disable-setuid-sandbox",
    "--no-sandbox",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
]

_VISIBLE_TEXT_JS = """() => {
    const body = document.body ? document.body.cloneNode(true) : null;
    if (!body) return document.documentElement.textContent || '';
    body.querySelectorAll('script, style, noscript').forEach(el => el.remove());
    return body.innerText || body.textContent || '';
}"""


class PlaywrightLauncher:
    """Starts and stops the Chromium browser backing the pool."""

    def __init__(self, headless: bool = True) -> None:
        self.headless = headless
        self._playwright = None

    async def launch(self):
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(
            headless=self.headless, args=_LAUNCH_ARGS
        )

    async def stop(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


@dataclass
class PooledSession:
    """Tracking record for one browser context in the pool."""

    id: str
    user_id: str
    session_id: str
    context: Any
    created_at: float
    last_used: float
    created_wall: datetime = field(default_factory=utcnow)
    page_ids: set[str] = field(default_factory=set)

    def idle_seconds(self, now: float) -> float:
        return max(now - self.last_used, 0.0)


class SessionPool:
    """LRU-bounded pool of browser sessions.

    Parameters
    ----------
    max_sessions:
        Hard cap on live sessions.
    default_timeout:
        Navigation and action timeout in seconds.
    navigation_retries:
        Attempts per :meth:`navigate` call unless overridden.
    idle_timeout:
        Seconds of inactivity after which the reaper closes a session.
    sweep_interval:
        Seconds between reaper sweeps.
    user_agent:
        Default user agent for new sessions.
    launcher:
        Object with async ``launch()`` returning a browser and async
        ``stop()``.  Defaults to :class:`PlaywrightLauncher`.
    clock:
        Monotonic time source in seconds.
    """

    def __init__(
        self,
        max_sessions: int = 5,
        default_timeout: float = 30.0,
        navigation_retries: int = 3,
        idle_timeout: float = 1800.0,
        sweep_interval: float = 300.0,
        user_agent: str = "SmartBrowser/1.0",
        headless: bool = True,
        launcher=None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_sessions = max_sessions
        self.default_timeout = default_timeout
        self.navigation_retries = navigation_retries
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self.user_agent = user_agent
        self.launcher = launcher or PlaywrightLauncher(headless=headless)
        self.clock = clock

        self._browser = None
        self._sessions: dict[str, PooledSession] = {}
        self._pages: dict[str, tuple[str, Any]] = {}
        self._launch_lock = asyncio.Lock()
        self._admission_lock = asyncio.Lock()
        self._reaper: asyncio.Task | None = None
        self.evictions = 0
        self.reaped = 0

    # ------------------------------------------------------------------
    # Browser lifecycle
    # ------------------------------------------------------------------

    async def _get_browser(self):
        async with self._launch_lock:
            if self._browser is None or not self._browser.is_connected():
                logger.info("browser_launching")
                try:
                    self._browser = await self.launcher.launch()
                except Exception as exc:
                    logger.error("browser_launch_failed", error=str(exc))
                    raise BrowserError(f"Failed to initialize browser: {exc}") from exc
                logger.info("browser_launched")
            return self._browser

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self,
        user_id: str,
        session_id: str,
        options: BrowserOptions | None = None,
    ) -> str:
        """Create a browser context and return its id.

        At capacity the least-recently-used session is closed first.
        """
        options = options or BrowserOptions()
        browser = await self._get_browser()

        async with self._admission_lock:
            while len(self._sessions) >= self.max_sessions:
                await self._evict_lru()

            timeout_ms = (options.timeout or self.default_timeout) * 1000
            try:
                context = await browser.new_context(
                    ignore_https_errors=False,
                    user_agent=options.user_agent or self.user_agent,
                    viewport=options.viewport.model_dump(),
                    locale=options.locale,
                    timezone_id=options.timezone_id,
                )
                context.set_default_timeout(timeout_ms)
                context.set_default_navigation_timeout(timeout_ms)
            except Exception as exc:
                logger.error("context_create_failed", user_id=user_id, error=str(exc))
                raise BrowserError(f"Failed to create browser context: {exc}") from exc

            now = self.clock()
            pooled = PooledSession(
                id=str(uuid.uuid4()),
                user_id=user_id,
                session_id=session_id,
                context=context,
                created_at=now,
                last_used=now,
            )
            self._sessions[pooled.id] = pooled

        logger.info(
            "session_created",
            context_id=pooled.id,
            user_id=user_id,
            session_id=session_id,
            live_sessions=len(self._sessions),
        )
        return pooled.id

    async def close(self, context_id: str) -> None:
        """Close a session and all of its pages.  Unknown ids are ignored."""
        pooled = self._sessions.pop(context_id, None)
        if pooled is None:
            return
        for page_id in list(pooled.page_ids):
            self._pages.pop(page_id, None)
        try:
            await pooled.context.close()
        except Exception as exc:
            logger.warning("context_close_failed", context_id=context_id, error=str(exc))
        logger.info("session_closed", context_id=context_id)

    def get_session(self, context_id: str) -> SessionInfo | None:
        pooled = self._sessions.get(context_id)
        return self._info(pooled) if pooled else None

    def list_sessions(self) -> list[SessionInfo]:
        return [self._info(p) for p in self._sessions.values()]

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def create_page(self, context_id: str) -> str:
        pooled = self._touch_session(context_id)
        try:
            page = await pooled.context.new_page()
        except Exception as exc:
            logger.error("page_create_failed", context_id=context_id, error=str(exc))
            raise BrowserError(f"Failed to create page: {exc}") from exc

        page_id = str(uuid.uuid4())
        self._attach_listeners(page, context_id, page_id)
        self._pages[page_id] = (context_id, page)
        pooled.page_ids.add(page_id)
        logger.info("page_created", context_id=context_id, page_id=page_id)
        return page_id

    async def close_page(self, page_id: str) -> None:
        entry = self._pages.pop(page_id, None)
        if entry is None:
            return
        context_id, page = entry
        pooled = self._sessions.get(context_id)
        if pooled is not None:
            pooled.page_ids.discard(page_id)
        try:
            await page.close()
        except Exception as exc:
            logger.warning("page_close_failed", page_id=page_id, error=str(exc))

    async def navigate(
        self,
        page_id: str,
        url: str,
        options: NavigationOptions | None = None,
    ) -> bool:
        """Navigate with retries; raise :class:`BrowserError` when all fail.

        Each attempt also waits up to 5s for ``body`` to exist.  Attempt
        ``n`` is followed by a ``2**n`` second pause.
        """
        options = options or NavigationOptions()
        page = self._page(page_id)
        timeout_ms = (options.timeout or self.default_timeout) * 1000
        retries = max(options.retries or self.navigation_retries, 1)

        for attempt in range(1, retries + 1):
            try:
                logger.info(
                    "navigate_attempt", page_id=page_id, url=url, attempt=attempt, retries=retries
                )
                await page.goto(url, timeout=timeout_ms, wait_until=options.wait_until)
                await page.wait_for_selector("body", timeout=BODY_WAIT_MS)
                logger.info("navigate_success", page_id=page_id, url=url)
                return True
            except Exception as exc:
                logger.warning(
                    "navigate_attempt_failed", page_id=page_id, url=url, attempt=attempt, error=str(exc)
                )
                if attempt == retries:
                    logger.error("navigate_failed", page_id=page_id, url=url)
                    raise BrowserError(f"Failed to navigate to {url}: {exc}") from exc
                await self._sleep(2 ** attempt)
        return False

    async def get_content(self, page_id: str) -> RawPageContent:
        page = self._page(page_id)
        try:
            title = await page.title()
            html = await page.content()
            text = await page.evaluate(_VISIBLE_TEXT_JS)
        except Exception as exc:
            logger.error("content_read_failed", page_id=page_id, error=str(exc))
            raise BrowserError(f"Failed to extract page content: {exc}") from exc
        return RawPageContent(url=page.url, title=title or "", html=html or "", text=(text or "").strip())

    async def evaluate(self, page_id: str, script: str) -> Any:
        page = self._page(page_id)
        try:
            return await page.evaluate(script)
        except Exception as exc:
            raise BrowserError(f"Script evaluation failed: {exc}") from exc

    async def wait_for_element(self, page_id: str, selector: str, timeout: float = 10.0) -> bool:
        page = self._page(page_id)
        try:
            await page.wait_for_selector(selector, timeout=timeout * 1000)
            return True
        except Exception:
            logger.warning("element_wait_timeout", page_id=page_id, selector=selector, timeout=timeout)
            return False

    async def click(self, page_id: str, selector: str) -> bool:
        page = self._page(page_id)
        try:
            await page.click(selector)
            return True
        except Exception as exc:
            logger.error("click_failed", page_id=page_id, selector=selector, error=str(exc))
            return False

    async def fill(self, page_id: str, selector: str, value: str) -> bool:
        page = self._page(page_id)
        try:
            await page.fill(selector, value)
            return True
        except Exception as exc:
            logger.error("fill_failed", page_id=page_id, selector=selector, error=str(exc))
            return False

    async def screenshot(self, page_id: str, full_page: bool = False) -> bytes:
        page = self._page(page_id)
        try:
            return await page.screenshot(full_page=full_page, type="png")
        except Exception as exc:
            raise BrowserError(f"Failed to take screenshot: {exc}") from exc

    # ------------------------------------------------------------------
    # Idle reaping
    # ------------------------------------------------------------------

    async def reap_idle(self) -> int:
        """Close every session idle longer than ``idle_timeout``."""
        now = self.clock()
        expired = [
            p.id for p in self._sessions.values() if p.idle_seconds(now) > self.idle_timeout
        ]
        for context_id in expired:
            await self.close(context_id)
        if expired:
            self.reaped += len(expired)
            logger.info("idle_sessions_reaped", count=len(expired))
        return len(expired)

    def start_reaper(self) -> None:
        if self._reaper is None or self._reaper.done():
            self._reaper = asyncio.create_task(self._reaper_loop())

    async def stop_reaper(self) -> None:
        if self._reaper is not None:
            self._reaper.cancel()
            try:
                await self._reaper
            except asyncio.CancelledError:
                pass
            self._reaper = None

    async def _reaper_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await self.reap_idle()
            except Exception as exc:
                logger.error("reaper_sweep_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Shutdown & stats
    # ------------------------------------------------------------------

    async def cleanup(self) -> None:
        """Stop the reaper and close every page, session and the browser."""
        await self.stop_reaper()
        for context_id in list(self._sessions):
            await self.close(context_id)
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as exc:
                logger.warning("browser_close_failed", error=str(exc))
            self._browser = None
        await self.launcher.stop()
        logger.info("session_pool_cleanup_complete")

    def get_stats(self) -> dict:
        return {
            "sessions": len(self._sessions),
            "max_sessions": self.max_sessions,
            "pages": len(self._pages),
            "browser_active": self._browser is not None and self._browser.is_connected(),
            "memory_estimate": len(self._pages) * PAGE_MEMORY_ESTIMATE,
            "evictions": self.evictions,
            "reaped": self.reaped,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _evict_lru(self) -> None:
        oldest = min(self._sessions.values(), key=lambda p: p.last_used)
        logger.info("session_evicted", context_id=oldest.id, user_id=oldest.user_id)
        self.evictions += 1
        await self.close(oldest.id)

    def _touch_session(self, context_id: str) -> PooledSession:
        pooled = self._sessions.get(context_id)
        if pooled is None:
            raise BrowserError(f"Context {context_id} not found")
        pooled.last_used = self.clock()
        return pooled

    def _page(self, page_id: str):
        entry = self._pages.get(page_id)
        if entry is None:
            raise BrowserError(f"Page {page_id} not found")
        context_id, page = entry
        self._touch_session(context_id)
        return page

    def _info(self, pooled: PooledSession) -> SessionInfo:
        now = self.clock()
        idle = pooled.idle_seconds(now)
        return SessionInfo(
            id=pooled.id,
            user_id=pooled.user_id,
            session_id=pooled.session_id,
            created_at=pooled.created_wall,
            last_used=utcnow() - timedelta(seconds=idle),
            idle_seconds=round(idle, 3),
            page_count=len(pooled.page_ids),
            memory_usage=len(pooled.page_ids) * PAGE_MEMORY_ESTIMATE,
        )

    def _attach_listeners(self, page, context_id: str, page_id: str) -> None:
        def on_console(msg) -> None:
            if msg.type == "error":
                logger.warning("page_console_error", context_id=context_id, page_id=page_id, message=msg.text)

        def on_page_error(error) -> None:
            logger.warning("page_error", context_id=context_id, page_id=page_id, error=str(error))

        def on_request_failed(request) -> None:
            logger.debug("request_failed", page_id=page_id, url=request.url, failure=request.failure)

        page.on("console", on_console)
        page.on("pageerror", on_page_error)
        page.on("requestfailed", on_request_failed)

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
