"""Tests for the browser session pool and the page controller on top of it."""

import pytest

from smartbrowser.utils.exceptions import BrowserError, SecurityError, ValidationError


class TestSessionPool:
    @pytest.mark.asyncio
    async def test_browser_launched_once(self, pool, fake_launcher):
        await pool.create_session("u1", "s1")
        await pool.create_session("u2", "s2")
        assert fake_launcher.launches == 1
        assert pool.get_stats()["browser_active"] is True

    @pytest.mark.asyncio
    async def test_capacity_evicts_least_recently_used(self, pool, fake_clock, fake_launcher):
        ids = []
        for n in range(5):
            ids.append(await pool.create_session(f"user-{n}", f"s{n}"))
            fake_clock.advance(1)

        # Touch the oldest so the second-oldest becomes the LRU victim.
        await pool.create_page(ids[0])
        fake_clock.advance(1)

        newcomer = await pool.create_session("user-5", "s5")

        live = {s.id for s in pool.list_sessions()}
        assert len(live) == 5
        assert ids[1] not in live
        assert ids[0] in live and newcomer in live
        assert pool.get_stats()["evictions"] == 1
        assert len(fake_launcher.browser.open_contexts) == 5

    @pytest.mark.asyncio
    async def test_pool_never_exceeds_capacity(self, pool):
        for n in range(12):
            await pool.create_session("u", f"s{n}")
            assert pool.get_stats()["sessions"] <= 5
        assert pool.get_stats()["evictions"] == 7

    @pytest.mark.asyncio
    async def test_context_defaults(self, pool, fake_launcher):
        await pool.create_session("u", "s")
        context = fake_launcher.browser.contexts[0]
        assert context.options["user_agent"] == "SmartBrowser/1.0"
        assert context.options["viewport"] == {"width": 1920, "height": 1080}
        assert context.default_navigation_timeout == 30_000

    @pytest.mark.asyncio
    async def test_wait_for_element_and_close_page(self, pool, fake_launcher, fake_site):
        fake_launcher.browser.route("https://shop.example.com", fake_site(selectors={"#cart"}))
        context_id = await pool.create_session("u", "s")
        page_id = await pool.create_page(context_id)
        await pool.navigate(page_id, "https://shop.example.com/")

        assert await pool.wait_for_element(page_id, "#cart") is True
        assert await pool.wait_for_element(page_id, "#missing", timeout=0.1) is False

        await pool.close_page(page_id)
        await pool.close_page(page_id)

        assert pool.get_session(context_id).page_count == 0
        assert fake_launcher.browser.contexts[0].pages[0].closed is True

    @pytest.mark.asyncio
    async def test_navigate_retries_with_backoff(self, pool, fake_launcher):
        fake_launcher.browser.failing_navigations = 2
        context_id = await pool.create_session("u", "s")
        page_id = await pool.create_page(context_id)

        assert await pool.navigate(page_id, "https://example.com") is True
        assert pool.sleeps == [2, 4]
        assert len(fake_launcher.browser.goto_calls) == 3

    @pytest.mark.asyncio
    async def test_navigate_gives_up_after_retries(self, pool, fake_launcher):
        from smartbrowser.core.browser.models import NavigationOptions

        fake_launcher.browser.failing_navigations = 10
        context_id = await pool.create_session("u", "s")
        page_id = await pool.create_page(context_id)

        with pytest.raises(BrowserError, match="Failed to navigate"):
            await pool.navigate(page_id, "https://example.com", NavigationOptions(retries=2))
        assert pool.sleeps == [2]

    @pytest.mark.asyncio
    async def test_unknown_ids(self, pool):
        with pytest.raises(BrowserError, match="not found"):
            await pool.create_page("missing")
        with pytest.raises(BrowserError, match="not found"):
            await pool.get_content("missing")
        await pool.close("missing")

    @pytest.mark.asyncio
    async def test_close_drops_pages(self, pool):
        context_id = await pool.create_session("u", "s")
        page_id = await pool.create_page(context_id)
        await pool.close(context_id)
        assert pool.get_session(context_id) is None
        with pytest.raises(BrowserError):
            await pool.get_content(page_id)

    @pytest.mark.asyncio
    async def test_reaper_closes_idle_sessions(self, pool, fake_clock):
        stale = await pool.create_session("u", "old")
        fake_clock.advance(1700)
        fresh = await pool.create_session("u", "new")
        fake_clock.advance(200)

        assert await pool.reap_idle() == 1
        assert pool.get_session(stale) is None
        assert pool.get_session(fresh) is not None
        assert pool.get_stats()["reaped"] == 1

    @pytest.mark.asyncio
    async def test_session_info(self, pool, fake_clock):
        context_id = await pool.create_session("u", "s")
        await pool.create_page(context_id)
        fake_clock.advance(12)

        info = pool.get_session(context_id)
        assert info.page_count == 1
        assert info.idle_seconds == 12
        assert info.memory_usage == 50 * 1024 * 1024

    @pytest.mark.asyncio
    async def test_cleanup_closes_everything(self, pool, fake_launcher):
        pool.start_reaper()
        for n in range(3):
            await pool.create_session("u", f"s{n}")

        await pool.cleanup()

        assert pool.get_stats()["sessions"] == 0
        assert fake_launcher.browser.open_contexts == []
        assert fake_launcher.browser.connected is False
        assert fake_launcher.stopped is True
        assert pool._reaper is None


class TestPageController:
    @pytest.mark.asyncio
    async def test_create_session_and_read_content(self, pages):
        session_id = await pages.create_page_session("u", "https://example.com/article")

        content = await pages.get_page_content(session_id)

        assert content.url == "https://example.com/article"
        assert content.title == "Example Domain"
        assert content.metadata.language == "en"
        assert content.metadata.word_count > 100
        assert content.metadata.reading_time == 1
        assert pages.active_count() == 1

    @pytest.mark.asyncio
    async def test_rejects_blocked_and_malformed_urls(self, pages, pool):
        with pytest.raises(SecurityError):
            await pages.create_page_session("u", "https://malicious-site.com/x")
        with pytest.raises(ValidationError):
            await pages.create_page_session("u", "ftp://example.com")
        with pytest.raises(ValidationError):
            await pages.create_page_session("  ", "https://example.com")
        assert pool.get_stats()["sessions"] == 0

    @pytest.mark.asyncio
    async def test_failed_navigation_releases_context(self, pages, pool, fake_launcher):
        fake_launcher.browser.failing_navigations = 3

        with pytest.raises(BrowserError):
            await pages.create_page_session("u", "https://example.com")

        assert pool.get_stats()["sessions"] == 0
        assert pages.active_count() == 0

    @pytest.mark.asyncio
    async def test_interactions(self, pages, fake_launcher, fake_site):
        fake_launcher.browser.route("https://shop.example.com", fake_site(title="Shop", selectors={"#q", "#go"}))
        session_id = await pages.create_page_session("u", "https://shop.example.com/")

        assert await pages.interact(session_id, "fill", "#q", "lamp") is True
        assert await pages.interact(session_id, "click", "#go") is True
        assert await pages.interact(session_id, "click", "#missing") is False
        assert await pages.interact(session_id, "wait", "#q", timeout=1) is True
        with pytest.raises(ValidationError):
            await pages.interact(session_id, "fill", "#q")

    @pytest.mark.asyncio
    async def test_evicted_context_invalidates_page_session(self, pages, pool):
        session_id = await pages.create_page_session("u", "https://example.com")
        for n in range(5):
            await pool.create_session("other", f"s{n}")

        with pytest.raises(BrowserError, match="not found"):
            await pages.get_page_content(session_id)
        assert pages.get_session(session_id) is None

    @pytest.mark.asyncio
    async def test_navigate_updates_session(self, pages, fake_launcher, fake_site):
        fake_launcher.browser.route("https://docs.example.com", fake_site(title="Docs"))
        session_id = await pages.create_page_session("u", "https://example.com")

        await pages.navigate(session_id, "https://docs.example.com/start")

        session = pages.get_session(session_id)
        assert session.url == "https://docs.example.com/start"
        assert session.title == "Docs"

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, pages, pool):
        session_id = await pages.create_page_session("u", "https://example.com")
        await pages.close_session(session_id)
        await pages.close_session(session_id)
        assert pool.get_stats()["sessions"] == 0
