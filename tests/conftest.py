"""Shared fixtures: an in-memory browser, a scripted LLM and test executors.

Nothing here starts Chromium or talks to a model provider.
"""

import asyncio
from dataclasses import dataclass, field

import pytest

from smartbrowser.core.tasks.executors.base import BaseExecutor, ExecutorConfig
from smartbrowser.core.tasks.models import TaskType


ARTICLE_TEXT = (
    "The city council approved a new plan for public transport on Monday. "
    "The plan adds three tram lines and doubles the number of night buses. "
    "Officials expect the first line to open within two years, and the "
    "budget was agreed after a long debate about fares and accessibility. "
)

ARTICLE_HTML = f"""<html lang="en"><head>
<title>Council approves new transport plan for the city</title>
<meta name="description" content="A plan for trams and night buses.">
<meta name="author" content="Jane Reporter">
</head><body>
<nav><a href="/">Home</a> <a href="/news">News</a></nav>
<article>
<h1>Council approves new transport plan for the city</h1>
<p>{ARTICLE_TEXT}</p>
<p>{ARTICLE_TEXT}</p>
<p>{ARTICLE_TEXT}</p>
</article>
</body></html>"""


# ---------------------------------------------------------------------------
# In-memory browser
# ---------------------------------------------------------------------------


@dataclass
class FakeSite:
    title: str = "Example Domain"
    html: str = ARTICLE_HTML
    text: str = ARTICLE_TEXT * 3
    selectors: set = field(default_factory=set)
    metadata: dict = field(default_factory=dict)


class FakePage:
    def __init__(self, browser):
        self.browser = browser
        self.url = "about:blank"
        self.closed = False
        self.handlers = {}
        self.clicked = []
        self.filled = []

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    @property
    def site(self) -> FakeSite:
        return self.browser.site_for(self.url)

    async def goto(self, url, timeout=None, wait_until=None):
        self.browser.goto_calls.append(url)
        if self.browser.navigation_delay:
            await asyncio.sleep(self.browser.navigation_delay)
        if self.browser.failing_navigations > 0:
            self.browser.failing_navigations -= 1
            raise RuntimeError("net::ERR_CONNECTION_RESET")
        self.url = url

    async def wait_for_selector(self, selector, timeout=None):
        if selector == "body" or selector in self.site.selectors:
            return object()
        raise TimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def title(self):
        return self.site.title

    async def content(self):
        return self.site.html

    async def evaluate(self, script):
        if "jsonLd" in script:
            return {"text": self.site.text, "language": "en", **self.site.metadata}
        return self.site.text

    async def click(self, selector):
        if selector not in self.site.selectors:
            raise RuntimeError(f"No element matches {selector}")
        self.clicked.append(selector)

    async def fill(self, selector, value):
        if selector not in self.site.selectors:
            raise RuntimeError(f"No element matches {selector}")
        self.filled.append((selector, value))

    async def screenshot(self, full_page=False, type="png"):
        return b"\x89PNG fake"

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, browser, options):
        self.browser = browser
        self.options = options
        self.pages = []
        self.closed = False
        self.default_timeout = None
        self.default_navigation_timeout = None

    def set_default_timeout(self, ms):
        self.default_timeout = ms

    def set_default_navigation_timeout(self, ms):
        self.default_navigation_timeout = ms

    async def new_page(self):
        page = FakePage(self.browser)
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True
        for page in self.pages:
            page.closed = True


class FakeBrowser:
    def __init__(self):
        self.contexts = []
        self.connected = True
        self.routes: list[tuple[str, FakeSite]] = []
        self.default_site = FakeSite()
        self.failing_navigations = 0
        self.navigation_delay = 0.0
        self.goto_calls = []

    def route(self, prefix: str, site: FakeSite) -> None:
        self.routes.insert(0, (prefix, site))

    def site_for(self, url: str) -> FakeSite:
        for prefix, site in self.routes:
            if url.startswith(prefix):
                return site
        return self.default_site

    def is_connected(self):
        return self.connected

    async def new_context(self, **options):
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.connected = False

    @property
    def open_contexts(self):
        return [c for c in self.contexts if not c.closed]


class FakeLauncher:
    def __init__(self):
        self.browser = FakeBrowser()
        self.launches = 0
        self.stopped = False

    async def launch(self):
        self.launches += 1
        return self.browser

    async def stop(self):
        self.stopped = True


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Scripted LLM
# ---------------------------------------------------------------------------


class ScriptedLLM:
    """Returns queued replies in order; an exception in the queue is raised."""

    def __init__(self, *replies, default="{}"):
        self.replies = list(replies)
        self.default = default
        self.calls = []

    def _next(self):
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def complete(self, user, system=None):
        self.calls.append({"user": user, "system": system})
        return self._next()

    async def chat(self, messages, system=None, max_tokens=None, temperature=None):
        self.calls.append({"messages": messages, "system": system})
        return self._next()


# ---------------------------------------------------------------------------
# Configurable executor
# ---------------------------------------------------------------------------


class StubExecutor(BaseExecutor):
    """Executor whose behaviour is set per test.

    *outcomes* is consumed one entry per ``_execute_impl`` call: an
    exception instance is raised, anything else is returned.  ``delay``
    makes every call sleep first.
    """

    def __init__(self, handles=(TaskType.SEARCH,), outcomes=None, delay=0.0, config=None, accept=True):
        super().__init__("StubExecutor", config or ExecutorConfig(timeout=5.0, retries=3, concurrency=2))
        self.handles = set(handles)
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.accept = accept
        self.calls = 0
        self.execute_calls = 0
        self.sleeps = []

    def can_handle(self, task):
        return self.accept and task.type in self.handles

    async def execute(self, task, context, retries=None):
        self.execute_calls += 1
        return await super().execute(task, context, retries=retries)

    async def _execute_impl(self, task, context):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else {"task": task.id}
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def _sleep(self, seconds):
        self.sleeps.append(seconds)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_launcher():
    return FakeLauncher()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_site():
    return FakeSite


@pytest.fixture
def scripted_llm():
    return ScriptedLLM


@pytest.fixture
def stub_executor():
    return StubExecutor


@pytest.fixture
def article_html():
    return ARTICLE_HTML


@pytest.fixture
def pool(fake_launcher, fake_clock):
    from smartbrowser.core.browser.session_pool import SessionPool

    p = SessionPool(max_sessions=5, launcher=fake_launcher, clock=fake_clock)
    sleeps = []

    async def no_sleep(seconds):
        sleeps.append(seconds)

    p._sleep = no_sleep
    p.sleeps = sleeps
    return p


@pytest.fixture
def pages(pool):
    from smartbrowser.core.browser.page_controller import PageController
    from smartbrowser.utils.validator import Validator

    return PageController(pool, Validator(["malicious-site.com"]))
