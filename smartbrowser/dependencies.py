"""FastAPI dependency functions for injection into endpoint handlers.

Long-lived services (the session pool, the orchestrator, the goal
executor) are built once by :func:`wire_services` during the app
lifespan and stored on ``app.state``; the getters here simply look them
up.
"""

from __future__ import annotations

from fastapi import Header, Request

from smartbrowser.config import settings
from smartbrowser.core.browser.page_controller import PageController
from smartbrowser.core.browser.session_pool import SessionPool
from smartbrowser.core.content.extractor import ArticleExtractor
from smartbrowser.core.content.structured import StructuredDataExtractor
from smartbrowser.core.content.summarizer import ContentSummarizer
from smartbrowser.core.goals.executor import GoalExecutor
from smartbrowser.core.goals.translator import GoalTranslator
from smartbrowser.core.tasks.orchestrator import OrchestratorState, TaskOrchestrator
from smartbrowser.core.tasks.registry import build_default_registry
from smartbrowser.utils.exceptions import ServiceUnavailableError
from smartbrowser.utils.logging import get_logger
from smartbrowser.utils.validator import Validator, sanitize_string

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# LLM client (optional -- returns None when no API key is configured)
# ---------------------------------------------------------------------------

def _resolve_api_key() -> str:
    """Pick the API key for the configured provider.

    Resolution order:
      1. Provider-specific key (``ANTHROPIC_API_KEY``, ``OPENAI_API_KEY``,
         ``DEEPSEEK_API_KEY``)
      2. Generic ``LLM_API_KEY``
      3. Any non-empty provider-specific key
    """
    provider = settings.llm_provider
    provider_keys: dict[str, str] = {
        "anthropic": settings.anthropic_api_key,
        "openai": settings.openai_api_key,
        "deepseek": settings.deepseek_api_key,
    }

    if provider in provider_keys and provider_keys[provider]:
        return provider_keys[provider]

    if settings.llm_api_key:
        return settings.llm_api_key

    for key in provider_keys.values():
        if key:
            return key

    return ""


def get_llm_client():
    """Build an LLM client if API keys are available.

    Returns ``None`` when no usable key is found and the provider needs
    one.  Summarisation and goal execution are then unavailable; plain
    navigation, extraction and search keep working.
    """
    from smartbrowser.core.llm.client import LOCAL_PROVIDERS, LLMClient

    api_key = _resolve_api_key()
    provider = settings.llm_provider
    if not api_key and provider not in LOCAL_PROVIDERS:
        logger.warning("llm_client_unavailable", provider=provider, reason="no API key")
        return None

    return LLMClient(
        provider,
        api_key,
        settings.llm_model,
        base_url=settings.llm_base_url or None,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------

def wire_services(state, llm_client=None, launcher=None) -> None:
    """Build every long-lived service and attach it to *state*."""
    validator = Validator(settings.blocked_domains)
    pool = SessionPool(
        max_sessions=settings.browser_max_contexts,
        default_timeout=settings.browser_timeout,
        navigation_retries=settings.navigation_retries,
        idle_timeout=settings.session_idle_timeout,
        sweep_interval=settings.session_sweep_interval,
        user_agent=settings.browser_user_agent,
        headless=settings.browser_headless,
        launcher=launcher,
    )
    pages = PageController(pool, validator)
    extractor = ArticleExtractor(min_content_length=settings.min_content_length)

    summarizer = structured = translator = goal_executor = None
    if llm_client is not None:
        summarizer = ContentSummarizer(
            llm_client,
            cache_ttl=settings.summary_cache_ttl,
            max_cache_size=settings.summary_cache_size,
        )
        structured = StructuredDataExtractor(llm_client)

    registry = build_default_registry(pages, extractor, summarizer, structured)
    orchestrator = TaskOrchestrator(
        registry,
        OrchestratorState(history_limit=settings.task_history_limit),
        default_timeout=settings.task_timeout,
    )
    if llm_client is not None:
        translator = GoalTranslator(llm_client, validator)
        goal_executor = GoalExecutor(translator, orchestrator, llm_client, validator)

    state.validator = validator
    state.llm_client = llm_client
    state.session_pool = pool
    state.page_controller = pages
    state.extractor = extractor
    state.summarizer = summarizer
    state.registry = registry
    state.orchestrator = orchestrator
    state.goal_executor = goal_executor
    logger.info(
        "services_wired",
        llm_enabled=llm_client is not None,
        executors=[e.name for e in registry.list_all()],
    )


# ---------------------------------------------------------------------------
# Getters
# ---------------------------------------------------------------------------

def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity from ``X-User-Id``; ``anonymous`` when absent."""
    return sanitize_string(x_user_id or "", max_length=128) or "anonymous"


def get_validator(request: Request) -> Validator:
    return request.app.state.validator


def get_session_pool(request: Request) -> SessionPool:
    return request.app.state.session_pool


def get_page_controller(request: Request) -> PageController:
    return request.app.state.page_controller


def get_extractor(request: Request) -> ArticleExtractor:
    return request.app.state.extractor


def get_orchestrator(request: Request) -> TaskOrchestrator:
    return request.app.state.orchestrator


def get_summarizer(request: Request) -> ContentSummarizer:
    summarizer = request.app.state.summarizer
    if summarizer is None:
        raise ServiceUnavailableError("Summarization (LLM provider)")
    return summarizer


def get_goal_executor(request: Request) -> GoalExecutor:
    executor = request.app.state.goal_executor
    if executor is None:
        raise ServiceUnavailableError("Goal execution (LLM provider)")
    return executor
