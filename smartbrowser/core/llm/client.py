"""High-level LLM client abstraction.

Provides a unified interface for the reasoning service through a single
``LLMClient`` class.  Supported providers:

  - ``anthropic`` - Anthropic Claude (default)
  - ``openai`` - OpenAI GPT
  - ``deepseek``, ``ollama``, ``together``, ``groq``, ``moonshot``,
    ``zhipu``, ``siliconflow`` - OpenAI-compatible services at their
    well-known base URLs
  - ``openai_compatible`` - Any OpenAI-compatible API with a custom base_url

Every call goes out with the SmartBrowser system prompt unless the caller
supplies its own.
"""

from __future__ import annotations

from datetime import date

from smartbrowser.core.llm.parsing import extract_json
from smartbrowser.utils.exceptions import LLMError
from smartbrowser.utils.logging import get_logger

# Well-known OpenAI-compatible providers and their default base URLs.
_KNOWN_COMPATIBLE_PROVIDERS: dict[str, str] = {
    "deepseek": "https://api.deepseek.com",
    "ollama": "http://localhost:11434/v1",
    "together": "https://api.together.xyz/v1",
    "groq": "https://api.groq.com/openai/v1",
    "moonshot": "https://api.moonshot.cn/v1",
    "zhipu": "https://open.bigmodel.cn/api/paas/v4",
    "siliconflow": "https://api.siliconflow.cn/v1",
}

# Providers that run locally and accept any key.
LOCAL_PROVIDERS = frozenset({"ollama"})

DEFAULT_MAX_TOKENS = 4000
DEFAULT_TEMPERATURE = 0.3

_SYSTEM_PROMPT = """\
You are SmartBrowser, an intelligent browser automation assistant. Your capabilities include:

1. Summarizing web page content with key insights and actionable information
2. Analyzing user goals and creating step-by-step action plans
3. Extracting structured data from web content
4. Providing contextual assistance based on current browsing session

Guidelines:
- Be concise but comprehensive in your analysis
- Focus on actionable insights and practical next steps
- Maintain user privacy and security at all times
- Format responses in clear, structured JSON when requested
- Always validate URLs and user inputs for security
- Prioritize user safety and ethical guidelines

Current date: {today}"""


def build_system_prompt(today: date | None = None) -> str:
    return _SYSTEM_PROMPT.format(today=(today or date.today()).isoformat())


class LLMClient:
    """Unified LLM client that delegates to a provider-specific backend.

    Parameters
    ----------
    provider:
        Provider name - ``"anthropic"``, ``"openai"``, ``"openai_compatible"``
        or any key in the well-known providers registry.
    api_key:
        API key for the chosen provider.
    model:
        Model identifier (e.g. ``"claude-sonnet-4-20250514"``, ``"gpt-4o"``).
    base_url:
        Optional base URL.  Required for ``openai_compatible``; ignored for
        ``anthropic`` and ``openai``; overrides the default for well-known
        compatible providers.
    max_tokens, temperature:
        Defaults applied to every request that does not override them.
    """

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        self.provider = provider
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.logger = get_logger("llm")
        self._provider_client = self._init_provider(api_key)

    def _init_provider(self, api_key: str):
        """Instantiate the appropriate provider backend."""
        if self.provider == "anthropic":
            from smartbrowser.core.llm.providers.anthropic_provider import AnthropicProvider

            return AnthropicProvider(api_key, self.model)

        if self.provider == "openai":
            from smartbrowser.core.llm.providers.openai_provider import OpenAIProvider

            return OpenAIProvider(api_key, self.model)

        if self.provider in _KNOWN_COMPATIBLE_PROVIDERS or self.provider == "openai_compatible":
            from smartbrowser.core.llm.providers.openai_compatible_provider import (
                OpenAICompatibleProvider,
            )

            if not api_key and self.provider not in LOCAL_PROVIDERS:
                raise LLMError(self.provider, "API key is required but was empty.")

            base_url = self.base_url or _KNOWN_COMPATIBLE_PROVIDERS.get(self.provider, "")
            if not base_url:
                raise LLMError(
                    self.provider,
                    "base_url is required for openai_compatible provider. "
                    "Set LLM_BASE_URL in your .env file.",
                )
            return OpenAICompatibleProvider(
                api_key=api_key,
                model=self.model,
                base_url=base_url,
                provider_name=self.provider,
            )

        raise LLMError(
            self.provider,
            f"Unknown provider: {self.provider}. "
            f"Supported: anthropic, openai, "
            f"{', '.join(_KNOWN_COMPATIBLE_PROVIDERS.keys())}, openai_compatible",
        )

    async def chat(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send a message list and return the text response.

        Raises :class:`LLMError` (or one of its rate-limit/auth subclasses)
        on provider failures.
        """
        self.logger.info(
            "llm_chat",
            provider=self.provider,
            model=self.model,
            message_count=len(messages),
        )
        try:
            result = await self._provider_client.chat(
                system if system is not None else build_system_prompt(),
                messages,
                max_tokens or self.max_tokens,
                self.temperature if temperature is None else temperature,
            )
        except LLMError:
            raise
        except Exception as exc:
            self.logger.error("llm_chat_error", error=str(exc))
            raise LLMError(self.provider, str(exc)) from exc

        self.logger.info("llm_chat_success", response_len=len(result))
        return result

    async def complete(self, user: str, system: str | None = None) -> str:
        """Send a single user message and return the text response."""
        return await self.chat([{"role": "user", "content": user}], system=system)

    async def complete_json(self, user: str, system: str | None = None) -> dict:
        """Send a single user message and parse the reply as a JSON object.

        Raises :class:`LLMError` when the reply holds no parseable object.
        """
        raw = await self.complete(user, system=system)
        try:
            return extract_json(raw)
        except ValueError as exc:
            self.logger.error("llm_json_parse_error", raw=raw[:500], error=str(exc))
            raise LLMError(
                self.provider, f"Failed to parse LLM response as JSON: {exc}"
            ) from exc
