"""OpenAI provider for the LLM client abstraction.

Wraps the async ``openai`` SDK to expose the ``chat`` interface expected
by :class:`~smartbrowser.core.llm.client.LLMClient`.
"""

from __future__ import annotations

import openai

from smartbrowser.utils.exceptions import (
    LLMAuthenticationError,
    LLMError,
    LLMRateLimitError,
)
from smartbrowser.utils.logging import get_logger

logger = get_logger("llm.openai")


class OpenAIProvider:
    """Provider implementation for OpenAI chat models.

    Parameters
    ----------
    api_key:
        OpenAI API key.
    model:
        Model identifier, e.g. ``"gpt-4o"``.
    """

    name = "openai"

    def __init__(self, api_key: str, model: str):
        if not api_key:
            raise LLMError(self.name, "API key is required but was empty.")

        self.client = openai.AsyncOpenAI(api_key=api_key)
        self.model = model

    async def chat(
        self,
        system: str,
        messages: list[dict],
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Call the chat completions API and return the assistant's text."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "system", "content": system}, *messages],
            )
        except openai.RateLimitError as exc:
            logger.warning("openai_rate_limited", provider=self.name)
            raise LLMRateLimitError(
                self.name, "Rate limit exceeded. Please try again later."
            ) from exc
        except openai.AuthenticationError as exc:
            logger.error("openai_auth_failed", provider=self.name)
            raise LLMAuthenticationError(
                self.name, "Authentication failed. Please check your API key."
            ) from exc
        except openai.OpenAIError as exc:
            logger.error("openai_chat_error", provider=self.name, error=str(exc))
            raise LLMError(self.name, f"API request failed: {exc}") from exc

        choice = response.choices[0] if response.choices else None
        if choice and choice.message and choice.message.content:
            return choice.message.content
        return ""
