"""Anthropic Claude provider for the LLM client abstraction.

Wraps the async ``anthropic`` SDK to expose the ``chat`` interface
expected by :class:`~smartbrowser.core.llm.client.LLMClient`.
"""

from __future__ import annotations

import anthropic

from smartbrowser.utils.exceptions import (
    LLMAuthenticationError,
    LLMError,
    LLMRateLimitError,
)
from smartbrowser.utils.logging import get_logger

logger = get_logger("llm.anthropic")


class AnthropicProvider:
    """Provider implementation for Anthropic Claude models.

    Parameters
    ----------
    api_key:
        Anthropic API key.
    model:
        Model identifier, e.g. ``"claude-sonnet-4-20250514"``.
    """

    name = "anthropic"

    def __init__(self, api_key: str, model: str):
        if not api_key:
            raise LLMError("anthropic", "API key is required but was empty.")

        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model

    async def chat(
        self,
        system: str,
        messages: list[dict],
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Call Claude and return the text of the first content block."""
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=messages,
            )
        except anthropic.RateLimitError as exc:
            logger.warning("anthropic_rate_limited")
            raise LLMRateLimitError(
                "anthropic", "Rate limit exceeded. Please try again later."
            ) from exc
        except anthropic.AuthenticationError as exc:
            logger.error("anthropic_auth_failed")
            raise LLMAuthenticationError(
                "anthropic", "Authentication failed. Please check your API key."
            ) from exc
        except anthropic.APIError as exc:
            logger.error("anthropic_chat_error", error=str(exc))
            raise LLMError("anthropic", f"API request failed: {exc}") from exc

        logger.debug(
            "anthropic_usage",
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
        )
        for block in message.content:
            if getattr(block, "type", None) == "text":
                return block.text
        return ""
