"""
LeaseWise LLM Client
====================
Thin wrapper around the OpenAI chat completions API.

Both clause classification and answer synthesis go through `LLMClient.generate`,
so tests can substitute any object exposing the same coroutine.
"""

import logging

from openai import AsyncOpenAI, OpenAIError

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when the text-generation service fails or returns nothing."""
    pass


class LLMClient:
    """Text-generation capability backed by OpenAI."""

    def __init__(self, settings: Settings | None = None, client: AsyncOpenAI | None = None):
        self.settings = settings or get_settings()
        self.model = self.settings.llm_model or "gpt-4o-mini"
        self.llm_client = client or AsyncOpenAI(
            api_key=self.settings.openai_api_key,
            timeout=self.settings.llm_timeout_seconds,
        )

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        json_response: bool = False,
        temperature: float = 0.1,
        max_tokens: int = 2048,
    ) -> str:
        """
        Send a single prompt and return the text of the first choice.

        Raises:
            LLMError: On transport/API errors or an empty completion
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs = {}
        if json_response:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.llm_client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
        except OpenAIError as e:
            logger.error(f"OpenAI request failed ({self.model}): {e}")
            raise LLMError(f"LLM request failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise LLMError("LLM returned an empty response")
        return response.choices[0].message.content
