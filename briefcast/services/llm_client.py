"""
Language model client used for script generation.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from briefcast.config import LLM_MODEL, OPENAI_API_KEY, PROVIDER_TIMEOUT_SECONDS, PROVIDER_MAX_RETRIES

logger = logging.getLogger(__name__)


@dataclass
class LLMCompletion:
    """Text returned by a completion call plus usage."""
    content: str
    model: str
    total_tokens: int = 0


class LLMClient:
    """Interface for chat completion providers."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMCompletion:
        raise NotImplementedError

    async def close(self):
        """Release provider connections."""


class OpenAILLMClient(LLMClient):
    """
    Chat completions via the OpenAI API.

    Retries and timeouts are delegated to the SDK client.
    """

    def __init__(
        self,
        api_key: Optional[str] = OPENAI_API_KEY,
        model: str = LLM_MODEL,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        max_retries: int = PROVIDER_MAX_RETRIES,
    ):
        from openai import AsyncOpenAI

        self.model = model
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMCompletion:
        logger.debug('LLM request: model=%s, max_tokens=%d', self.model, max_tokens)

        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )

        choice = response.choices[0]
        total_tokens = response.usage.total_tokens if response.usage else 0

        logger.debug('LLM response: tokens=%d, finish_reason=%s', total_tokens, choice.finish_reason)

        return LLMCompletion(
            content=choice.message.content or '',
            model=response.model,
            total_tokens=total_tokens,
        )

    async def close(self):
        await self._client.close()
