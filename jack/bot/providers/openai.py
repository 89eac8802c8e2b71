"""
OpenAI Provider

Chat completions through the official SDK. Any OpenAI-compatible server
(vLLM, Ollama, Together, Groq) works by pointing base_url at it.
"""

import time
import logging
from typing import Optional

import httpx

from .base import CompletionProvider, CompletionResult
from ..utils.retry import rate_limit_retry

logger = logging.getLogger(__name__)


class OpenAIProvider(CompletionProvider):
    """OpenAI (or compatible) chat completions provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Model identifier
            base_url: Optional custom base URL for compatible servers
            timeout: Per-request timeout in seconds
        """
        self._api_key = api_key
        self._model = model
        self._base_url = base_url or "https://api.openai.com/v1"
        self._timeout = timeout
        self._client = None

    @property
    def name(self) -> str:
        return f"openai/{self._model}"

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self):
        """Lazy-load the OpenAI client."""
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                http_client=httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, connect=10.0)),
            )
        return self._client

    @rate_limit_retry
    async def chat(
        self,
        messages: list[dict],
        max_tokens: int,
        temperature: float = 1.0,
        stop: Optional[list[str]] = None,
    ) -> CompletionResult:
        """Generate a chat reply using the OpenAI API."""
        client = self._get_client()
        start_time = time.time()

        kwargs = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if stop:
            kwargs["stop"] = stop

        response = await client.chat.completions.create(**kwargs)

        text = (response.choices[0].message.content or "") if response.choices else ""
        usage = response.usage
        latency = (time.time() - start_time) * 1000

        logger.debug(f"{self.name}: {usage.total_tokens if usage else 0} tokens in {latency:.0f}ms")

        return CompletionResult(
            text=text,
            tokens_used=usage.total_tokens if usage else 0,
            tokens_prompt=usage.prompt_tokens if usage else 0,
            model=self._model,
            latency_ms=latency,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
