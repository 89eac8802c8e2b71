"""
Abstract Completion Provider

Base class for the conversational completion service. The connector only
ever needs chat completions: a list of role-tagged messages in, one
reply out.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    """Result from a chat completion call."""
    text: str
    tokens_used: int
    tokens_prompt: int
    model: str
    latency_ms: float

    @property
    def tokens_completion(self) -> int:
        """Tokens used for completion."""
        return self.tokens_used - self.tokens_prompt


class CompletionProvider(ABC):
    """
    Abstract base for chat completion providers.

    Implementations raise on failure; turning failures into a polite
    fallback reply is the caller's job.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier for logging."""
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """The model identifier being used."""
        ...

    @abstractmethod
    async def chat(
        self,
        messages: list[dict],
        max_tokens: int,
        temperature: float = 1.0,
        stop: Optional[list[str]] = None,
    ) -> CompletionResult:
        """
        Generate one assistant reply.

        Args:
            messages: Role-tagged turns, system primer first
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            stop: Optional stop sequences

        Returns:
            CompletionResult with the reply text and usage
        """
        ...

    async def close(self) -> None:
        """Clean up resources. Override if provider needs cleanup."""
        pass
