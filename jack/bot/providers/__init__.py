"""
Completion Providers

Abstract base class and the OpenAI implementation used for bot mentions.
"""

from .base import CompletionProvider, CompletionResult
from .openai import OpenAIProvider

__all__ = [
    "CompletionProvider",
    "CompletionResult",
    "OpenAIProvider",
]
