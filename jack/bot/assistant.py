"""
Bot Assistant

Answers mentions of the bot through the completion provider, keeping a
per-user conversation in the context store. Never raises: any provider
failure becomes a fixed apology, and the exchange is still recorded.
"""

import logging
from typing import Optional

from .context import ConversationContextStore
from .providers import CompletionProvider

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, I couldn't process that."
EMPTY_REPLY = "Sorry, I didn't catch that."


def split_message(text: str, max_length: int = 150) -> list[str]:
    """
    Split text into chunks of at most max_length characters on word
    boundaries. A single word longer than max_length is cut.
    """
    if max_length < 1:
        raise ValueError("max_length must be at least 1")
    chunks: list[str] = []
    current = ""

    for word in text.split():
        while len(word) > max_length:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(word[:max_length])
            word = word[max_length:]
        if not word:
            continue
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_length:
            chunks.append(current)
            current = word
        else:
            current = candidate

    if current:
        chunks.append(current)
    return chunks


class Assistant:
    """Completion client with per-user history."""

    def __init__(
        self,
        provider: Optional[CompletionProvider],
        context: ConversationContextStore,
        max_tokens: int = 200,
        temperature: float = 0.8,
    ):
        self.provider = provider
        self.context = context
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def reply(self, user_id: str, text: str) -> str:
        """Get a reply for user_id and record both turns."""
        history = self.context.history(user_id)
        history.append({"role": "user", "content": text})
        messages = self.context.window(user_id)

        try:
            if self.provider is None:
                raise RuntimeError("no completion provider configured")
            result = await self.provider.chat(
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            reply = result.text.strip() or EMPTY_REPLY
        except Exception as e:
            logger.error(f"Error fetching completion for {user_id}: {e}")
            reply = FALLBACK_REPLY

        if self.context.history(user_id) is not history:
            # Cleared or evicted while waiting; restart it with this exchange
            self.context.append(user_id, "user", text)
        self.context.append(user_id, "assistant", reply)
        return reply

    async def close(self) -> None:
        if self.provider is not None:
            await self.provider.close()
