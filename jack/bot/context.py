"""
Conversation Context Store

Per-user chat history for the completion service. Each history starts
with a system primer reflecting the configured tone; only the primer and
the most recent turns are sent with a request.

Users are kept in an LRU so a busy room cannot grow the map forever.
"""

import logging
from collections import OrderedDict
from typing import Optional

logger = logging.getLogger(__name__)

TONES = {
    "upbeat": "You are an upbeat and friendly assistant. Be positive and encouraging!",
    "sarcastic": "You are a witty and sarcastic assistant. Use humor and sass in your responses!",
    "wise": "You are a wise and thoughtful assistant. Provide deep insights and wisdom.",
    "energetic": "You are an energetic and enthusiastic assistant. Show excitement in every response!",
    "chill": "You are a chill and relaxed assistant. Keep things cool and casual.",
    "phuppo": "You are a phuppo (aunt) character. Be caring but slightly nosy and gossipy.",
    "gangster": "You are a gangster character. Talk tough and street-smart.",
    "party": "You are a party animal. Everything is fun and exciting!",
}

DEFAULT_TONE = "upbeat"


def tone_primer(tone: Optional[str]) -> str:
    return TONES.get((tone or "").lower(), TONES[DEFAULT_TONE])


class ConversationContextStore:
    """LRU map of user id -> role-tagged turns."""

    def __init__(self, tone: str = DEFAULT_TONE, max_users: int = 200, max_turns: int = 10):
        if max_users < 1:
            raise ValueError("max_users must be at least 1")
        self.tone = tone
        self.max_users = max_users
        self.max_turns = max_turns
        self._histories: OrderedDict[str, list[dict]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._histories)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._histories

    def history(self, user_id: str) -> list[dict]:
        """Full stored history for a user, created with the primer on first use."""
        if user_id in self._histories:
            self._histories.move_to_end(user_id)
            return self._histories[user_id]

        history = [{"role": "system", "content": tone_primer(self.tone)}]
        self._histories[user_id] = history
        while len(self._histories) > self.max_users:
            evicted, _ = self._histories.popitem(last=False)
            logger.debug(f"Evicted conversation context for {evicted}")
        return history

    def append(self, user_id: str, role: str, content: str) -> None:
        self.history(user_id).append({"role": role, "content": content})

    def window(self, user_id: str) -> list[dict]:
        """Primer plus the most recent max_turns turns, as a fresh list."""
        history = self.history(user_id)
        primer, turns = history[0], history[1:]
        recent = turns[-self.max_turns:] if self.max_turns > 0 else []
        return [dict(primer)] + [dict(t) for t in recent]

    def set_tone(self, tone: str) -> None:
        """Change tone. Existing histories were primed for the old tone, so drop them."""
        if tone != self.tone:
            self.tone = tone
            self.clear()

    def clear(self) -> None:
        self._histories.clear()
