"""
Moderation Engine

Pure decision logic: given the current policy snapshot, decide whether a
chat message or a joining member is allowed. The engine never sends
anything; the connector turns kick/ban verdicts into outbound commands.

Policies are immutable snapshots. Reloading builds a new ModerationPolicy
and swaps the reference, so an in-flight decision always sees one
consistent policy.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from .events import MemberJoined

logger = logging.getLogger(__name__)

# Platform default avatars are numbered from this prefix
DEFAULT_AVATAR_PREFIX = "1000"

REASON_SPAM = "spam"
REASON_BANNED_CONTENT = "banned content"
REASON_AVATAR = "avatar"
REASON_GUEST = "guest"
REASON_LEVEL = "level"
REASON_BANNED_NAME = "banned name"


class VerdictAction(str, Enum):
    ALLOW = "allow"
    KICK = "kick"
    BAN = "ban"


@dataclass(frozen=True)
class Verdict:
    """Outcome of a moderation check."""
    action: VerdictAction
    reason: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.action == VerdictAction.ALLOW

    @classmethod
    def allow(cls) -> "Verdict":
        return cls(VerdictAction.ALLOW)

    @classmethod
    def kick(cls, reason: str) -> "Verdict":
        return cls(VerdictAction.KICK, reason)

    @classmethod
    def ban(cls, reason: str) -> "Verdict":
        return cls(VerdictAction.BAN, reason)


@dataclass(frozen=True)
class ModerationPolicy:
    """Read-only moderation settings snapshot."""
    spam_words: tuple[str, ...] = ()
    banned_patterns: tuple[str, ...] = ()
    min_level: int = 0
    allow_avatars: bool = True
    allow_guest_ids: bool = True
    exemptions: frozenset[str] = frozenset()
    # violation reason -> "kick" | "ban"
    violation_actions: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self):
        # Normalize once so every check is a plain lowercase substring test
        object.__setattr__(
            self, "spam_words",
            tuple(w.strip().lower() for w in self.spam_words if w and w.strip()),
        )
        object.__setattr__(
            self, "banned_patterns",
            tuple(p.strip().lower() for p in self.banned_patterns if p and p.strip()),
        )
        object.__setattr__(
            self, "exemptions",
            frozenset(e.strip().lower() for e in self.exemptions if e and e.strip()),
        )
        object.__setattr__(
            self, "violation_actions",
            MappingProxyType({k: str(v).lower() for k, v in dict(self.violation_actions).items()}),
        )

    def with_spam_word(self, word: str) -> "ModerationPolicy":
        """Copy of this policy with one more spam word."""
        return replace(self, spam_words=self.spam_words + (word,))

    def is_exempt(self, *identities: Optional[str]) -> bool:
        return any(i and i.strip().lower() in self.exemptions for i in identities)

    def action_for(self, reason: str) -> VerdictAction:
        if self.violation_actions.get(reason) == VerdictAction.BAN.value:
            return VerdictAction.BAN
        return VerdictAction.KICK


@dataclass
class BotStats:
    """Process-lifetime counters shown on the status surface."""
    messages_processed: int = 0
    users_kicked: int = 0
    spam_blocked: int = 0

    def to_dict(self) -> dict:
        return {
            "messagesProcessed": self.messages_processed,
            "usersKicked": self.users_kicked,
            "spamBlocked": self.spam_blocked,
        }


def is_default_avatar(avatar: Optional[str]) -> bool:
    return bool(avatar) and str(avatar).startswith(DEFAULT_AVATAR_PREFIX)


class ModerationEngine:
    """
    Evaluates messages and joins against the current policy.

    Responsibilities:
    - Spam word and banned pattern checks on chat messages
    - Avatar, guest id, level and name checks on joins
    - Counting processed and blocked messages
    """

    def __init__(self, policy: Optional[ModerationPolicy] = None, stats: Optional[BotStats] = None):
        self._policy = policy or ModerationPolicy()
        self.stats = stats or BotStats()

    @property
    def policy(self) -> ModerationPolicy:
        return self._policy

    def update_policy(self, policy: ModerationPolicy) -> None:
        """Swap in a new policy snapshot."""
        self._policy = policy
        logger.info(
            f"Moderation policy updated: {len(policy.spam_words)} spam words, "
            f"{len(policy.banned_patterns)} banned patterns, min level {policy.min_level}"
        )

    def evaluate_message(
        self,
        text: str,
        sender_id: str,
        sender_name: Optional[str] = None,
    ) -> Verdict:
        """
        Check a chat message.

        Spam words are checked first and short-circuit; banned patterns
        second. The first match wins.
        """
        policy = self._policy
        self.stats.messages_processed += 1

        if policy.is_exempt(sender_id, sender_name):
            return Verdict.allow()

        lowered = (text or "").lower()

        for word in policy.spam_words:
            if word in lowered:
                self.stats.spam_blocked += 1
                logger.info(f"Spam word '{word}' from {sender_id}")
                return Verdict.kick(REASON_SPAM)

        for pattern in policy.banned_patterns:
            if pattern in lowered:
                self.stats.spam_blocked += 1
                logger.info(f"Banned pattern '{pattern}' from {sender_id}")
                return Verdict.kick(REASON_BANNED_CONTENT)

        return Verdict.allow()

    def evaluate_join(self, member: MemberJoined) -> Verdict:
        """Check a joining member. Stops at the first violation."""
        policy = self._policy

        if policy.is_exempt(member.uid, member.name):
            return Verdict.allow()

        reason = None
        if not policy.allow_avatars and is_default_avatar(member.avatar):
            reason = REASON_AVATAR
        elif not policy.allow_guest_ids and member.guest:
            reason = REASON_GUEST
        elif member.level < policy.min_level:
            reason = REASON_LEVEL
        else:
            lowered = member.name.lower()
            if any(p in lowered for p in policy.banned_patterns):
                reason = REASON_BANNED_NAME

        if reason is None:
            return Verdict.allow()

        action = policy.action_for(reason)
        logger.info(f"Join rejected for {member.name} ({member.uid}): {reason} -> {action.value}")
        return Verdict(action, reason)
