"""
Connector State

Everything the connector owns for its lifetime: roster, mic slots,
pending kicks and mini-game state. One ConnectorState per connector;
handlers receive it explicitly instead of reaching for module globals.
"""

import random
import logging
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .events import Member, MIC_SLOTS

logger = logging.getLogger(__name__)

SECRET_MIN = 1
SECRET_MAX = 100

MAX_REMEMBERED_KICKS = 1000


class MemberRoster:
    """Ordered member list, replaced wholesale on every snapshot."""

    def __init__(self, members: Optional[Iterable[Member]] = None):
        self._members: list[Member] = list(members or [])

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self):
        return iter(self._members)

    @property
    def members(self) -> list[Member]:
        return list(self._members)

    def replace(self, members: Iterable[Member]) -> None:
        self._members = list(members)

    def upsert(self, member: Member) -> None:
        for i, existing in enumerate(self._members):
            if existing.uid == member.uid:
                self._members[i] = member
                return
        self._members.append(member)

    def remove(self, uid: str) -> Optional[Member]:
        for i, existing in enumerate(self._members):
            if existing.uid == uid:
                return self._members.pop(i)
        return None

    def get(self, uid: str) -> Optional[Member]:
        for member in self._members:
            if member.uid == uid:
                return member
        return None

    def search(self, query: str, limit: int = 5) -> list[Member]:
        """Exact id match first, then case-insensitive name substring."""
        query = query.strip()
        if not query:
            return []
        exact = self.get(query)
        if exact:
            return [exact]
        needle = query.lower()
        return [m for m in self._members if needle in m.name.lower()][:limit]


class MicState:
    """Occupant id per mic slot, or None for an empty slot."""

    def __init__(self):
        self.slots: list[Optional[str]] = [None] * MIC_SLOTS

    def replace(self, slots: list[Optional[str]]) -> None:
        padded = list(slots[:MIC_SLOTS])
        self.slots = padded + [None] * (MIC_SLOTS - len(padded))

    def first_free(self) -> Optional[int]:
        for i, occupant in enumerate(self.slots):
            if occupant is None:
                return i
        return None

    def slot_of(self, uid: str) -> Optional[int]:
        for i, occupant in enumerate(self.slots):
            if occupant == uid:
                return i
        return None

    def occupy(self, index: int, uid: str) -> None:
        # Only one slot per occupant
        current = self.slot_of(uid)
        if current is not None:
            self.slots[current] = None
        self.slots[index] = uid

    def vacate(self, uid: str) -> Optional[int]:
        index = self.slot_of(uid)
        if index is not None:
            self.slots[index] = None
        return index


@dataclass(frozen=True)
class PendingKick:
    """A member queued for removal."""
    uid: str
    reason: str
    ban: bool = False


class PendingKicks:
    """
    FIFO of members to remove.

    An id that is queued or already processed is never queued again until
    forget() is called for it (the member rejoined the room). Only the most
    recent max_remembered processed ids are kept; queued ids always are.
    """

    def __init__(self, max_remembered: int = MAX_REMEMBERED_KICKS):
        self.max_remembered = max_remembered
        self._queue: deque[PendingKick] = deque()
        self._seen: OrderedDict[str, None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, uid: str, reason: str, ban: bool = False) -> bool:
        if uid in self._seen:
            logger.debug(f"Kick for {uid} already queued or processed, skipping")
            return False
        self._seen[uid] = None
        self._queue.append(PendingKick(uid=uid, reason=reason, ban=ban))
        self._trim()
        return True

    def _trim(self) -> None:
        if len(self._seen) <= self.max_remembered:
            return
        queued = {k.uid for k in self._queue}
        for uid in list(self._seen):
            if len(self._seen) <= self.max_remembered:
                break
            if uid not in queued:
                del self._seen[uid]

    def pop(self) -> Optional[PendingKick]:
        if not self._queue:
            return None
        return self._queue.popleft()

    def requeue(self, kick: PendingKick) -> None:
        """Put a kick that could not be sent back at the head of the queue."""
        self._seen[kick.uid] = None
        self._queue.appendleft(kick)

    def forget(self, uid: str) -> None:
        """Allow uid to be queued again, unless it is still waiting."""
        if any(k.uid == uid for k in self._queue):
            return
        self._seen.pop(uid, None)

    def is_known(self, uid: str) -> bool:
        return uid in self._seen


@dataclass
class GameState:
    """Guess-the-number secret and the active typing challenge."""
    secret: int = field(default_factory=lambda: random.randint(SECRET_MIN, SECRET_MAX))
    typing_word: Optional[str] = None

    def new_secret(self) -> int:
        """Pick a new secret, never the one just guessed."""
        old = self.secret
        while self.secret == old:
            self.secret = random.randint(SECRET_MIN, SECRET_MAX)
        return self.secret


@dataclass
class ConnectorState:
    """Mutable room state owned by one connector."""
    roster: MemberRoster = field(default_factory=MemberRoster)
    mics: MicState = field(default_factory=MicState)
    pending_kicks: PendingKicks = field(default_factory=PendingKicks)
    games: GameState = field(default_factory=GameState)
    banned_ids: list[str] = field(default_factory=list)
