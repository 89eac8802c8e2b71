"""
Outbound Command Encoder

One coroutine per command the bot can issue. Every command is the same
42-envelope with a per-session sequence number and an id derived from
the current timestamp and that sequence number.

Callers never check connection state: when the transport is not
CONNECTED, every method returns False and nothing is sent.
"""

import logging
import time
from enum import Enum
from typing import Optional

from .transport import SessionTransport

logger = logging.getLogger(__name__)


class CommandTag(str, Enum):
    """Outbound event tags"""
    MESSAGE = "send_message"
    KICK = "kick_member"
    UNBAN = "unban_member"
    TAKE_MIC = "take_mic"
    LEAVE_MIC = "leave_mic"
    JOIN_MIC = "join_mic"
    LOCK_MIC = "lock_mic"
    UNLOCK_MIC = "unlock_mic"
    CHANGE_NAME = "change_name"
    INVITE = "invite_member"


class CommandEncoder:
    """Builds and sends outbound protocol commands."""

    def __init__(self, transport: SessionTransport):
        self.transport = transport

    async def _emit(self, tag: CommandTag, body: dict) -> bool:
        session = self.transport.session
        if session is None or not self.transport.is_connected:
            logger.debug(f"Not connected, dropping {tag.value}")
            return False

        seq = session.next_sequence()
        payload = {
            **body,
            "room_id": session.room_id,
            "seq": seq,
            "id": f"{int(time.time() * 1000)}-{seq}",
        }
        return await self.transport.send_event(tag.value, payload)

    async def send_message(self, text: str) -> bool:
        return await self._emit(CommandTag.MESSAGE, {"text": text})

    async def kick_user(self, uid: str, reason: str, ban: bool = False) -> bool:
        logger.info(f"{'Banning' if ban else 'Kicking'} {uid}: {reason}")
        return await self._emit(CommandTag.KICK, {"uid": uid, "reason": reason, "ban": ban})

    async def unban_user(self, uid: str) -> bool:
        return await self._emit(CommandTag.UNBAN, {"uid": uid})

    async def take_mic(self, index: Optional[int] = None) -> bool:
        body = {} if index is None else {"index": index}
        return await self._emit(CommandTag.TAKE_MIC, body)

    async def leave_mic(self, index: Optional[int] = None) -> bool:
        body = {} if index is None else {"index": index}
        return await self._emit(CommandTag.LEAVE_MIC, body)

    async def join_mic(self, index: int) -> bool:
        return await self._emit(CommandTag.JOIN_MIC, {"index": index})

    async def lock_mic(self, index: int) -> bool:
        return await self._emit(CommandTag.LOCK_MIC, {"index": index})

    async def unlock_mic(self, index: int) -> bool:
        return await self._emit(CommandTag.UNLOCK_MIC, {"index": index})

    async def change_name(self, name: str) -> bool:
        return await self._emit(CommandTag.CHANGE_NAME, {"name": name})

    async def invite_member(self, uid: str) -> bool:
        return await self._emit(CommandTag.INVITE, {"uid": uid})
