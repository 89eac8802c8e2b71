"""
Event Dispatcher

Turns event frames into typed room events and hands each to its handler.
Unknown tags are ignored. A malformed payload or a failing handler is
logged and dropped; neither ever reaches the transport.
"""

import logging
from typing import Awaitable, Callable, Protocol

from pydantic import ValidationError

from .codec import Frame
from .events import (
    ChatMessage,
    MemberJoined,
    MicUpdate,
    RosterSnapshot,
    parse_event,
)

logger = logging.getLogger(__name__)


class RoomEventHandler(Protocol):
    """What the dispatcher needs from its owner."""

    async def on_roster_snapshot(self, event: RosterSnapshot) -> None: ...

    async def on_member_joined(self, event: MemberJoined) -> None: ...

    async def on_chat_message(self, event: ChatMessage) -> None: ...

    async def on_mic_update(self, event: MicUpdate) -> None: ...


class EventDispatcher:
    """Routes decoded room events by type."""

    def __init__(self, handler: RoomEventHandler):
        self._routes: dict[type, Callable[..., Awaitable[None]]] = {
            RosterSnapshot: handler.on_roster_snapshot,
            MemberJoined: handler.on_member_joined,
            ChatMessage: handler.on_chat_message,
            MicUpdate: handler.on_mic_update,
        }
        self.events_dispatched = 0
        self.events_dropped = 0

    async def dispatch(self, frame: Frame) -> None:
        try:
            event = parse_event(frame)
        except ValidationError as e:
            self.events_dropped += 1
            logger.warning(f"Malformed '{frame.channel}' payload: {e.error_count()} error(s)")
            return

        if event is None:
            logger.debug(f"Ignoring event '{frame.channel}'")
            return

        route = self._routes[type(event)]
        try:
            await route(event)
            self.events_dispatched += 1
        except Exception as e:
            self.events_dropped += 1
            logger.exception(f"Handler for '{frame.channel}' failed: {e}")
