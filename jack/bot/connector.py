"""
Room Connector

Wires the transport, event dispatcher, moderation engine and command
dispatcher together for one room, and exposes the operations the control
API needs (start/stop/reload/say/member removal/status).

Frames are handled strictly one at a time by the transport's receive
loop. Only mention replies run outside it, as detached tasks.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Awaitable, Coroutine, Optional

from .assistant import Assistant
from .commands import CommandDispatcher
from .config import BotConfig, get_config
from .context import ConversationContextStore
from .dispatcher import EventDispatcher
from .encoder import CommandEncoder
from .events import ChatMessage, Member, MemberJoined, MicUpdate, RosterSnapshot
from .moderation import ModerationEngine, VerdictAction
from .providers import CompletionProvider
from .state import ConnectorState
from .store import BotProfile, ConfigStore, MemberStore
from .transport import SessionTransport, TransportState

logger = logging.getLogger(__name__)

REASON_DASHBOARD = "removed from dashboard"


class Connector:
    """
    One bot account connected to one room.

    Owns all mutable room state (ConnectorState), the current moderation
    policy snapshot and the admin list. Handlers read them through self;
    nothing lives at module level except the get_connector() singleton.
    """

    def __init__(
        self,
        config: BotConfig,
        provider: Optional[CompletionProvider] = None,
        connect: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        """
        Initialize the connector

        Args:
            config: Connector configuration
            provider: Completion provider, built from config when omitted
            connect: Websocket factory passed to the transport
        """
        self.config = config
        self.config_store = ConfigStore(config.data_dir)
        self.member_store = MemberStore(config.data_dir)

        self.state = ConnectorState()
        self.engine = ModerationEngine()
        self.profile = BotProfile()
        self.admins: tuple[str, ...] = ()
        self.loyal_members: frozenset[str] = frozenset()
        self.config_loaded = False

        self.context = ConversationContextStore(
            tone=self.profile.bot_tone,
            max_users=config.context_max_users,
            max_turns=config.history_turns,
        )
        self.assistant = Assistant(
            provider if provider is not None else config.create_provider(),
            self.context,
            max_tokens=config.completion_max_tokens,
            temperature=config.completion_temperature,
        )

        self.events = EventDispatcher(self)
        self.transport = SessionTransport(
            config,
            on_frame=self.events.dispatch,
            on_state_change=self._on_state_change,
            connect=connect,
        )
        self.encoder = CommandEncoder(self.transport)
        self.commands = CommandDispatcher(self)

        self._tasks: set[asyncio.Task] = set()

    # ==================== Identity ====================

    @property
    def bot_uid(self) -> str:
        return self.config.account_id or ""

    def is_admin(self, uid: str, name: Optional[str] = None) -> bool:
        admins = {a.lower() for a in self.admins}
        return uid.lower() in admins or bool(name and name.lower() in admins)

    def is_loyal(self, uid: str, name: Optional[str] = None) -> bool:
        loyal = {m.lower() for m in self.loyal_members}
        return uid.lower() in loyal or bool(name and name.lower() in loyal)

    @property
    def uptime_seconds(self) -> float:
        session = self.transport.session
        if session is None or not session.authenticated:
            return 0.0
        return session.uptime_seconds

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """
        Load configuration and start connecting.

        Raises:
            ConfigurationError: credentials are missing
        """
        self.transport.validate()
        await self.reload()
        await self.transport.start()

    async def stop(self) -> None:
        await self.transport.stop()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def close(self) -> None:
        await self.stop()
        await self.assistant.close()

    async def reload(self) -> None:
        """Re-read every configuration file and swap in fresh snapshots."""
        loop = asyncio.get_running_loop()
        store = self.config_store

        settings = await loop.run_in_executor(None, store.load_settings)
        profile = await loop.run_in_executor(None, store.load_bot_profile)
        policy = await loop.run_in_executor(None, store.build_policy, settings)
        admins = await loop.run_in_executor(None, store.load_list, "admins")
        loyal = await loop.run_in_executor(None, store.load_list, "loyal-members")

        self.engine.update_policy(policy)
        self.admins = tuple(admins)
        self.loyal_members = frozenset(loyal)

        # set_tone clears histories on a tone change; a rename clears them too
        self.context.set_tone(profile.bot_tone)
        if profile.bot_name != self.profile.bot_name:
            self.context.clear()
        self.profile = profile
        self.config_loaded = True

        logger.info(
            f"Configuration loaded: {len(self.admins)} admins, "
            f"{len(self.loyal_members)} loyal members, bot {profile.bot_name} ({profile.bot_tone})"
        )

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """Run coro detached from the frame loop."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task failed: {exc!r}")

    async def _on_state_change(self, state: TransportState) -> None:
        if state == TransportState.CONNECTED:
            await self._drain_pending_kicks()

    # ==================== Kicks ====================

    async def kick(self, uid: str, reason: str, ban: bool = False) -> bool:
        """Queue a removal and send it now if connected. False if already queued."""
        if not self.state.pending_kicks.enqueue(uid, reason, ban):
            return False
        await self._drain_pending_kicks()
        return True

    async def _drain_pending_kicks(self) -> None:
        pending = self.state.pending_kicks
        while self.transport.is_connected:
            kick = pending.pop()
            if kick is None:
                return
            if not await self.encoder.kick_user(kick.uid, kick.reason, ban=kick.ban):
                pending.requeue(kick)
                return

            self.engine.stats.users_kicked += 1
            self.state.roster.remove(kick.uid)
            if kick.ban and kick.uid not in self.state.banned_ids:
                self.state.banned_ids.append(kick.uid)

    # ==================== Room events ====================

    async def on_roster_snapshot(self, event: RosterSnapshot) -> None:
        self.state.roster.replace(event.members)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.member_store.save, self.state.roster.members)

    async def on_member_joined(self, event: MemberJoined) -> None:
        if event.uid == self.bot_uid:
            return

        # A rejoin may be kicked again
        self.state.pending_kicks.forget(event.uid)

        verdict = self.engine.evaluate_join(event)
        if not verdict.allowed:
            await self.kick(event.uid, verdict.reason, ban=verdict.action == VerdictAction.BAN)
            return

        self.state.roster.upsert(event.as_member())
        await self.encoder.send_message(self.profile.format_welcome(event.name))

    async def on_chat_message(self, event: ChatMessage) -> None:
        if event.uid == self.bot_uid:
            return

        if not self.is_admin(event.uid, event.name):
            verdict = self.engine.evaluate_message(event.text, event.uid, event.name)
            if not verdict.allowed:
                await self.kick(event.uid, verdict.reason, ban=verdict.action == VerdictAction.BAN)
                return

        await self.commands.handle(event.text, event.uid, event.name)

    async def on_mic_update(self, event: MicUpdate) -> None:
        self.state.mics.replace(event.slots)

    # ==================== Control operations ====================

    async def say(self, message: str) -> bool:
        return await self.encoder.send_message(message)

    async def add_spam_word(self, word: str) -> bool:
        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, self.config_store.append_spam_word, word):
            return False
        self.engine.update_policy(self.engine.policy.with_spam_word(word))
        return True

    async def remove_member(self, uid: str) -> Optional[Member]:
        """Drop a member from the member file and kick them from the room."""
        loop = asyncio.get_running_loop()
        removed = await loop.run_in_executor(None, self.member_store.remove, uid)
        if removed is None:
            return None
        self.state.roster.remove(uid)
        await self.kick(uid, REASON_DASHBOARD)
        return removed

    async def bulk_remove(self, level: int, count: int) -> list[str]:
        """Drop up to count members at level from the member file and kick them."""
        loop = asyncio.get_running_loop()
        removed = await loop.run_in_executor(None, self.member_store.bulk_remove, level, count)
        for uid in removed:
            self.state.roster.remove(uid)
            await self.kick(uid, REASON_DASHBOARD)
        if removed:
            logger.info(f"Bulk removed {len(removed)} members at level {level}")
        return removed

    def get_status(self) -> dict:
        """Get connector status"""
        transport = self.transport
        policy = self.engine.policy
        return {
            "success": True,
            "connected": transport.is_connected,
            "connecting": transport.is_connecting,
            "state": transport.state.value,
            "clubCode": self.config.room_id,
            "clubName": self.config.room_name,
            "uptime": int(self.uptime_seconds),
            "stats": self.engine.stats.to_dict(),
            "configLoaded": {
                "loaded": self.config_loaded,
                "admins": len(self.admins),
                "spamWords": len(policy.spam_words),
                "bannedPatterns": len(policy.banned_patterns),
                "exemptions": len(policy.exemptions),
                "loyalMembers": len(self.loyal_members),
            },
            "pendingKicks": len(self.state.pending_kicks),
            "members": len(self.state.roster),
            "transport": transport.get_status(),
        }


# Singleton connector instance
_connector: Optional[Connector] = None


def get_connector() -> Connector:
    """Get the global connector, built from the global config if needed."""
    global _connector
    if _connector is None:
        _connector = Connector(get_config())
    return _connector
