"""
Room Connector Module

Keeps one bot account connected to one chat room, moderates members and
messages, runs the admin command grammar and answers mentions through a
completion service.

Components:
- codec: Frame decoding/encoding (control digits and 42-envelopes)
- events: Pydantic types for inbound room events
- transport: Websocket session with handshake, heartbeat and reconnect
- dispatcher: Routes decoded events to the connector
- moderation: Policy snapshot and verdicts for messages and joins
- commands: Admin grammar, mini-games and bot mentions
- encoder: Outbound protocol commands
- context / assistant: Per-user conversation history and completions
- store: Flat-file configuration and member list
- connector: Wires everything together for one room
"""

from .codec import ControlSignal, ControlType, Frame, ParseFailure, decode, encode
from .config import BotConfig, get_config, reload_config
from .events import ChatMessage, Member, MemberJoined, MicUpdate, RosterSnapshot, parse_event
from .transport import ConfigurationError, Session, SessionTransport, TransportState
from .dispatcher import EventDispatcher
from .moderation import BotStats, ModerationEngine, ModerationPolicy, Verdict, VerdictAction
from .encoder import CommandEncoder, CommandTag
from .context import ConversationContextStore
from .assistant import Assistant, split_message
from .commands import CommandDispatcher
from .store import BotProfile, ClubSettings, ConfigStore, MemberStore
from .state import ConnectorState
from .connector import Connector, get_connector

__all__ = [
    # Codec
    "ControlSignal",
    "ControlType",
    "Frame",
    "ParseFailure",
    "decode",
    "encode",
    # Config
    "BotConfig",
    "get_config",
    "reload_config",
    # Events
    "ChatMessage",
    "Member",
    "MemberJoined",
    "MicUpdate",
    "RosterSnapshot",
    "parse_event",
    # Transport
    "ConfigurationError",
    "Session",
    "SessionTransport",
    "TransportState",
    # Dispatch
    "EventDispatcher",
    "CommandDispatcher",
    "CommandEncoder",
    "CommandTag",
    # Moderation
    "BotStats",
    "ModerationEngine",
    "ModerationPolicy",
    "Verdict",
    "VerdictAction",
    # Conversation
    "ConversationContextStore",
    "Assistant",
    "split_message",
    # Storage / state
    "BotProfile",
    "ClubSettings",
    "ConfigStore",
    "MemberStore",
    "ConnectorState",
    # Connector
    "Connector",
    "get_connector",
]
