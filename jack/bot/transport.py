"""
Session Transport

Owns the websocket to the room platform:
- Connect handshake (probe/upgrade) and authentication frame
- Heartbeat replies (every "2" ping is answered with a "3" pong)
- Disconnect detection and reconnection after a fixed delay, forever

State machine:

    IDLE -> CONNECTING -> AUTHENTICATING -> CONNECTED -> DISCONNECTED
                 ^                                            |
                 +-------------- after reconnect_delay -------+

A single supervisor task makes every connection attempt, so there is
never more than one attempt in flight.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import WebSocketException

from .codec import (
    ControlSignal,
    ControlType,
    Frame,
    ParseFailure,
    PONG_FRAME,
    PROBE_FRAME,
    UPGRADE_FRAME,
    decode,
    encode,
)
from .config import BotConfig

logger = logging.getLogger(__name__)

AUTH_CHANNEL = "authenticate"
AUTH_ACK_CHANNEL = "authenticated"

# Errors that end a session and lead to a reconnect
TRANSIENT_ERRORS = (
    WebSocketException,
    OSError,
    asyncio.TimeoutError,
)


class ConfigurationError(Exception):
    """Required connection settings are missing. Never retried."""


class TransportState(str, Enum):
    """Connection lifecycle states"""
    IDLE = "idle"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass
class Session:
    """One physical connection. A reconnect always builds a new Session."""
    websocket: Any
    room_id: str
    room_name: str
    started_at: float = field(default_factory=time.time)
    authenticated: bool = False
    last_heartbeat: Optional[float] = None
    _sequence: int = 0

    @property
    def sequence(self) -> int:
        """Last sequence number handed out."""
        return self._sequence

    def next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self.started_at


FrameHandler = Callable[[Frame], Awaitable[None]]
StateCallback = Callable[[TransportState], Awaitable[None]]


class SessionTransport:
    """
    Persistent connection to one room.

    Handles:
    - Credential validation (fatal, no retry)
    - Handshake and authentication
    - Ordered delivery of event frames to the frame handler
    - Reconnection with a fixed delay
    """

    def __init__(
        self,
        config: BotConfig,
        on_frame: FrameHandler,
        on_state_change: Optional[StateCallback] = None,
        connect: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        """
        Initialize the transport

        Args:
            config: Connector configuration (credentials, delays)
            on_frame: Awaited for every event frame, in arrival order
            on_state_change: Awaited after every state transition
            connect: Websocket factory, websockets.connect by default
        """
        self.config = config
        self.on_frame = on_frame
        self.on_state_change = on_state_change
        self._connect = connect or websockets.connect

        self._state = TransportState.IDLE
        self._session: Optional[Session] = None
        self._supervisor: Optional[asyncio.Task] = None
        self._running = False

        self.connect_attempts = 0
        self.last_error: Optional[str] = None
        self.state_history: list[TransportState] = []

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def is_running(self) -> bool:
        """Whether the supervisor is alive (connected or retrying)"""
        return self._supervisor is not None and not self._supervisor.done()

    @property
    def is_connected(self) -> bool:
        return self._state == TransportState.CONNECTED and self._session is not None

    @property
    def is_connecting(self) -> bool:
        return self._state in (TransportState.CONNECTING, TransportState.AUTHENTICATING)

    def validate(self) -> None:
        """Raise ConfigurationError if any credential is missing."""
        missing = self.config.missing_credentials()
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    async def start(self) -> None:
        """
        Start the supervisor.

        Raises:
            ConfigurationError: credentials are missing; nothing is started
        """
        try:
            self.validate()
        except ConfigurationError as e:
            self.last_error = str(e)
            logger.error(f"Cannot start connector: {e}")
            raise

        if self.is_running:
            logger.info(f"Transport already {self._state.value}, skipping start")
            return

        self._running = True
        self._supervisor = asyncio.create_task(self._supervise())

    async def stop(self) -> None:
        """Close the session and stop reconnecting."""
        self._running = False
        task, self._supervisor = self._supervisor, None

        await self._close_session()

        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._set_state(TransportState.IDLE)
        logger.info("Transport stopped")

    async def restart(self) -> None:
        """Drop the current session; the supervisor reconnects after the delay."""
        if not self._running:
            return
        logger.info("Session restart requested")
        await self._close_session()

    # ==================== Sending ====================

    async def send_event(self, channel: str, payload: Any) -> bool:
        """
        Send an event frame on the active session.

        Returns False without sending when not CONNECTED or when the
        socket write fails.
        """
        session = self._session
        if session is None or self._state != TransportState.CONNECTED:
            logger.debug(f"Not connected, dropping '{channel}'")
            return False
        return await self._send_raw(session, encode(channel, payload))

    async def _send_raw(self, session: Session, frame: str) -> bool:
        try:
            await session.websocket.send(frame)
            return True
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Failed to send frame: {e}")
            return False

    # ==================== Supervisor ====================

    async def _supervise(self) -> None:
        """Connect, run the session, wait, repeat while running."""
        while self._running:
            try:
                await self._run_session()
                self.last_error = None
            except asyncio.CancelledError:
                raise
            except TRANSIENT_ERRORS as e:
                self.last_error = f"{type(e).__name__}: {e}"
                logger.warning(f"Connection lost: {self.last_error}")
            except Exception as e:
                self.last_error = f"{type(e).__name__}: {e}"
                logger.error(f"Unexpected session error: {self.last_error}")

            if not self._running:
                break

            await self._set_state(TransportState.DISCONNECTED)
            logger.info(f"Reconnecting in {self.config.reconnect_delay}s...")
            await asyncio.sleep(self.config.reconnect_delay)

    async def _run_session(self) -> None:
        await self._set_state(TransportState.CONNECTING)
        self.connect_attempts += 1
        logger.info(f"Connecting to room {self.config.room_id} (attempt {self.connect_attempts})")

        websocket = await self._connect(self.config.ws_url, ping_interval=None)
        session = Session(
            websocket=websocket,
            room_id=self.config.room_id,
            room_name=self.config.room_name,
        )
        self._session = session

        try:
            await self._set_state(TransportState.AUTHENTICATING)
            await websocket.send(PROBE_FRAME)
            await websocket.send(UPGRADE_FRAME)
            await websocket.send(encode(AUTH_CHANNEL, self._auth_payload()))

            # The platform never acknowledges auth unless asked to
            if not self.config.require_auth_ack:
                await self._mark_connected(session)

            if self.config.max_session_seconds:
                try:
                    await asyncio.wait_for(
                        self._receive(session),
                        timeout=self.config.max_session_seconds,
                    )
                except asyncio.TimeoutError:
                    logger.info("Session lifetime reached, recycling connection")
            else:
                await self._receive(session)

            logger.warning("Connection closed by server")
        finally:
            if self._session is session:
                self._session = None
            await self._close_websocket(websocket)

    def _auth_payload(self) -> dict:
        return {
            "account_id": self.config.account_id,
            "endpoint": self.config.endpoint,
            "key": self.config.key,
            "room_id": self.config.room_id,
            "ts": int(time.time() * 1000),
        }

    async def _mark_connected(self, session: Session) -> None:
        session.authenticated = True
        session.started_at = time.time()
        await self._set_state(TransportState.CONNECTED)
        logger.info(f"Connected to {session.room_name} ({session.room_id})")

    async def _receive(self, session: Session) -> None:
        """Process frames one at a time, in arrival order."""
        async for raw in session.websocket:
            decoded = decode(raw)

            if isinstance(decoded, ParseFailure):
                logger.warning(f"Discarding malformed frame ({decoded.reason}): {decoded.raw[:100]}")
                continue

            if isinstance(decoded, ControlSignal):
                await self._handle_control(session, decoded)
                continue

            if (
                decoded.channel == AUTH_ACK_CHANNEL
                and self._state == TransportState.AUTHENTICATING
            ):
                await self._mark_connected(session)
                continue

            try:
                await self.on_frame(decoded)
            except Exception as e:
                logger.exception(f"Frame handler failed for '{decoded.channel}': {e}")

    async def _handle_control(self, session: Session, signal: ControlSignal) -> None:
        if signal.type == ControlType.PING and not signal.probe:
            session.last_heartbeat = time.time()
            await self._send_raw(session, PONG_FRAME)

        elif signal.type == ControlType.OPEN:
            logger.debug(f"Server open: {signal.data}")

        elif signal.type == ControlType.DISCONNECT:
            logger.warning("Server closed the namespace")
            await self._close_websocket(session.websocket)

        elif signal.type == ControlType.ERROR:
            logger.warning(f"Server namespace error: {signal.data}")

    # ==================== Teardown ====================

    async def _close_session(self) -> None:
        session = self._session
        if session is not None:
            await self._close_websocket(session.websocket)

    async def _close_websocket(self, websocket: Any) -> None:
        try:
            await websocket.close()
        except TRANSIENT_ERRORS as e:
            logger.debug(f"Error closing websocket: {e}")

    async def _set_state(self, state: TransportState) -> None:
        """Update state and notify callback"""
        old_state = self._state
        if old_state == state:
            return
        self._state = state
        self.state_history.append(state)

        logger.info(f"Transport state: {old_state.value} -> {state.value}")

        if self.on_state_change:
            try:
                await self.on_state_change(state)
            except Exception as e:
                logger.error(f"Error in state change callback: {e}")

    def get_status(self) -> dict:
        """Get transport status"""
        session = self._session
        return {
            "state": self._state.value,
            "connected": self.is_connected,
            "connecting": self.is_connecting,
            "running": self.is_running,
            "connect_attempts": self.connect_attempts,
            "last_error": self.last_error,
            "uptime_seconds": round(session.uptime_seconds, 1) if session and session.authenticated else 0,
            "last_heartbeat_age": (
                round(time.time() - session.last_heartbeat, 1)
                if session and session.last_heartbeat else None
            ),
        }
