"""
Frame Codec

Text framing used by the room platform. Every frame is a UTF-8 string:

  0{json}              open (server handshake data)
  2 / 3                ping / pong heartbeat
  2probe / 3probe      transport probe
  5                    upgrade
  6                    noop
  40 / 41 / 44         namespace connect / disconnect / error, each
                       optionally followed by a json object
  42[tag, payload]     event envelope

Outbound events use the exact same 42-envelope, so the wire format is
symmetric for inbound and outbound traffic.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

EVENT_PREFIX = "42"
PROBE = "probe"


class ControlType(str, Enum):
    """Control frame kinds."""
    OPEN = "0"
    PING = "2"
    PONG = "3"
    UPGRADE = "5"
    NOOP = "6"
    CONNECT = "40"
    DISCONNECT = "41"
    ERROR = "44"


# Control frames the transport sends
PING_FRAME = ControlType.PING.value
PONG_FRAME = ControlType.PONG.value
PROBE_FRAME = ControlType.PING.value + PROBE
UPGRADE_FRAME = ControlType.UPGRADE.value

NAMESPACE_TYPES = (ControlType.CONNECT.value, ControlType.DISCONNECT.value, ControlType.ERROR.value)


@dataclass(frozen=True)
class Frame:
    """A decoded event envelope."""
    channel: str
    payload: Any = None


@dataclass(frozen=True)
class ControlSignal:
    """A decoded control frame."""
    type: ControlType
    probe: bool = False
    data: Optional[dict] = None  # OPEN and namespace frames only


@dataclass(frozen=True)
class ParseFailure:
    """A frame that could not be decoded. Callers log and discard it."""
    raw: str
    reason: str


Decoded = Union[Frame, ControlSignal, ParseFailure]


def decode(raw: Union[bytes, str]) -> Decoded:
    """
    Decode one raw frame.

    Never raises: anything malformed comes back as a ParseFailure.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            return ParseFailure(raw=repr(raw[:80]), reason="invalid utf-8")

    if not raw:
        return ParseFailure(raw=raw, reason="empty frame")

    if raw.startswith(EVENT_PREFIX):
        return _decode_event(raw)

    if raw[:2] in NAMESPACE_TYPES:
        return _decode_with_data(raw, ControlType(raw[:2]), raw[2:])

    head, rest = raw[0], raw[1:]

    if head == ControlType.OPEN.value:
        return _decode_with_data(raw, ControlType.OPEN, rest)

    if head in (ControlType.PING.value, ControlType.PONG.value):
        if rest == "":
            return ControlSignal(type=ControlType(head))
        if rest == PROBE:
            return ControlSignal(type=ControlType(head), probe=True)
        return ParseFailure(raw=raw, reason="unexpected heartbeat suffix")

    if raw in (ControlType.UPGRADE.value, ControlType.NOOP.value):
        return ControlSignal(type=ControlType(raw))

    return ParseFailure(raw=raw, reason="unknown frame prefix")


def _decode_with_data(raw: str, kind: ControlType, body: str) -> Decoded:
    if not body:
        return ControlSignal(type=kind)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        return ParseFailure(raw=raw, reason=f"bad {kind.name.lower()} payload: {e}")
    if not isinstance(data, dict):
        return ParseFailure(raw=raw, reason=f"{kind.name.lower()} payload is not an object")
    return ControlSignal(type=kind, data=data)


def _decode_event(raw: str) -> Decoded:
    body = raw[len(EVENT_PREFIX):]
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        return ParseFailure(raw=raw, reason=f"bad event json: {e}")

    if not isinstance(data, list) or not data:
        return ParseFailure(raw=raw, reason="event body is not a non-empty array")

    tag = data[0]
    if not isinstance(tag, str) or not tag:
        return ParseFailure(raw=raw, reason="event tag is not a string")

    payload = data[1] if len(data) > 1 else None
    return Frame(channel=tag, payload=payload)


def encode(channel: str, payload: Any = None) -> str:
    """Build a 42-envelope for an outbound event."""
    if not channel:
        raise ValueError("channel must be a non-empty string")
    body = json.dumps([channel, payload], ensure_ascii=False, separators=(",", ":"))
    return EVENT_PREFIX + body
