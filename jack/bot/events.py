"""
Room Event Models

Pydantic models for the inbound events the room platform pushes.
Payloads are decoded into one of these at the codec boundary so that
handlers never probe raw dicts.

Field names on the wire are the platform's short keys (UID, NM, LVL, ...).
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .codec import Frame

MIC_SLOTS = 10


class EventTag(str, Enum):
    """Inbound event tags the connector understands."""
    MEMBER_LIST = "member_list"
    MEMBER_JOINED = "member_joined"
    CHAT_MESSAGE = "chat_message"
    MIC_UPDATE = "mic_update"
    AUTHENTICATED = "authenticated"


class Member(BaseModel):
    """A room member as stored in the roster and the member store."""
    model_config = ConfigDict(populate_by_name=True)

    uid: str = Field(alias="UID")
    name: str = Field(default="", alias="NM")
    level: int = Field(default=0, alias="LVL")

    @field_validator("uid", mode="before")
    @classmethod
    def _coerce_uid(cls, value: Any) -> str:
        # The platform sends numeric ids for some accounts
        return str(value)

    def to_store(self) -> dict:
        """Serialize with the platform's short keys."""
        return self.model_dump(by_alias=True)


class RosterSnapshot(BaseModel):
    """Full member list. Replaces the roster wholesale."""
    members: list[Member] = Field(default_factory=list, alias="ML")


class MemberJoined(BaseModel):
    """A member entered the room."""
    model_config = ConfigDict(populate_by_name=True)

    uid: str = Field(alias="UID")
    name: str = Field(default="", alias="NM")
    level: int = Field(default=0, alias="LVL")
    avatar: Optional[str] = Field(default=None, alias="AV")
    guest: bool = Field(default=False, alias="GS")

    @field_validator("uid", "avatar", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> Any:
        return None if value is None else str(value)

    def as_member(self) -> Member:
        return Member(uid=self.uid, name=self.name, level=self.level)


class ChatMessage(BaseModel):
    """A chat line posted in the room."""
    model_config = ConfigDict(populate_by_name=True)

    uid: str = Field(alias="UID")
    name: str = Field(default="", alias="NM")
    text: str = Field(alias="MSG")

    @field_validator("uid", mode="before")
    @classmethod
    def _coerce_uid(cls, value: Any) -> str:
        return str(value)


class MicUpdate(BaseModel):
    """Occupants of every mic slot."""
    slots: list[Optional[str]] = Field(alias="MICS")

    @field_validator("slots", mode="before")
    @classmethod
    def _normalize_slots(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        slots = [None if v in (None, "", 0) else str(v) for v in value[:MIC_SLOTS]]
        return slots + [None] * (MIC_SLOTS - len(slots))


RoomEvent = Union[RosterSnapshot, MemberJoined, ChatMessage, MicUpdate]

EVENT_MODELS: dict[str, type[BaseModel]] = {
    EventTag.MEMBER_LIST.value: RosterSnapshot,
    EventTag.MEMBER_JOINED.value: MemberJoined,
    EventTag.CHAT_MESSAGE.value: ChatMessage,
    EventTag.MIC_UPDATE.value: MicUpdate,
}


def parse_event(frame: Frame) -> Optional[RoomEvent]:
    """
    Decode a frame into a typed event.

    Returns None for tags the connector does not handle. Raises
    pydantic.ValidationError when a known tag carries a malformed payload.
    """
    model = EVENT_MODELS.get(frame.channel)
    if model is None:
        return None

    payload = frame.payload
    # Some platform builds wrap the body in a PY envelope
    if isinstance(payload, dict) and isinstance(payload.get("PY"), dict):
        payload = payload["PY"]

    return model.model_validate(payload)
