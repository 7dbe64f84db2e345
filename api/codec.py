"""
Wire format of the /ws endpoint.

Every frame is a JSON object with a "type" field. Inbound kinds are parsed into
the request models below; anything that does not validate is InvalidEvent.
Kind-specific fields are optional here so the relay can answer with the
precise validation error ("Room code is required", ...) instead of a generic one.
"""

from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel


def utcnow_iso() -> str:
    return format_timestamp(datetime.now(timezone.utc))


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 in UTC with milliseconds, e.g. 2024-05-01T12:00:00.000Z"""
    if value is None:
        return None
    # SQLite hands datetimes back without tzinfo; they were written as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class InvalidEvent(ValueError):
    pass


class Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Inbound

class JoinRequest(Event):
    type: Literal["join"]
    room: Optional[str] = None
    user_id: Optional[str] = None


class LeaveRequest(Event):
    type: Literal["leave"]
    room: Optional[str] = None
    user_id: Optional[str] = None


class MessageRequest(Event):
    type: Literal["message"]
    room: Optional[str] = None
    user_id: Optional[str] = None
    message: Optional[str] = None
    timestamp: Optional[str] = None


class CreateRoomRequest(Event):
    type: Literal["create_room"]
    user_id: Optional[str] = None
    room_name: Optional[str] = None
    message: Optional[str] = None  # description


InboundEvent = Annotated[
    Union[JoinRequest, LeaveRequest, MessageRequest, CreateRoomRequest],
    Field(discriminator="type"),
]

_inbound = TypeAdapter(InboundEvent)


def decode(raw: Union[str, bytes]) -> InboundEvent:
    try:
        return _inbound.validate_json(raw)
    except ValidationError as e:
        raise InvalidEvent(f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}") from e


# Outbound

class JoinAck(Event):
    type: Literal["join"] = "join"
    room_id: int
    room_name: str
    room_code: str
    user_count: int
    timestamp: str = Field(default_factory=utcnow_iso)


class JoinNotice(Event):
    type: Literal["join"] = "join"
    room_code: str
    user_id: Optional[str] = None
    message: str
    user_count: int
    timestamp: str = Field(default_factory=utcnow_iso)


class LeaveNotice(Event):
    type: Literal["leave"] = "leave"
    room_code: str
    user_id: Optional[str] = None
    message: str
    user_count: int
    timestamp: str = Field(default_factory=utcnow_iso)


class ChatMessage(Event):
    type: Literal["message", "system"] = "message"
    room_code: str
    user_id: Optional[str] = None
    message: str
    timestamp: Optional[str] = Field(default_factory=utcnow_iso)


class CreateRoomAck(Event):
    type: Literal["create_room"] = "create_room"
    room_id: int
    room_name: str
    room_code: str
    message: Optional[str] = None
    user_count: int
    timestamp: str = Field(default_factory=utcnow_iso)


class ErrorEvent(Event):
    type: Literal["error"] = "error"
    message: str


OutboundEvent = Union[JoinAck, JoinNotice, LeaveNotice, ChatMessage, CreateRoomAck, ErrorEvent]


def encode(event: OutboundEvent) -> str:
    return event.model_dump_json(by_alias=True, exclude_none=True)
