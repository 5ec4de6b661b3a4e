from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class InboundEvent(str, Enum):
    JOIN_ROOM = "join-room"
    LEAVE_ROOM = "leave-room"
    GET_ROOMS = "get-rooms"
    CLOSE_ROOM = "close-room"
    SEND_MESSAGE = "send-message"


class OutboundEvent(str, Enum):
    USERS_UPDATE = "users-update"
    ROOMS_UPDATE = "rooms-update"
    ROOM_USERS_UPDATE = "room-users-update"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    ROOM_CLOSED = "room-closed"
    NEW_MESSAGE = "new-message"
    ERROR = "error"


class RoomStatus(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"


# Handshake / identity

class Identity(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_id: Optional[str] = None
    username: Optional[str] = None
    is_admin: bool = False


# Inbound payloads

class Frame(BaseModel):
    event: str
    data: Any = None


class JoinRoomPayload(CamelModel):
    room_id: str = Field(min_length=1)


class LeaveRoomPayload(CamelModel):
    room_id: str = Field(min_length=1)


class CloseRoomPayload(CamelModel):
    room_id: str = Field(min_length=1)


class SendMessagePayload(CamelModel):
    room_id: str = Field(min_length=1)
    message: Any


# Outbound views

class ConnectionView(CamelModel):
    id: str
    username: str
    is_admin: bool
    connection_id: str
    room_id: Optional[str] = None
    joined_at: datetime


class RoomSummary(CamelModel):
    id: str
    member_count: int
    created_at: datetime
    status: RoomStatus


class RoomDetails(RoomSummary):
    users: list[ConnectionView]


class RoomRoster(CamelModel):
    room_id: str
    users: list[ConnectionView]


class UserPresence(CamelModel):
    user: ConnectionView
    room_id: str


class RoomClosed(CamelModel):
    room_id: str
    message: str


class NewMessage(CamelModel):
    room_id: str
    user: ConnectionView
    message: Any
    timestamp: datetime


class ErrorNotice(CamelModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    connections: int
    rooms: int
