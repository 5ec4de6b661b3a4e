from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Sequence, Tuple

from backend import ConnectionRegistry, RoomDirectory
from logging_config import get_logger
from schemas.rooms import (
    ConnectionView,
    ErrorNotice,
    NewMessage,
    OutboundEvent,
    RoomClosed,
    RoomRoster,
    UserPresence,
)

logger = get_logger(__name__)

ROOM_CLOSED_MESSAGE = "Room was closed by an administrator"


@dataclass(frozen=True)
class Outbound:
    recipients: Tuple[str, ...]
    event: OutboundEvent
    data: Any

    def frame(self) -> dict:
        return {"event": self.event.value, "data": self.data}


def _wire(models: Iterable) -> list:
    return [m.to_wire() for m in models]


class PresenceBroadcaster:
    """Builds notifications from the current registry and directory state.

    Never mutates either store. Every method returns the deliveries to
    make; the coordinator hands them to the hub after a transition.
    """

    def __init__(self, registry: ConnectionRegistry, directory: RoomDirectory):
        self.registry = registry
        self.directory = directory

    def _everyone(self) -> Tuple[str, ...]:
        return tuple(c.connection_id for c in self.registry.list_all())

    def online_users(self) -> Outbound:
        users = [c.view() for c in self.registry.list_all()]
        return Outbound(self._everyone(), OutboundEvent.USERS_UPDATE, _wire(users))

    def room_summaries(self) -> Outbound:
        return Outbound(self._everyone(), OutboundEvent.ROOMS_UPDATE, _wire(self.directory.all_summaries()))

    def presence(self) -> List[Outbound]:
        return [self.online_users(), self.room_summaries()]

    def room_roster(self, room_id: str) -> List[Outbound]:
        members = tuple(self.directory.members(room_id))
        if not members:
            return []
        roster = RoomRoster(room_id=room_id, users=self.directory.roster(room_id))
        return [Outbound(members, OutboundEvent.ROOM_USERS_UPDATE, roster.to_wire())]

    def user_joined(self, user: ConnectionView, room_id: str) -> List[Outbound]:
        return self._to_others(OutboundEvent.USER_JOINED, user, room_id)

    def user_left(self, user: ConnectionView, room_id: str) -> List[Outbound]:
        return self._to_others(OutboundEvent.USER_LEFT, user, room_id)

    def _to_others(self, event: OutboundEvent, user: ConnectionView, room_id: str) -> List[Outbound]:
        others = tuple(m for m in self.directory.members(room_id) if m != user.connection_id)
        if not others:
            return []
        return [Outbound(others, event, UserPresence(user=user, room_id=room_id).to_wire())]

    def room_closed(self, room_id: str, evicted: Sequence[str]) -> List[Outbound]:
        if not evicted:
            return []
        notice = RoomClosed(room_id=room_id, message=ROOM_CLOSED_MESSAGE)
        return [Outbound(tuple(evicted), OutboundEvent.ROOM_CLOSED, notice.to_wire())]

    def new_message(self, sender: ConnectionView, room_id: str, message: Any) -> List[Outbound]:
        members = tuple(self.directory.members(room_id))
        payload = NewMessage(room_id=room_id, user=sender, message=message, timestamp=datetime.now(timezone.utc))
        return [Outbound(members, OutboundEvent.NEW_MESSAGE, payload.to_wire())]

    def privileged_rooms(self, requester_id: str) -> List[Outbound]:
        details = [self.directory.full_room_view(room_id) for room_id in self.directory.room_ids()]
        return [Outbound((requester_id,), OutboundEvent.ROOMS_UPDATE, _wire(details))]

    def error(self, connection_id: str, message: str) -> List[Outbound]:
        return [Outbound((connection_id,), OutboundEvent.ERROR, ErrorNotice(message=message).to_wire())]
