from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from errors import MissingIdentity, RoomNotFound
from logging_config import get_logger
from schemas.rooms import ConnectionView, Identity, RoomDetails, RoomStatus, RoomSummary

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Connection:
    connection_id: str
    identity: Identity
    current_room: Optional[str] = None
    joined_at: datetime = field(default_factory=_utcnow)

    def view(self) -> ConnectionView:
        return ConnectionView(
            id=self.identity.user_id,
            username=self.identity.username,
            is_admin=self.identity.is_admin,
            connection_id=self.connection_id,
            room_id=self.current_room,
            joined_at=self.joined_at,
        )


@dataclass
class Room:
    room_id: str
    # connection_id -> time of joining; dict keeps roster order stable
    members: Dict[str, datetime] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)


class ConnectionRegistry:
    """Every live connection keyed by connection id."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}

    def register(self, connection_id: str, identity: Identity) -> Connection:
        if not identity.user_id or not identity.username:
            logger.warning(f"Rejecting connection {connection_id}: identity claim is missing userId or username")
            raise MissingIdentity(f"Connection {connection_id} did not supply userId and username")
        connection = Connection(connection_id=connection_id, identity=identity)
        self._connections[connection_id] = connection
        logger.info(
            f"Registered connection {connection_id} for user {identity.username} "
            f"(id={identity.user_id}, admin={identity.is_admin})"
        )
        return connection

    def unregister(self, connection_id: str) -> None:
        removed = self._connections.pop(connection_id, None)
        if removed is None:
            logger.debug(f"Connection {connection_id} already unregistered")
            return
        logger.info(f"Unregistered connection {connection_id} ({removed.identity.username})")

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def list_all(self) -> List[Connection]:
        return list(self._connections.values())

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections


class RoomDirectory:
    """Rooms and their member sets.

    All membership edits go through this class so a connection's
    ``current_room`` and the room's member set always agree. Rooms are
    created on first join and deleted as soon as they become empty.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        self._rooms: Dict[str, Room] = {}

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def room_ids(self) -> List[str]:
        return list(self._rooms.keys())

    def members(self, room_id: str) -> List[str]:
        room = self._rooms.get(room_id)
        return list(room.members) if room else []

    def join_room(self, connection_id: str, room_id: str) -> Optional[str]:
        """Move a connection into ``room_id``.

        Returns the id of the room that was implicitly left, if any.
        """
        connection = self._require_connection(connection_id)
        previous = connection.current_room
        if previous == room_id and room_id in self._rooms:
            logger.debug(f"Connection {connection_id} is already in room {room_id}")
            return None

        if previous is not None:
            self._remove_member(connection, previous)

        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id=room_id)
            self._rooms[room_id] = room
            logger.info(f"Created room {room_id}")
        room.members[connection_id] = _utcnow()
        connection.current_room = room_id
        logger.debug(f"Connection {connection_id} joined room {room_id} ({len(room.members)} members)")
        return previous

    def leave_room(self, connection_id: str, room_id: str) -> bool:
        """Remove a connection from ``room_id``. Returns False when it was not a member."""
        connection = self.registry.get(connection_id)
        room = self._rooms.get(room_id)
        if connection is None or room is None or connection_id not in room.members:
            logger.debug(f"Leave ignored: connection {connection_id} is not a member of room {room_id}")
            return False
        self._remove_member(connection, room_id)
        return True

    def close_room(self, room_id: str) -> List[str]:
        room = self._rooms.pop(room_id, None)
        if room is None:
            logger.debug(f"Close ignored: room {room_id} does not exist")
            return []
        evicted = list(room.members)
        for connection_id in evicted:
            connection = self.registry.get(connection_id)
            if connection is not None and connection.current_room == room_id:
                connection.current_room = None
        logger.info(f"Closed room {room_id}, evicted {len(evicted)} connections")
        return evicted

    def evict(self, connection_id: str) -> Optional[str]:
        """Drop a connection from whatever room holds it.

        Sweeps every room rather than trusting ``current_room`` alone, so a
        disconnect always leaves no dangling membership behind.
        """
        left = None
        connection = self.registry.get(connection_id)
        if connection is not None and connection.current_room is not None:
            left = connection.current_room
            self._remove_member(connection, left)
        for room_id in [r for r, room in self._rooms.items() if connection_id in room.members]:
            logger.warning(f"Removing stale membership of {connection_id} in room {room_id}")
            self._drop(room_id, connection_id)
            left = left or room_id
        return left

    def room_summary(self, room_id: str) -> RoomSummary:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        count = len(room.members)
        return RoomSummary(
            id=room.room_id,
            member_count=count,
            created_at=room.created_at,
            status=RoomStatus.ACTIVE if count > 0 else RoomStatus.IDLE,
        )

    def all_summaries(self) -> List[RoomSummary]:
        return [self.room_summary(room_id) for room_id in self._rooms]

    def roster(self, room_id: str) -> List[ConnectionView]:
        views = []
        for connection_id in self.members(room_id):
            connection = self.registry.get(connection_id)
            if connection is not None:
                views.append(connection.view())
        return views

    def full_room_view(self, room_id: str) -> RoomDetails:
        summary = self.room_summary(room_id)
        return RoomDetails(**summary.model_dump(), users=self.roster(room_id))

    def __len__(self) -> int:
        return len(self._rooms)

    def _require_connection(self, connection_id: str) -> Connection:
        connection = self.registry.get(connection_id)
        if connection is None:
            raise KeyError(f"Unknown connection {connection_id}")
        return connection

    def _remove_member(self, connection: Connection, room_id: str) -> None:
        connection.current_room = None
        self._drop(room_id, connection.connection_id)

    def _drop(self, room_id: str, connection_id: str) -> None:
        room = self._rooms.get(room_id)
        if room is None:
            return
        room.members.pop(connection_id, None)
        logger.debug(f"Connection {connection_id} left room {room_id} ({len(room.members)} members)")
        if not room.members:
            del self._rooms[room_id]
            logger.info(f"Room {room_id} is empty, deleted")
