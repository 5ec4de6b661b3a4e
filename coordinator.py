from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from backend import Connection, ConnectionRegistry, RoomDirectory
from broadcaster import Outbound, PresenceBroadcaster
from errors import InternalFailure, InvalidEvent, Unauthorized
from logging_config import get_logger
from schemas.rooms import (
    CloseRoomPayload,
    Frame,
    Identity,
    InboundEvent,
    JoinRoomPayload,
    LeaveRoomPayload,
    RoomDetails,
    SendMessagePayload,
)

logger = get_logger(__name__)

ADMIN_REQUIRED = "Admin privileges required"


class RoomCoordinator:
    """Applies lifecycle events to the registry and directory.

    Every transition runs to completion without awaiting, so two events
    never interleave on the event loop. The resulting notifications are
    built after the mutation and handed to the hub before returning.
    Failures are contained to the event that caused them.
    """

    def __init__(self, registry: ConnectionRegistry, directory: RoomDirectory, hub,
                 broadcaster: Optional[PresenceBroadcaster] = None):
        self.registry = registry
        self.directory = directory
        self.hub = hub
        self.broadcaster = broadcaster or PresenceBroadcaster(registry, directory)
        self._handlers: Dict[InboundEvent, Tuple[Optional[Type[BaseModel]], Callable[..., List[Outbound]]]] = {
            InboundEvent.JOIN_ROOM: (JoinRoomPayload, self._on_join_room),
            InboundEvent.LEAVE_ROOM: (LeaveRoomPayload, self._on_leave_room),
            InboundEvent.GET_ROOMS: (None, self._on_get_rooms),
            InboundEvent.CLOSE_ROOM: (CloseRoomPayload, self._on_close_room),
            InboundEvent.SEND_MESSAGE: (SendMessagePayload, self._on_send_message),
        }

    # Lifecycle

    def connect(self, connection_id: str, identity: Identity) -> Connection:
        """Register a handshake.

        Raises MissingIdentity for an incomplete claim. Any other failure
        rolls the registration back and raises InternalFailure, so a
        half-finished handshake never shows up as online.
        """
        connection = self.registry.register(connection_id, identity)
        try:
            self._emit([self.broadcaster.online_users()])
        except Exception as e:
            self.registry.unregister(connection_id)
            failure = InternalFailure("handshake", connection_id, e)
            logger.error(str(failure), exc_info=True)
            raise failure from e
        return connection

    def disconnect(self, connection_id: str) -> None:
        """Remove a connection and its membership. Never raises."""
        connection = self.registry.get(connection_id)
        if connection is None:
            logger.debug(f"Disconnect for unknown connection {connection_id}, nothing to clean up")
            return
        before = connection.view()
        left = None
        try:
            left = self.directory.evict(connection_id)
        except Exception as e:
            logger.error(str(InternalFailure("disconnect", connection_id, e)), exc_info=True)
        finally:
            self.registry.unregister(connection_id)
        try:
            outbounds: List[Outbound] = []
            if left is not None:
                outbounds += self.broadcaster.user_left(before, left)
                outbounds += self.broadcaster.room_roster(left)
            outbounds += self.broadcaster.presence()
            self._emit(outbounds)
        except Exception as e:
            logger.error(str(InternalFailure("disconnect", connection_id, e)), exc_info=True)
        logger.info(f"User {before.username} disconnected (connection {connection_id})")

    # Dispatch

    def handle_frame(self, connection_id: str, text: str) -> None:
        try:
            frame = Frame.model_validate_json(text)
        except ValidationError as e:
            logger.warning(f"Malformed frame from connection {connection_id}: {e}")
            self._emit(self.broadcaster.error(connection_id, "Malformed frame"))
            return
        self.dispatch(connection_id, frame.event, frame.data)

    def dispatch(self, connection_id: str, event: str, data: Any = None) -> None:
        try:
            payload_model, handler = self._resolve(event)
            if payload_model is None:
                outbounds = handler(connection_id)
            else:
                outbounds = handler(connection_id, payload_model.model_validate(data or {}))
        except (InvalidEvent, ValidationError) as e:
            logger.warning(f"Rejected '{event}' from connection {connection_id}: {e}")
            self._emit(self.broadcaster.error(connection_id, f"Invalid event '{event}'"))
            return
        except Unauthorized as e:
            logger.warning(f"Unauthorized '{event}' from connection {connection_id}: {e}")
            self._emit(self.broadcaster.error(connection_id, ADMIN_REQUIRED))
            return
        except Exception as e:
            failure = InternalFailure(event, connection_id, e)
            logger.error(str(failure), exc_info=True)
            self._emit(self.broadcaster.error(connection_id, f"Failed to process '{event}'"))
            return
        self._emit(outbounds)

    def _resolve(self, event: str):
        try:
            return self._handlers[InboundEvent(event)]
        except ValueError:
            raise InvalidEvent(f"Unknown event '{event}'")

    # Admin control

    def list_rooms_privileged(self, identity: Identity) -> List[RoomDetails]:
        self._require_admin(identity, "list rooms")
        return [self.directory.full_room_view(room_id) for room_id in self.directory.room_ids()]

    def force_close_room(self, identity: Identity, room_id: str) -> List[str]:
        self._require_admin(identity, f"close room {room_id}")
        evicted = self.directory.close_room(room_id)
        if not evicted:
            return []
        outbounds = self.broadcaster.room_closed(room_id, evicted)
        outbounds += self.broadcaster.presence()
        self._emit(outbounds)
        logger.info(f"Admin {identity.username} force-closed room {room_id}")
        return evicted

    # Handlers

    def _on_join_room(self, connection_id: str, payload: JoinRoomPayload) -> List[Outbound]:
        connection = self._connection(connection_id)
        room_id = payload.room_id
        if connection.current_room == room_id:
            logger.debug(f"Connection {connection_id} already in room {room_id}")
            return []
        before = connection.view()
        previous = self.directory.join_room(connection_id, room_id)
        outbounds: List[Outbound] = []
        if previous is not None:
            outbounds += self.broadcaster.user_left(before, previous)
            outbounds += self.broadcaster.room_roster(previous)
        outbounds += self.broadcaster.user_joined(connection.view(), room_id)
        outbounds += self.broadcaster.room_roster(room_id)
        outbounds += self.broadcaster.presence()
        logger.info(f"User {connection.identity.username} joined room {room_id}")
        return outbounds

    def _on_leave_room(self, connection_id: str, payload: LeaveRoomPayload) -> List[Outbound]:
        connection = self._connection(connection_id)
        room_id = payload.room_id
        before = connection.view()
        if not self.directory.leave_room(connection_id, room_id):
            return []
        outbounds = self.broadcaster.user_left(before, room_id)
        outbounds += self.broadcaster.room_roster(room_id)
        outbounds += self.broadcaster.presence()
        logger.info(f"User {connection.identity.username} left room {room_id}")
        return outbounds

    def _on_get_rooms(self, connection_id: str) -> List[Outbound]:
        connection = self._connection(connection_id)
        self._require_admin(connection.identity, "list rooms")
        return self.broadcaster.privileged_rooms(connection_id)

    def _on_close_room(self, connection_id: str, payload: CloseRoomPayload) -> List[Outbound]:
        connection = self._connection(connection_id)
        self.force_close_room(connection.identity, payload.room_id)
        return []

    def _on_send_message(self, connection_id: str, payload: SendMessagePayload) -> List[Outbound]:
        connection = self._connection(connection_id)
        if connection.current_room != payload.room_id:
            logger.debug(
                f"Dropped message from {connection_id}: not a member of room {payload.room_id} "
                f"(current room: {connection.current_room})"
            )
            return []
        return self.broadcaster.new_message(connection.view(), payload.room_id, payload.message)

    # Helpers

    def _connection(self, connection_id: str) -> Connection:
        connection = self.registry.get(connection_id)
        if connection is None:
            raise KeyError(f"Unknown connection {connection_id}")
        return connection

    def _require_admin(self, identity: Identity, action: str) -> None:
        if not identity.is_admin:
            raise Unauthorized(f"{identity.username or identity.user_id} may not {action}")

    def _emit(self, outbounds: List[Outbound]) -> None:
        if outbounds:
            self.hub.deliver(outbounds)
