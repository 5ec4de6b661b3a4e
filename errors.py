class CoordinatorError(Exception):
    """Base class for failures raised while applying a room transition."""


class MissingIdentity(CoordinatorError):
    """Handshake claim lacks a userId or username."""


class Unauthorized(CoordinatorError):
    """A non-admin identity attempted an admin-only operation."""


class RoomNotFound(CoordinatorError):
    """The referenced room does not exist."""


class InvalidEvent(CoordinatorError):
    """An inbound frame could not be parsed into a known event."""


class InternalFailure(CoordinatorError):
    """Unexpected failure while handling a single event."""

    def __init__(self, event: str, connection_id: str, cause: Exception):
        super().__init__(f"Failed to handle '{event}' for connection {connection_id}: {cause}")
        self.event = event
        self.connection_id = connection_id
        self.cause = cause
