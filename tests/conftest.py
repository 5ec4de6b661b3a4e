import pytest
from fastapi.testclient import TestClient

from app import create_app
from backend import ConnectionRegistry, RoomDirectory
from coordinator import RoomCoordinator
from schemas.rooms import Identity


class RecordingHub:
    """Stands in for ConnectionHub and keeps every delivery for inspection."""

    def __init__(self):
        self.outbounds = []

    def deliver(self, outbounds):
        self.outbounds.extend(outbounds)

    def clear(self):
        self.outbounds.clear()

    def events(self):
        return [o.event.value for o in self.outbounds]

    def received(self, connection_id, event=None):
        """Frames a single connection would have received, in order."""
        return [
            o.frame() for o in self.outbounds
            if connection_id in o.recipients and (event is None or o.event.value == event)
        ]


def assert_consistent(registry: ConnectionRegistry, directory: RoomDirectory):
    memberships = {}
    for room_id in directory.room_ids():
        members = directory.members(room_id)
        assert members, f"room {room_id} is empty but still exists"
        for connection_id in members:
            assert connection_id not in memberships, f"{connection_id} is in more than one room"
            memberships[connection_id] = room_id
    for connection in registry.list_all():
        assert memberships.get(connection.connection_id) == connection.current_room
    for connection_id in memberships:
        assert connection_id in registry


@pytest.fixture()
def registry():
    return ConnectionRegistry()


@pytest.fixture()
def directory(registry):
    return RoomDirectory(registry)


@pytest.fixture()
def hub():
    return RecordingHub()


@pytest.fixture()
def coordinator(registry, directory, hub):
    return RoomCoordinator(registry, directory, hub)


@pytest.fixture()
def connect(coordinator):
    def _connect(connection_id, username, user_id=None, is_admin=False):
        identity = Identity(user_id=user_id or username, username=username, is_admin=is_admin)
        return coordinator.connect(connection_id, identity)
    return _connect


@pytest.fixture()
def app():
    return create_app()


@pytest.fixture()
def client(app):
    # Entering the client keeps every websocket session on one event loop
    with TestClient(app) as client:
        yield client
