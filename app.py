import asyncio
import uuid
from typing import Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from backend import ConnectionRegistry, RoomDirectory
from constants import CORS_ORIGINS, INTERNAL_ERROR, LOG_FILE, LOG_LEVEL, POLICY_VIOLATION, TRUTHY, WS_PATH
from coordinator import RoomCoordinator
from errors import MissingIdentity
from hub import ConnectionHub
from logging_config import get_logger, setup_logging
from routers.rooms import rooms_router
from schemas.rooms import HealthResponse, Identity

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


async def websocket_endpoint(
    websocket: WebSocket,
    user_id: Optional[str] = Query(None, alias="userId"),
    username: Optional[str] = Query(None),
    is_admin: Optional[str] = Query(None, alias="isAdmin"),
):
    """Realtime channel. The identity claim arrives as query parameters.

    Query parameters:
    - userId: required
    - username: required
    - isAdmin: optional flag (1/true/yes/on)
    """
    coordinator: RoomCoordinator = websocket.app.state.coordinator
    hub: ConnectionHub = websocket.app.state.hub
    connection_id = uuid.uuid4().hex
    identity = Identity(
        user_id=user_id.strip() if user_id and user_id.strip() else None,
        username=username.strip() if username and username.strip() else None,
        is_admin=(is_admin or "").lower() in TRUTHY,
    )
    logger.info(f"WebSocket connection attempt {connection_id}, username: {identity.username}")

    # Attach before registering so the first users-update lands in this connection's queue
    hub.attach(connection_id, websocket)
    try:
        coordinator.connect(connection_id, identity)
    except MissingIdentity as e:
        hub.detach(connection_id)
        logger.info(f"WebSocket connection rejected: {e}")
        await websocket.close(code=POLICY_VIOLATION, reason="userId and username are required")
        return
    except Exception as e:
        # No-op when connect already rolled back its registration
        coordinator.disconnect(connection_id)
        hub.detach(connection_id)
        logger.error(f"WebSocket handshake failed for connection {connection_id}: {e}", exc_info=True)
        await websocket.close(code=INTERNAL_ERROR, reason="Handshake failed")
        return

    writer = None
    disconnected = False
    try:
        await websocket.accept()
        logger.info(f"WebSocket connection accepted for {identity.username} ({connection_id})")
        writer = asyncio.create_task(hub.pump(connection_id))

        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                disconnected = True
                break
            coordinator.handle_frame(connection_id, data)
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        coordinator.disconnect(connection_id)
        hub.detach(connection_id)
        if writer is not None:
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
        if not disconnected:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")


def create_app() -> FastAPI:
    registry = ConnectionRegistry()
    directory = RoomDirectory(registry)
    hub = ConnectionHub()
    coordinator = RoomCoordinator(registry, directory, hub)

    app = FastAPI(title="Realtime Rooms")
    app.state.registry = registry
    app.state.directory = directory
    app.state.hub = hub
    app.state.coordinator = coordinator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)
    app.add_api_websocket_route(WS_PATH, websocket_endpoint)

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        state = request.app.state
        return HealthResponse(status="ok", connections=len(state.registry), rooms=len(state.directory))

    logger.info(f"FastAPI application initialized, realtime channel at {WS_PATH}")
    return app
