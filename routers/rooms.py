from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from constants import TRUTHY
from coordinator import ADMIN_REQUIRED, RoomCoordinator
from errors import Unauthorized
from logging_config import get_logger
from schemas.rooms import Identity, RoomDetails

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api", tags=["rooms"])


def get_coordinator(request: Request) -> RoomCoordinator:
    return request.app.state.coordinator


def get_identity(
    x_user_id: Optional[str] = Header(None),
    x_username: Optional[str] = Header(None),
    x_is_admin: Optional[str] = Header(None),
) -> Identity:
    """Identity claim forwarded by the upstream identity gateway."""
    if not x_user_id or not x_username:
        raise HTTPException(status_code=401, detail="Identity headers missing")
    return Identity(
        user_id=x_user_id,
        username=x_username,
        is_admin=(x_is_admin or "").lower() in TRUTHY,
    )


@rooms_router.get("/rooms", response_model=List[RoomDetails])
async def list_rooms(
    request: Request,
    identity: Identity = Depends(get_identity),
    coordinator: RoomCoordinator = Depends(get_coordinator),
):
    """
    List every live room with its full member roster.

    Admin only. Returns 403 for any other identity.
    """
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room list request from {identity.username} at {client_host}")
    try:
        rooms = coordinator.list_rooms_privileged(identity)
    except Unauthorized:
        logger.warning(f"Room list denied for non-admin {identity.username} at {client_host}")
        raise HTTPException(status_code=403, detail=ADMIN_REQUIRED)
    logger.info(f"Room list returned {len(rooms)} rooms to {identity.username}")
    return rooms


@rooms_router.get("/me", response_model=Identity)
async def whoami(identity: Identity = Depends(get_identity)):
    return identity
