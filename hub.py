import asyncio
import json
from typing import Dict, Iterable

from fastapi import WebSocket

from broadcaster import Outbound
from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionHub:
    """Live WebSocket connections and their outbound queues.

    ``deliver`` never awaits, so the coordinator can hand off frames in the
    middle of processing an event without yielding the loop. Each
    connection has one writer task draining its queue in FIFO order.
    """

    def __init__(self):
        self._sockets: Dict[str, WebSocket] = {}
        self._queues: Dict[str, asyncio.Queue] = {}

    def attach(self, connection_id: str, websocket: WebSocket) -> None:
        self._sockets[connection_id] = websocket
        self._queues[connection_id] = asyncio.Queue()
        logger.debug(f"Attached connection {connection_id} (local connections: {len(self._sockets)})")

    def detach(self, connection_id: str) -> None:
        self._sockets.pop(connection_id, None)
        self._queues.pop(connection_id, None)
        logger.debug(f"Detached connection {connection_id} (local connections: {len(self._sockets)})")

    def deliver(self, outbounds: Iterable[Outbound]) -> None:
        for outbound in outbounds:
            text = json.dumps(outbound.frame())
            delivered = 0
            for connection_id in outbound.recipients:
                queue = self._queues.get(connection_id)
                if queue is None:
                    logger.debug(f"Dropping {outbound.event.value} for detached connection {connection_id}")
                    continue
                queue.put_nowait(text)
                delivered += 1
            logger.debug(f"Queued {outbound.event.value} for {delivered} connections")

    async def pump(self, connection_id: str) -> None:
        """Writer loop: send queued frames until the socket fails or the task is cancelled."""
        websocket = self._sockets[connection_id]
        queue = self._queues[connection_id]
        while True:
            text = await queue.get()
            try:
                await websocket.send_text(text)
            except Exception as e:
                logger.warning(f"Error sending to connection {connection_id}: {e}")
                break

    def __len__(self) -> int:
        return len(self._sockets)
