"""Fan-out of job events to every live WebSocket client.

Events are fire-and-forget: a client only sees events sent while it is
registered, there is no replay.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import uuid
from typing import Any, Dict, Optional, Protocol, Union

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from ..errors import NotificationDeliveryFailure

logger = logging.getLogger(__name__)


class ClientConnection(Protocol):
    def is_open(self) -> bool:
        ...

    def send(self, message: str) -> None:
        ...


class NotificationHub:
    def __init__(self) -> None:
        self._connections: Dict[str, ClientConnection] = {}
        self._lock = threading.Lock()

    def register(self, connection: ClientConnection) -> str:
        handle = uuid.uuid4().hex
        with self._lock:
            self._connections[handle] = connection
        logger.debug("Client %s connected (%d active)", handle, len(self))
        return handle

    def unregister(self, handle: str) -> None:
        with self._lock:
            removed = self._connections.pop(handle, None)
        if removed is not None:
            logger.debug("Client %s disconnected", handle)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def broadcast_progress(self, job_id: Union[str, int], percent: int) -> int:
        return self._broadcast({"type": "progress", "job_id": job_id, "percent": int(percent)})

    def broadcast_completion(self, job_id: Union[str, int], success: bool, error_message: Optional[str] = None) -> int:
        return self._broadcast(
            {
                "type": "completion",
                "job_id": job_id,
                "success": bool(success),
                "error_message": error_message,
            }
        )

    def _broadcast(self, payload: Dict[str, Any]) -> int:
        message = json.dumps(payload)
        with self._lock:
            targets = list(self._connections.items())

        delivered = 0
        for handle, connection in targets:
            try:
                if not connection.is_open():
                    continue
                connection.send(message)
                delivered += 1
            except Exception as e:
                # One bad client must not stop delivery to the rest
                failure = NotificationDeliveryFailure(f"send to {handle} failed: {e}")
                logger.warning("%s", failure)
        return delivered


class WebSocketConnection:
    """Thread-safe adapter from the hub to one FastAPI WebSocket.

    ``send`` may be called from any thread; messages are queued onto the
    socket's event loop in call order and written by ``pump``.
    """

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop) -> None:
        self.websocket = websocket
        self.loop = loop
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._closed = False

    def is_open(self) -> bool:
        if self._closed or self.loop.is_closed():
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def send(self, message: str) -> None:
        self.loop.call_soon_threadsafe(self._queue.put_nowait, message)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self._queue.put_nowait, None)

    async def pump(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            await self.websocket.send_text(message)
