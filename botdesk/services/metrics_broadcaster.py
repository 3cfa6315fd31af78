"""
Periodic health snapshot push over WebSocket.

Every tick builds one snapshot and sends it once to each connected client.
Clients whose send fails are dropped; nothing is queued for them.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import WebSocket

from ..core.logging import logger
from .analytics_service import AnalyticsService


@dataclass
class MetricsSubscriber:
    client_id: str
    websocket: WebSocket
    connected_at: float


class WebSocketConnectionManager:
    """Tracks live ``/ws`` connections."""

    def __init__(self) -> None:
        self._connections: Dict[str, MetricsSubscriber] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, client_id: Optional[str] = None) -> MetricsSubscriber:
        await websocket.accept()

        if client_id is None:
            client_id = str(uuid.uuid4())[:8]

        subscriber = MetricsSubscriber(client_id=client_id, websocket=websocket, connected_at=time.time())
        async with self._lock:
            self._connections[client_id] = subscriber

        logger.info(f"WebSocket connected: {client_id}", extra_fields={"connections": len(self._connections)})
        return subscriber

    async def disconnect(self, client_id: str) -> None:
        async with self._lock:
            removed = self._connections.pop(client_id, None)
        if removed is not None:
            logger.info(f"WebSocket disconnected: {client_id}")

    async def send_to_client(self, client_id: str, message: Dict[str, Any]) -> bool:
        async with self._lock:
            subscriber = self._connections.get(client_id)

        if subscriber is None:
            return False

        try:
            await subscriber.websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Failed to send to {client_id}: {e}")
            await self.disconnect(client_id)
            return False

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """Send to every current connection; returns how many sends succeeded."""
        async with self._lock:
            client_ids = list(self._connections)

        sent_count = 0
        for client_id in client_ids:
            if await self.send_to_client(client_id, message):
                sent_count += 1
        return sent_count

    def get_connection_count(self) -> int:
        return len(self._connections)


class MetricsBroadcaster:
    """Pushes ``{"type": "metrics", "data": snapshot}`` on a fixed interval."""

    def __init__(
        self,
        analytics_service: AnalyticsService,
        connection_manager: WebSocketConnectionManager,
        interval_seconds: float = 5.0
    ):
        self.analytics_service = analytics_service
        self.connection_manager = connection_manager
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def snapshot_message(self) -> Dict[str, Any]:
        return {"type": "metrics", "data": await self.analytics_service.system_health()}

    async def send_initial(self, client_id: str) -> bool:
        """Push one snapshot to a client that just subscribed."""
        return await self.connection_manager.send_to_client(client_id, await self.snapshot_message())

    async def tick(self) -> int:
        if self.connection_manager.get_connection_count() == 0:
            return 0
        return await self.connection_manager.broadcast(await self.snapshot_message())

    async def _run(self):
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Metrics broadcast failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def start(self):
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
