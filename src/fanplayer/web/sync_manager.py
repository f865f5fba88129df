import asyncio
import time
from typing import Optional

from fastapi import WebSocket
from loguru import logger

from fanplayer.domain.playback.models import PlaybackSnapshot

from .schemas import serialize_snapshot


class SyncManager:
    """Manages WebSocket connections and broadcasts playback state.

    Stores the latest state so newly connected clients get immediate sync.
    """

    def __init__(self):
        self.connections: list[WebSocket] = []
        self.latest_state: Optional[dict] = None
        self._pending: set[asyncio.Task] = set()

    async def connect(self, ws: WebSocket) -> None:
        """Accept and store a new WebSocket connection."""
        await ws.accept()
        self.connections.append(ws)

    def disconnect(self, ws: WebSocket) -> None:
        """Remove a WebSocket connection."""
        if ws in self.connections:
            self.connections.remove(ws)

    def on_snapshot(self, snapshot: PlaybackSnapshot) -> None:
        """Engine listener: remember the state and push it to every client."""
        self.latest_state = serialize_snapshot(snapshot)
        if not self.connections:
            return
        try:
            task = asyncio.get_running_loop().create_task(
                self.broadcast("playback:state", self.latest_state)
            )
        except RuntimeError:
            logger.debug("No running event loop, state broadcast skipped")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def broadcast(self, event_type: str, data: dict) -> None:
        """Send a message to all connected clients."""
        message = {
            "type": event_type,
            "data": data,
            "ts": time.time(),
        }
        dead_connections: list[WebSocket] = []

        for conn in list(self.connections):
            try:
                await conn.send_json(message)
            except Exception:
                dead_connections.append(conn)

        for conn in dead_connections:
            self.disconnect(conn)

    async def close(self) -> None:
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        for conn in list(self.connections):
            try:
                await conn.close()
            except Exception:
                logger.debug("WebSocket already closed")
        self.connections.clear()
