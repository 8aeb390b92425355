import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class CanvasEvent(str, Enum):
    CATALOG_LOADED = "catalog.loaded"

    NODE_ADDED = "node.added"
    NODE_DELETED = "node.deleted"
    NODE_MOVED = "node.moved"
    NODE_ANNOTATED = "node.annotated"
    PARAMETERS_UPDATED = "node.parameters_updated"

    EDGE_ADDED = "edge.added"
    EDGE_DELETED = "edge.deleted"

    PANEL_OPENED = "panel.opened"
    PANEL_SAVED = "panel.saved"
    PANEL_CLOSED = "panel.closed"

    WORKFLOW_LOADED = "workflow.loaded"
    EXECUTION_STARTED = "execution.started"
    EXECUTION_FINISHED = "execution.finished"


Listener = Callable[[CanvasEvent, Dict[str, Any]], None]


class CanvasEventBus:
    """
    Event bus scoped to a single canvas session.

    Listeners are plain callables invoked synchronously, in subscription
    order, on the thread that emits. A listener that raises is logged and
    skipped so one broken view cannot stall a graph mutation.
    """

    def __init__(self):
        self._listeners: Dict[Optional[CanvasEvent], List[Listener]] = {}

    def subscribe(self, event: Optional[CanvasEvent], listener: Listener):
        """Subscribe to one event type, or to every event with `event=None`."""
        self._listeners.setdefault(event, []).append(listener)

    def unsubscribe(self, event: Optional[CanvasEvent], listener: Listener):
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: CanvasEvent, payload: Optional[Dict[str, Any]] = None):
        payload = payload or {}
        for listener in list(self._listeners.get(event, [])) + list(self._listeners.get(None, [])):
            try:
                listener(event, payload)
            except Exception as e:
                logger.error(f"Listener {listener!r} failed on {event.value}: {e}")


class ConnectionManager:
    """Relays canvas events to connected WebSocket clients."""

    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        self.active_connections.append(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")
        else:
            logger.warning("Attempted to disconnect WebSocket that wasn't in active connections")

    async def broadcast(self, message: str):
        dead_connections = []
        for connection in self.active_connections:
            try:
                await connection.send_text(message)
            except Exception as e:
                logger.error(f"Failed to send to connection: {e}")
                dead_connections.append(connection)

        for dead_conn in dead_connections:
            self.disconnect(dead_conn)

    def relay(self, event: CanvasEvent, payload: Dict[str, Any]):
        """Bus listener: schedule a broadcast on the loop that owns the sockets."""
        if not self.active_connections or self._loop is None:
            return
        message = json.dumps({"type": event.value, "payload": payload}, default=str)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            task = self._loop.create_task(self.broadcast(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            asyncio.run_coroutine_threadsafe(self.broadcast(message), self._loop)
