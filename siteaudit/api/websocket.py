"""WebSocket bridge streaming audit events to connected clients.

The bridge subscribes to an :class:`EventBus` and forwards every event's
``to_dict()`` to each client connected on ``/ws``. ``/health`` and
``/status`` report liveness and the number of connected clients.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from siteaudit import __version__
from siteaudit.audit.events import AuditEvent, EventBus

logger = logging.getLogger(__name__)


SERVICE_NAME = "siteaudit"


class EventBridge:
    """Fans bus events out to WebSocket clients.

    Each client gets its own outgoing queue drained by a sender task on the
    client's event loop, so emitting never blocks on a slow socket. A client
    whose send fails is dropped.
    """

    def __init__(self, bus: EventBus):
        self.bus = bus
        self._clients: Dict[WebSocket, Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = {}
        self._subscription = bus.subscribe(self._on_event)

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def _on_event(self, event: AuditEvent) -> None:
        self.broadcast(event.to_dict())

    def broadcast(self, message: Dict[str, Any]) -> None:
        for websocket, (loop, queue) in list(self._clients.items()):
            try:
                loop.call_soon_threadsafe(queue.put_nowait, message)
            except RuntimeError as e:
                logger.warning(f"Dropping WebSocket client: {e}")
                self.disconnect(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        if self._clients.pop(websocket, None) is not None:
            logger.info(f"WebSocket client disconnected ({self.client_count} connected)")

    def close(self) -> None:
        self._subscription.cancel()
        self._clients.clear()

    async def serve(self, websocket: WebSocket) -> None:
        await websocket.accept()
        queue: asyncio.Queue = asyncio.Queue()
        self._clients[websocket] = (asyncio.get_running_loop(), queue)
        logger.info(f"WebSocket client connected ({self.client_count} connected)")

        await websocket.send_json({
            "type": "connection",
            "status": "connected",
            "timestamp": datetime.utcnow().isoformat(),
        })

        sender = asyncio.create_task(self._send_loop(websocket, queue))
        try:
            while True:
                message = await websocket.receive_text()
                logger.debug(f"Received from WebSocket client: {message}")
        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            self.disconnect(websocket)

    async def _send_loop(self, websocket: WebSocket, queue: asyncio.Queue) -> None:
        while True:
            message = await queue.get()
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning(f"Error sending to WebSocket client: {e}")
                self.disconnect(websocket)
                return


def create_bridge_app(bus: EventBus, bridge: Optional[EventBridge] = None) -> FastAPI:
    """Create the FastAPI application serving the event bridge.

    Args:
        bus: Event bus whose events are forwarded
        bridge: Existing bridge to serve; a new one is created if omitted

    Returns:
        Configured FastAPI application; the bridge is ``app.state.bridge``
    """
    bridge = bridge or EventBridge(bus)

    app = FastAPI(
        title="SiteAudit Event Bridge",
        description="Real-time audit events over WebSocket",
        version=__version__,
    )
    app.state.bridge = bridge

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.websocket("/ws")
    async def events_socket(websocket: WebSocket):
        await bridge.serve(websocket)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "clients": bridge.client_count,
        }

    @app.get("/status")
    async def status() -> Dict[str, Any]:
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "websocket_clients": bridge.client_count,
            "timestamp": datetime.utcnow().isoformat(),
        }

    return app


async def start_bridge_server(
    bus: EventBus,
    host: str = "0.0.0.0",
    port: int = 8080,
    log_level: str = "warning"
) -> uvicorn.Server:
    """Start the bridge in the running event loop and return the server.

    The server runs as a background task; set ``server.should_exit = True``
    to stop it.
    """
    app = create_bridge_app(bus)
    config = uvicorn.Config(app, host=host, port=port, log_level=log_level, access_log=False)
    server = uvicorn.Server(config)

    task = asyncio.create_task(server.serve())
    server.task = task

    while not server.started and not task.done():
        await asyncio.sleep(0.05)
    if task.done() and task.exception() is not None:
        raise task.exception()

    logger.info(f"Event bridge running on http://{host}:{port} (WebSocket: ws://{host}:{port}/ws)")
    return server


async def stop_bridge_server(server: uvicorn.Server) -> None:
    server.should_exit = True
    task = getattr(server, "task", None)
    if task is not None:
        await asyncio.gather(task, return_exceptions=True)
