"""HTTP/WebSocket surface for streaming audit events."""

from .websocket import EventBridge, create_bridge_app, start_bridge_server, stop_bridge_server

__all__ = ["EventBridge", "create_bridge_app", "start_bridge_server", "stop_bridge_server"]
