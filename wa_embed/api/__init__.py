"""WebSocket bridge for host pages embedding the widget.

Provides SessionRegistry, WebSocketHostController, and the message handler.
"""

from .bridge_session_api import (
    SessionRegistry,
    WebSocketHostController,
    _handle_client_message,
    build_ws_router,
)

__all__ = ["SessionRegistry", "WebSocketHostController", "_handle_client_message", "build_ws_router"]
