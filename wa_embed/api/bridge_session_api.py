"""WebSocket bridge between the host page and its server-side controller.

SessionRegistry — maps session_id → active host controllers
WebSocketHostController — HostController that relays postMessage calls over WS
build_ws_router() — FastAPI APIRouter with the /ws/{session_id} endpoint
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import ValidationError
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from wa_embed.config import EmbedHostConfig
from wa_embed.host_controller import HostController
from wa_embed.messages import Credentials, LogEntry
from wa_embed.token_exchange import TokenSource

logger = logging.getLogger(__name__)

API_PREFIX = "/api/wa-embed"


# ── Session Registry ────────────────────────────────────────────────


@dataclass
class SessionEntry:
    """A registered host page with its controller and metadata."""
    controller: "WebSocketHostController"
    websocket: Optional[WebSocket] = None
    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)


class SessionRegistry:
    """Maps session_id → SessionEntry. One instance per application."""

    def __init__(self):
        self._sessions: Dict[str, SessionEntry] = {}

    def register(self, session_id: str, controller: "WebSocketHostController") -> SessionEntry:
        entry = SessionEntry(controller=controller)
        self._sessions[session_id] = entry
        logger.info(f"[REGISTRY] Registered session {session_id}")
        return entry

    def get_session(self, session_id: str) -> Optional[SessionEntry]:
        entry = self._sessions.get(session_id)
        if entry:
            entry.last_activity = time.monotonic()
        return entry

    def remove(self, session_id: str) -> Optional[SessionEntry]:
        entry = self._sessions.pop(session_id, None)
        if entry:
            entry.controller.close()
            logger.info(f"[REGISTRY] Removed session {session_id}")
        return entry

    def cleanup_expired(self, ttl: float = 600.0) -> int:
        """Remove sessions idle for more than ttl seconds. Returns count removed."""
        now = time.monotonic()
        expired = [
            sid for sid, entry in self._sessions.items()
            if entry.websocket is None and now - entry.last_activity > ttl
        ]
        for sid in expired:
            entry = self._sessions.pop(sid, None)
            if entry:
                entry.controller.close()
        if expired:
            logger.info(f"[REGISTRY] Cleaned up {len(expired)} expired sessions")
        return len(expired)

    @property
    def active_count(self) -> int:
        return len(self._sessions)


# ── WebSocket Host Controller ───────────────────────────────────────


class WebSocketHostController(HostController):
    """HostController whose widget window lives in a browser behind a WebSocket."""

    def __init__(
        self,
        *,
        session_id: str,
        token_source: TokenSource,
        config: Optional[EmbedHostConfig] = None,
        credentials: Optional[Credentials] = None,
    ):
        super().__init__(token_source=token_source, config=config, credentials=credentials)
        self.session_id = session_id
        self._ws: Optional[WebSocket] = None
        self._tasks: set[asyncio.Task] = set()
        self._token_task: Optional[asyncio.Task] = None

    def set_websocket(self, ws: Optional[WebSocket]) -> None:
        self._ws = ws

    async def _send(self, msg: dict) -> None:
        """Send a JSON message over the WebSocket."""
        if self._ws and self._ws.client_state == WebSocketState.CONNECTED:
            try:
                await self._ws.send_json(msg)
            except Exception as e:
                logger.debug(f"[WS] Send failed: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _schedule(self, msg: dict) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"[WS] No running loop, dropped {msg.get('type')}")
            return
        self._spawn(self._send(msg))

    def start_token_request(self) -> asyncio.Task:
        """Run ``request_token`` in the background so the bridge keeps reading."""
        self._token_task = self._spawn(self.request_token())
        return self._token_task

    # ── Hook implementations ──────────────────────────────────

    @property
    def has_widget_window(self) -> bool:
        return self._ws is not None

    def _post_message(self, data: str, target_origin: str) -> None:
        self._schedule({"type": "post_message", "data": data, "target_origin": target_origin})

    def _on_log_entry(self, entry: LogEntry) -> None:
        self._schedule({"type": "log_entry", **entry.model_dump(mode="json")})

    def _on_state_changed(self) -> None:
        self._schedule(self.build_state())

    def build_state(self) -> dict:
        return {"type": "state", **self.snapshot()}


# ── WebSocket Router Builder ────────────────────────────────────────


def build_ws_router(registry: SessionRegistry):
    """Build a FastAPI APIRouter with the WebSocket bridge endpoint."""
    from fastapi import APIRouter

    router = APIRouter(prefix=API_PREFIX)

    @router.websocket("/ws/{session_id}")
    async def websocket_bridge(ws: WebSocket, session_id: str):
        entry = registry.get_session(session_id)
        if not entry:
            logger.warning(f"[WS] Session {session_id} not found in registry "
                           f"(active sessions: {registry.active_count})")
            await ws.accept()
            await ws.send_json({
                "type": "error",
                "error_type": "SessionNotFound",
                "message": f"Session {session_id} not found",
            })
            await ws.close(code=4004, reason="Session not found")
            return

        await ws.accept()
        controller = entry.controller
        controller.set_websocket(ws)
        entry.websocket = ws
        controller.start()

        await ws.send_json(controller.build_state())
        logger.info(f"[WS] Host page connected to session {session_id}")

        try:
            while True:
                raw = await ws.receive_text()
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    await ws.send_json({"type": "error", "error_type": "InvalidJSON", "message": "Invalid JSON"})
                    continue
                if not isinstance(msg, dict):
                    continue

                entry.last_activity = time.monotonic()
                await _handle_client_message(controller, msg)

        except WebSocketDisconnect:
            logger.info(f"[WS] Host page disconnected from session {session_id}")
        except Exception as e:
            logger.error(f"[WS] Error in session {session_id}: {type(e).__name__}: {e}")
        finally:
            controller.set_websocket(None)
            entry.websocket = None

    return router


async def _handle_client_message(controller: WebSocketHostController, msg: Dict[str, Any]) -> None:
    """Dispatch a bridge message from the host page to the controller."""
    msg_type = msg.get("type", "")

    if msg_type == "window_message":
        controller.handle_incoming(str(msg.get("origin") or ""), msg.get("data"))

    elif msg_type == "set_credentials":
        creds = msg.get("credentials") or {}
        try:
            controller.update_credentials(**creds)
        except (TypeError, ValidationError) as e:
            await controller._send({"type": "error", "error_type": "InvalidCredentials", "message": str(e)})
            return
        await controller._send(controller.build_state())

    elif msg_type == "request_token":
        controller.start_token_request()

    elif msg_type == "logout":
        controller.logout()

    elif msg_type == "iframe_error":
        controller.on_iframe_error(str(msg.get("message") or "unknown error"))

    elif msg_type == "clear_console":
        controller.clear_console()

    elif msg_type == "heartbeat":
        await controller._send({"type": "heartbeat_ack"})

    else:
        logger.warning(f"[WS] Unknown message type: {msg_type}")
