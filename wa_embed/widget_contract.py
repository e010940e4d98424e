"""In-process stand-in for the embedded widget.

Honors the widget side of the protocol so host controllers can be driven
end-to-end in tests and local demos without loading the real iframe.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from wa_embed.messages import (
    EMBED_LOGIN,
    EMBED_READY,
    INVALID_MESSAGE,
    Action,
    Status,
)

logger = logging.getLogger(__name__)

HostSink = Callable[[str, str], None]
"""Receives ``(origin, serialized_event)`` for each event posted to the host."""
Authenticator = Callable[[str], Awaitable[bool]]


async def _accept_any(token: str) -> bool:
    return True


class SimulatedWidget:
    """Widget that reports progress the way the real one does."""

    def __init__(
        self,
        post_to_host: HostSink,
        *,
        origin: str = "https://app.whatsbox.io",
        authenticator: Optional[Authenticator] = None,
    ):
        self.post_to_host = post_to_host
        self.origin = origin
        self.authenticator = authenticator or _accept_any
        self.authenticated = False
        self.received: List[Dict[str, Any]] = []
        self._ready_sent = False

    def _emit(self, event: Dict[str, Any]) -> None:
        self.post_to_host(self.origin, json.dumps(event))

    def _status(self, action: Action, status: Status, message: Optional[str] = None) -> None:
        event: Dict[str, Any] = {"type": EMBED_LOGIN, "action": action.value, "status": status.value}
        if message is not None:
            event["message"] = message
        self._emit(event)

    def start(self) -> None:
        """Announce readiness. Only the first call emits."""
        if self._ready_sent:
            return
        self._ready_sent = True
        self._emit({"type": EMBED_READY})

    async def receive(self, data: str) -> None:
        """Handle one serialized message posted by the host."""
        try:
            msg = json.loads(data)
        except (TypeError, json.JSONDecodeError):
            self._status(Action.LOGIN, Status.ERROR, INVALID_MESSAGE)
            return
        if not isinstance(msg, dict):
            self._status(Action.LOGIN, Status.ERROR, INVALID_MESSAGE)
            return

        self.received.append(msg)
        action = msg.get("action")

        if action == Action.LOGIN.value:
            payload = msg.get("data")
            token = payload.get("token") if isinstance(payload, dict) else None
            if not token:
                self._status(Action.LOGIN, Status.ERROR, INVALID_MESSAGE)
                return
            self._status(Action.LOGIN, Status.INIT)
            try:
                ok = await self.authenticator(token)
            except Exception as e:
                logger.warning(f"[WIDGET] Authenticator failed: {e}")
                ok = False
            if ok:
                self.authenticated = True
                self._status(Action.LOGIN, Status.SUCCESS)
            else:
                self._status(Action.LOGIN, Status.ERROR, "authentication-failed")

        elif action == Action.LOGOUT.value:
            self._status(Action.LOGOUT, Status.INIT)
            self.authenticated = False
            self._status(Action.LOGOUT, Status.SUCCESS)

        # Non-command host messages (ack, user_credentials) need no reply.
