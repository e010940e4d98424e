"""Host controller: the embedding page's side of the widget protocol.

Views (WebSocket bridge, tests) subclass this and implement the hooks that
actually post into the widget window.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

from wa_embed.config import EmbedHostConfig
from wa_embed.message_log import MessageLog
from wa_embed.messages import (
    EMBED_READY,
    Action,
    Command,
    Credentials,
    LogDirection,
    LogEntry,
    MessageDecodeError,
    WidgetEvent,
    decode_message,
    encode_message,
)
from wa_embed.token_exchange import TokenExchangeError, TokenSource

logger = logging.getLogger(__name__)

WILDCARD_ORIGIN = "*"


def is_trusted_origin(origin: str, allowed_origins: list[str]) -> bool:
    """Check an event origin against the allow-list by host part substring."""
    if not origin:
        return False
    for allowed in allowed_origins:
        host_part = allowed.split("//", 1)[-1]
        if host_part and host_part in origin:
            return True
    return False


class HostController(ABC):
    """Mediates between the user's credentials, the token source and the widget.

    All state lives on the instance; construct one per page load.
    Nothing raised while parsing, dispatching or fetching tokens escapes.
    """

    def __init__(
        self,
        *,
        token_source: TokenSource,
        config: Optional[EmbedHostConfig] = None,
        credentials: Optional[Credentials] = None,
    ):
        """Initialize the controller.

        Args:
            token_source: Where widget tokens come from (service or HTTP client)
            config: Host page settings (iframe source, allow-list, pinning)
            credentials: Initial user claims
        """
        self.token_source = token_source
        self.config = config or EmbedHostConfig()
        self.credentials = credentials or Credentials()

        self.authenticated = False
        self.loading = True
        self.widget_ready = False
        self.iframe_origin: Optional[str] = None

        self.log = MessageLog(on_entry=self._on_log_entry)
        self._loading_timer: Optional[asyncio.TimerHandle] = None
        self._warned_wildcard = False

    # ========== VIEW HOOKS ==========

    @abstractmethod
    def _post_message(self, data: str, target_origin: str) -> None:
        """Deliver a serialized message to the widget window."""
        pass

    @property
    def has_widget_window(self) -> bool:
        """Whether a widget window is currently attached to post into."""
        return True

    def _on_log_entry(self, entry: LogEntry) -> None:
        """Called for every new log entry."""
        pass

    def _on_state_changed(self) -> None:
        """Called when authenticated or loading flips."""
        pass

    # ========== LIFECYCLE ==========

    def start(self) -> None:
        """Arm the fallback timer that hides the loading indicator."""
        if self._loading_timer is not None:
            return
        loop = asyncio.get_running_loop()
        self._loading_timer = loop.call_later(self.config.loading_timeout, self.hide_loading)

    def close(self) -> None:
        if self._loading_timer is not None:
            self._loading_timer.cancel()
            self._loading_timer = None

    # ========== INCOMING ==========

    def handle_incoming(self, origin: str, data: Union[str, bytes, Dict[str, Any]]) -> None:
        """Handle one ``message`` event from the widget window."""
        decoded: Optional[Dict[str, Any]] = None
        decode_error: Optional[str] = None
        try:
            decoded = decode_message(data)
        except MessageDecodeError as e:
            decode_error = str(e)

        # Acknowledged before the origin check, see DESIGN.md.
        if decoded is not None and decoded.get("type") == EMBED_READY:
            try:
                self.send_command({"type": "ack", "receivedType": EMBED_READY})
            except Exception as e:
                logger.error(f"[HOST] Failed to acknowledge EMBED_READY: {type(e).__name__}: {e}")

        if not is_trusted_origin(origin, self.config.allowed_origins):
            logger.debug(f"[HOST] Ignored message from untrusted origin {origin!r}")
            return

        if not self.iframe_origin:
            self.iframe_origin = origin

        self.log.append(f"Received: {self._display(data)}", LogDirection.RECEIVED)

        if decode_error is not None:
            self.log.append(f"Parse error: {decode_error}", LogDirection.ERROR)
            return

        if decoded.get("type") == EMBED_READY:
            self.widget_ready = True

        try:
            self.dispatch(decoded)
        except Exception as e:
            logger.error(f"[HOST] Dispatch failed: {type(e).__name__}: {e}", exc_info=True)
            self.log.append(f"Parse error: {e}", LogDirection.ERROR)

    def dispatch(self, message: Union[WidgetEvent, Dict[str, Any]]) -> None:
        """Route a widget record on its canonical discriminant.

        Unknown discriminants are ignored so newer widgets can add events.
        """
        event = message if isinstance(message, WidgetEvent) else WidgetEvent.normalize(message)
        kind = event.kind

        if kind == "auth_request":
            self.send_command({
                "type": "user_credentials",
                "credentials": self.credentials.to_payload(),
                "timestamp": datetime.now().isoformat(),
            })

        elif kind == "auth_success":
            self._set_authenticated(True)
            self.log.append("Authenticated", LogDirection.RECEIVED)

        elif kind == "auth_failure":
            self.log.append(f"Auth failed: {event.reason or 'Unknown'}", LogDirection.ERROR)

        elif kind == "ready":
            self.hide_loading()

        elif kind == "success":
            if event.is_embed_login and event.action == Action.LOGIN.value:
                self._set_authenticated(True)
            elif event.is_embed_login and event.action == Action.LOGOUT.value:
                self._set_authenticated(False)
            self.log.append("Success", LogDirection.RECEIVED)

        elif kind == "error":
            self.log.append(f"Error: {event.message or event.error}", LogDirection.ERROR)

    # ========== OUTGOING ==========

    @property
    def target_origin(self) -> str:
        """Origin the widget is expected to live on."""
        return self.iframe_origin or self.config.iframe_origin

    def send_command(self, message: Union[Command, BaseModel, Dict[str, Any]]) -> bool:
        """Serialize and post a message to the widget window.

        Returns False when no widget window is attached.
        """
        if not self.has_widget_window:
            logger.debug("[HOST] No widget window attached, message dropped")
            return False

        data = encode_message(message)
        target = self.target_origin if self.config.pin_target_origin else WILDCARD_ORIGIN
        if target == WILDCARD_ORIGIN and not self._warned_wildcard:
            # Known gap: credentials-bearing commands are posted to any origin.
            logger.warning("[HOST] Posting to target origin '*'; enable pin_target_origin to restrict")
            self._warned_wildcard = True
        elif not target:
            logger.warning("[HOST] No known widget origin, message dropped")
            return False

        self._post_message(data, target)
        self.log.append(f"Sent: {data}", LogDirection.SENT)
        return True

    async def request_token(self) -> bool:
        """Fetch a widget token and forward it as a login command.

        Returns True when a login command was sent.
        """
        if not self.widget_ready:
            logger.debug("[HOST] Token requested before EMBED_READY")
        try:
            response = await self.token_source.fetch_token(self.credentials)
            token = response.get("token") if isinstance(response, dict) else None
            if not token:
                raise TokenExchangeError("Token missing from response")
        except Exception as e:
            self.log.append(f"Token error: {e}", LogDirection.ERROR)
            return False
        return self.send_command(Command.login(token))

    def logout(self) -> None:
        """Ask the widget to log out. ``authenticated`` flips only on its reply."""
        self.send_command(Command.logout())
        self.log.append("Logout request sent", LogDirection.SENT)

    # ========== UI STATE ==========

    def update_credentials(self, **fields: Any) -> Credentials:
        self.credentials = Credentials.model_validate({**self.credentials.model_dump(), **fields})
        return self.credentials

    def hide_loading(self) -> None:
        if self.loading:
            self.loading = False
            self._on_state_changed()

    def on_iframe_error(self, message: str) -> None:
        self.log.append(f"Load error: {message}", LogDirection.ERROR)
        self.hide_loading()

    def clear_console(self) -> None:
        self.log.clear()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "authenticated": self.authenticated,
            "loading": self.loading,
            "widget_ready": self.widget_ready,
            "iframe_origin": self.iframe_origin,
            "credentials": self.credentials.to_payload(),
        }

    def _set_authenticated(self, value: bool) -> None:
        if self.authenticated != value:
            self.authenticated = value
            self._on_state_changed()

    @staticmethod
    def _display(data: Union[str, bytes, Dict[str, Any]]) -> str:
        if isinstance(data, str):
            return json.dumps(data)
        if isinstance(data, bytes):
            return json.dumps(data.decode("utf-8", errors="replace"))
        try:
            return json.dumps(data)
        except (TypeError, ValueError):
            return repr(data)
