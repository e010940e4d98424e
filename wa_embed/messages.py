"""Models for the messages crossing the host/iframe boundary."""
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


EMBED_READY = "EMBED_READY"
EMBED_LOGIN = "embed-login"
INVALID_MESSAGE = "invalid-message"


class Role(str, Enum):
    """Role claimed for the embedded user."""
    USER = "User"
    ADMIN = "Admin"


class Action(str, Enum):
    """Command actions understood by the widget."""
    LOGIN = "login"
    LOGOUT = "logout"


class Status(str, Enum):
    """Progress reported by the widget for a command."""
    INIT = "init"
    SUCCESS = "success"
    ERROR = "error"


class Credentials(BaseModel):
    """User identity claims exchanged for a widget token."""
    email: str = ""
    name: str = ""
    role: Role = Role.USER

    def to_payload(self) -> Dict[str, str]:
        return {"email": self.email, "name": self.name, "role": self.role.value}


class CommandData(BaseModel):
    token: str


class Command(BaseModel):
    """Host -> widget instruction."""
    action: Action
    data: Optional[CommandData] = None

    @classmethod
    def login(cls, token: str) -> "Command":
        return cls(action=Action.LOGIN, data=CommandData(token=token))

    @classmethod
    def logout(cls) -> "Command":
        return cls(action=Action.LOGOUT)

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class WidgetEvent(BaseModel):
    """A widget -> host record normalized to a single discriminant.

    ``kind`` is ``status`` when the record carries one, otherwise ``type``.
    Fields the host does not know about are kept as extras.
    """
    model_config = ConfigDict(extra="allow")

    kind: str = ""
    type: Optional[str] = None
    action: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def normalize(cls, raw: Dict[str, Any]) -> "WidgetEvent":
        fields = {k: v for k, v in raw.items() if k != "kind"}
        for key in ("type", "action", "status", "message", "error", "reason"):
            value = fields.get(key)
            if value is not None and not isinstance(value, str):
                fields[key] = str(value)
        kind = fields.get("status") or fields.get("type") or ""
        return cls(kind=kind, **fields)

    @property
    def is_embed_login(self) -> bool:
        return self.type == EMBED_LOGIN


class MessageDecodeError(ValueError):
    """Raised when an incoming payload is not a JSON object."""


def decode_message(data: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """Decode a window message payload (JSON text or an already parsed object)."""
    if isinstance(data, dict):
        return data
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    if not isinstance(data, str):
        raise MessageDecodeError(f"Unsupported payload type: {type(data).__name__}")
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as e:
        raise MessageDecodeError(str(e)) from e
    if not isinstance(parsed, dict):
        raise MessageDecodeError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def encode_message(message: Union[BaseModel, Dict[str, Any]]) -> str:
    """Serialize an outgoing message the way it is posted to the widget window."""
    if isinstance(message, Command):
        message = message.to_message()
    elif isinstance(message, BaseModel):
        message = message.model_dump(mode="json", exclude_none=True)
    return json.dumps(message, separators=(",", ":"))


class LogDirection(str, Enum):
    SENT = "sent"
    RECEIVED = "received"
    ERROR = "error"


class LogEntry(BaseModel):
    """One line of the host message console."""
    id: int
    text: str
    direction: LogDirection = LogDirection.SENT
    timestamp: datetime = Field(default_factory=datetime.now)
