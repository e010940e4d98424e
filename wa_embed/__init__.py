"""wa-embed — host-side embedding of the WhatsBox widget."""

from wa_embed.messages import (
    Action,
    Command,
    Credentials,
    LogDirection,
    LogEntry,
    Role,
    Status,
    WidgetEvent,
)
from wa_embed.config import EmbedHostConfig, EmbedServerConfig
from wa_embed.host_controller import HostController
from wa_embed.token_exchange import HttpTokenClient, TokenExchangeError, TokenExchangeService
from wa_embed.widget_contract import SimulatedWidget

__all__ = [
    "Action",
    "Command",
    "Credentials",
    "LogDirection",
    "LogEntry",
    "Role",
    "Status",
    "WidgetEvent",
    "EmbedHostConfig",
    "EmbedServerConfig",
    "HostController",
    "HttpTokenClient",
    "TokenExchangeError",
    "TokenExchangeService",
    "SimulatedWidget",
    "create_app",
]


def __getattr__(name: str):
    if name == "create_app":
        from wa_embed.standalone import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
