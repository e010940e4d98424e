import os
from dataclasses import dataclass, field
from typing import Mapping, Optional
from urllib.parse import urlsplit

DEFAULT_ALLOWED_ORIGINS = [
    "https://app-qa.whatsbox.io",
    "https://app.whatsbox.io",
    "http://localhost:3000",
]
DEFAULT_IFRAME_SRC = "https://app.whatsbox.io/embed"


def _split_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _flag(raw: Optional[str], default: bool = False) -> bool:
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def origin_of(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL, or an empty string if it has none."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}"


@dataclass
class EmbedHostConfig:
    """Settings of a single host page embedding the widget."""
    iframe_src: str = DEFAULT_IFRAME_SRC
    """Source URL of the widget iframe. Its origin is the fallback target origin."""
    allowed_origins: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    """Origins whose messages are interpreted. Matched on the host part by substring."""
    pin_target_origin: bool = False
    """Post to the known iframe origin instead of ``"*"``."""
    loading_timeout: float = 10.0
    """Seconds after which the loading indicator is hidden even without a ``ready`` event."""

    @property
    def iframe_origin(self) -> str:
        return origin_of(self.iframe_src)


@dataclass
class EmbedServerConfig:
    """Backend configuration, usually read from the environment."""
    port: int = 7000
    wa_api_url: str = ""
    """Base URL of the upstream authority issuing widget tokens."""
    wa_api_key: str = ""
    """Secret sent to the upstream authority. Never logged or returned."""
    frame_origins: list[str] = field(default_factory=list)
    connect_origins: list[str] = field(default_factory=list)
    upstream_timeout: Optional[float] = None
    """Total timeout for the upstream call; ``None`` keeps the transport default."""
    environment: str = "production"
    host: EmbedHostConfig = field(default_factory=EmbedHostConfig)

    @property
    def token_endpoint(self) -> str:
        return f"{self.wa_api_url.rstrip('/')}/auth/generate-auth-token"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EmbedServerConfig":
        """Build the config from environment variables.

        :param environ: Mapping to read from, defaults to ``os.environ``
        :return: The populated configuration
        """
        env = os.environ if environ is None else environ

        timeout_raw = env.get("WA_UPSTREAM_TIMEOUT", "")
        host = EmbedHostConfig(
            iframe_src=env.get("WA_IFRAME_SRC") or DEFAULT_IFRAME_SRC,
            allowed_origins=_split_list(env.get("WA_ALLOWED_ORIGINS")) or list(DEFAULT_ALLOWED_ORIGINS),
            pin_target_origin=_flag(env.get("WA_PIN_TARGET_ORIGIN")),
            loading_timeout=float(env.get("WA_LOADING_TIMEOUT") or 10.0),
        )
        return cls(
            port=int(env.get("PORT") or 7000),
            wa_api_url=env.get("WA_API_URL", ""),
            wa_api_key=env.get("WA_API_KEY", ""),
            frame_origins=_split_list(env.get("FRAME_ORIGINS")),
            connect_origins=_split_list(env.get("CONNECT_ORIGINS")),
            upstream_timeout=float(timeout_raw) if timeout_raw else None,
            environment=env.get("WA_EMBED_ENV", "production"),
            host=host,
        )

    def describe(self) -> list[str]:
        """Human-readable summary lines with the secret masked."""
        return [
            f"WA_API_URL: {self.wa_api_url or '(not set)'}",
            f"WA_API_KEY: {'***' if self.wa_api_key else '(not set)'}",
            f"FRAME_ORIGINS: {', '.join(self.frame_origins)}",
            f"CONNECT_ORIGINS: {', '.join(self.connect_origins)}",
            f"ALLOWED_ORIGINS: {', '.join(self.host.allowed_origins)}",
            f"IFRAME_SRC: {self.host.iframe_src}",
        ]
