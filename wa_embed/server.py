"""Server integration helpers.

Host apps call these to register the token endpoint, health check and
security headers on their own FastAPI application.
"""

import logging
import os
import time
from datetime import datetime, timezone
from typing import Optional

from wa_embed.config import EmbedServerConfig
from wa_embed.messages import Role
from wa_embed.token_exchange import TokenExchangeError, TokenExchangeService

logger = logging.getLogger(__name__)

TOKEN_PATH = "/get-wa-token"
HEALTH_PATH = "/health"


def get_static_path() -> str:
    """Return absolute path to the static assets directory."""
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), 'static')


def build_csp(config: EmbedServerConfig) -> str:
    """Content-Security-Policy allowing the widget frame and its API origins."""
    frame_src = " ".join(config.frame_origins)
    connect_src = " ".join(["'self'", *config.connect_origins])
    return (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline'; "
        "style-src 'self' 'unsafe-inline'; "
        f"frame-src {frame_src}; "
        f"connect-src {connect_src}; "
        "img-src 'self' data: https:;"
    )


def security_headers(config: EmbedServerConfig) -> dict[str, str]:
    return {
        "X-Frame-Options": "SAMEORIGIN",
        "Content-Security-Policy": build_csp(config),
        "X-Content-Type-Options": "nosniff",
        "X-XSS-Protection": "1; mode=block",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }


def install_security_headers(app, config: EmbedServerConfig) -> None:
    """Add the embedding security headers to every HTTP response of ``app``."""
    headers = security_headers(config)

    @app.middleware("http")
    async def add_security_headers(request, call_next):
        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response


def build_http_router(service: TokenExchangeService, started_at: Optional[float] = None):
    """Build the FastAPI APIRouter with the token exchange and health endpoints."""
    from fastapi import APIRouter
    from fastapi.responses import JSONResponse
    from pydantic import BaseModel

    router = APIRouter()
    started = started_at if started_at is not None else time.monotonic()

    class TokenRequest(BaseModel):
        email: str = ""
        name: str = ""
        role: Role = Role.USER

    @router.post(TOKEN_PATH)
    async def get_wa_token(payload: TokenRequest):
        """Exchange the held secret plus user claims for a widget token."""
        try:
            return await service.issue_token(payload.email, payload.name, payload.role)
        except TokenExchangeError as e:
            return JSONResponse(status_code=500, content={
                "success": False,
                "message": "Failed to fetch WA token",
                "error": str(e),
            })

    @router.get(HEALTH_PATH)
    async def health():
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": time.monotonic() - started,
        }

    return router
