"""Standalone embed server — serve the host page and the token endpoint.

Usage::

    poetry run wa-embed

    # Custom port:
    PORT=9000 poetry run wa-embed

Environment variables:
    PORT                  — Server port (default: 7000)
    WA_API_URL            — Base URL of the token-issuing upstream
    WA_API_KEY            — Secret sent to the upstream as ``x-api-key``
    FRAME_ORIGINS         — Comma-separated origins allowed in frame-src
    CONNECT_ORIGINS       — Comma-separated origins allowed in connect-src
    WA_ALLOWED_ORIGINS    — Comma-separated origins whose messages are trusted
    WA_IFRAME_SRC         — Widget iframe URL
    WA_PIN_TARGET_ORIGIN  — 1 to post to the widget origin instead of '*'
    WA_UPSTREAM_TIMEOUT   — Upstream timeout in seconds (default: transport default)
    WA_LOADING_TIMEOUT    — Seconds before the loading overlay is hidden (default: 10)
    WA_EMBED_ENV          — 'development' to expose error details

Loads .env from the current working directory or any parent directory.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from wa_embed.config import EmbedServerConfig

logger = logging.getLogger(__name__)

STATIC_MOUNT = "/embed-static"

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>WhatsBox Embed</title>
    <script>window.__EMBED_CONFIG__ = {config_json};</script>
    <link rel="stylesheet" href="/embed-static/embed.css">
</head>
<body>
    <aside id="sidebar">
        <form id="credentials">
            <input name="email" type="email" placeholder="Email">
            <input name="name" type="text" placeholder="Name">
            <select name="role"><option>User</option><option>Admin</option></select>
            <button type="button" id="loadToken">Login</button>
            <button type="button" id="logout">Logout</button>
        </form>
        <div id="status"></div>
        <button type="button" id="clearConsole">Clear</button>
        <ul id="messageConsole"></ul>
    </aside>
    <main>
        <div id="loading">Loading…</div>
        <iframe id="whatsboxIframe" src="{iframe_src}" allow="clipboard-write"></iframe>
    </main>
    <script src="/embed-static/embed-bridge.js" defer></script>
</body>
</html>"""


def render_index(session_id: str, config: EmbedServerConfig) -> str:
    page_config = {
        "sessionId": session_id,
        "wsPath": f"/api/wa-embed/ws/{session_id}",
        "iframeSrc": config.host.iframe_src,
    }
    return (
        INDEX_HTML
        .replace("{config_json}", json.dumps(page_config))
        .replace("{iframe_src}", config.host.iframe_src)
    )


# ── FastAPI app factory ──────────────────────────────────────────

def create_app(config: Optional[EmbedServerConfig] = None):
    """Create the FastAPI application.

    Without an explicit config, .env is loaded and the environment is read.
    Also called by uvicorn via the factory=True flag.
    """
    if config is None:
        from dotenv import load_dotenv, find_dotenv
        load_dotenv(find_dotenv(usecwd=True))
        config = EmbedServerConfig.from_env()

    from fastapi import FastAPI, Request
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
    from fastapi.staticfiles import StaticFiles
    from starlette.exceptions import HTTPException as StarletteHTTPException

    from wa_embed.api.bridge_session_api import SessionRegistry, WebSocketHostController, build_ws_router
    from wa_embed.server import build_http_router, get_static_path, install_security_headers
    from wa_embed.token_exchange import TokenExchangeService

    registry = SessionRegistry()
    service = TokenExchangeService(config)

    @asynccontextmanager
    async def lifespan(_a):
        async def _cleanup():
            while True:
                await asyncio.sleep(60)
                registry.cleanup_expired(ttl=600)
        task = asyncio.create_task(_cleanup())
        yield
        task.cancel()

    _app = FastAPI(title="WhatsBox Embed", docs_url=None, redoc_url=None, lifespan=lifespan)
    _app.state.config = config
    _app.state.registry = registry
    _app.state.token_service = service

    _app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_security_headers(_app, config)

    _app.mount(STATIC_MOUNT, StaticFiles(directory=get_static_path()), name="embed-static")
    _app.include_router(build_http_router(service, started_at=time.monotonic()))
    _app.include_router(build_ws_router(registry))

    def _new_page() -> str:
        session_id = str(uuid4())
        controller = WebSocketHostController(
            session_id=session_id,
            token_source=service,
            config=config.host,
        )
        registry.register(session_id, controller)
        return render_index(session_id, config)

    @_app.get("/")
    async def root():
        return RedirectResponse(url="/embed")

    @_app.get("/embed", response_class=HTMLResponse)
    async def embed():
        return HTMLResponse(_new_page())

    @_app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        # Only browser navigations get a page (and a session); assets and API calls get JSON.
        if (exc.status_code == 404 and request.method == "GET"
                and "text/html" in request.headers.get("accept", "")):
            return HTMLResponse(_new_page(), status_code=404)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @_app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error(f"Error: {type(exc).__name__}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={
            "error": "Internal server error",
            "message": str(exc) if config.is_development else "Something went wrong",
        })

    return _app


# ── Entry point ──────────────────────────────────────────────────

def main():
    """Load .env, log the configuration and start the server."""
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))

    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )

    config = EmbedServerConfig.from_env()
    logger.info("Configuration:")
    for line in config.describe():
        logger.info(f"  {line}")

    print(f"\n  WhatsBox embed → http://localhost:{config.port}/embed\n")
    print("  GET  /              - Redirects to /embed")
    print("  GET  /embed         - Host page")
    print("  GET  /health        - Health check")
    print("  POST /get-wa-token  - Get WA token\n")
    uvicorn.run(
        "wa_embed.standalone:create_app",
        factory=True,
        host="0.0.0.0",
        port=config.port,
    )


if __name__ == "__main__":
    main()
