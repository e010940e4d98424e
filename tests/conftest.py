"""Test configuration and fixtures."""
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from wa_embed.config import EmbedHostConfig, EmbedServerConfig
from wa_embed.host_controller import HostController
from wa_embed.messages import Credentials

SECRET = "s3cr3t-api-key-0123456789"
WIDGET_ORIGIN = "https://app.whatsbox.io"


class RecordingHostController(HostController):
    """Host controller that keeps every posted message instead of delivering it."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.posted: List[Tuple[str, str]] = []
        self.window_attached = True

    @property
    def has_widget_window(self) -> bool:
        return self.window_attached

    def _post_message(self, data: str, target_origin: str) -> None:
        self.posted.append((data, target_origin))


class FakeTokenSource:
    """Token source returning a canned response or raising."""

    def __init__(self, response: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.response = response if response is not None else {"token": "abc"}
        self.error = error
        self.calls: List[Credentials] = []

    async def fetch_token(self, credentials: Credentials) -> Dict[str, Any]:
        self.calls.append(credentials)
        if self.error:
            raise self.error
        return self.response


class UpstreamStub:
    """State and request capture for the fake token authority."""

    def __init__(self):
        self.status = 200
        self.body: Any = {"token": "abc", "expiresIn": 3600}
        self.requests: List[Dict[str, Any]] = []
        self.url = ""


@pytest.fixture
def token_source() -> FakeTokenSource:
    return FakeTokenSource()


@pytest.fixture
def controller(token_source) -> RecordingHostController:
    return RecordingHostController(
        token_source=token_source,
        config=EmbedHostConfig(iframe_src=f"{WIDGET_ORIGIN}/embed"),
        credentials=Credentials(email="a@b.com", name="A"),
    )


@pytest_asyncio.fixture
async def upstream():
    """Run a local aiohttp server standing in for the token authority."""
    stub = UpstreamStub()

    async def generate(request: web.Request) -> web.Response:
        stub.requests.append({
            "headers": dict(request.headers),
            "json": await request.json(),
        })
        if isinstance(stub.body, bytes):
            return web.Response(body=stub.body, status=stub.status, content_type="text/plain")
        if isinstance(stub.body, str):
            return web.Response(text=stub.body, status=stub.status)
        return web.json_response(stub.body, status=stub.status)

    app = web.Application()
    app.router.add_post("/auth/generate-auth-token", generate)
    server = TestServer(app)
    await server.start_server()
    stub.url = str(server.make_url("")).rstrip("/")
    try:
        yield stub
    finally:
        await server.close()


@pytest.fixture
def server_config() -> EmbedServerConfig:
    return EmbedServerConfig(
        wa_api_url="http://upstream.invalid",
        wa_api_key=SECRET,
        frame_origins=[WIDGET_ORIGIN],
        connect_origins=["https://api.whatsbox.io"],
        host=EmbedHostConfig(iframe_src=f"{WIDGET_ORIGIN}/embed"),
    )
