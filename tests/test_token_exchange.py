"""Tests for the token exchange service against a local upstream."""
import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from wa_embed.config import EmbedServerConfig
from wa_embed.messages import Credentials, Role
from wa_embed.token_exchange import API_KEY_HEADER, HttpTokenClient, TokenExchangeError, TokenExchangeService

from .conftest import SECRET


def make_service(url: str, **kwargs) -> TokenExchangeService:
    return TokenExchangeService(EmbedServerConfig(wa_api_url=url, wa_api_key=SECRET, **kwargs))


class TestIssueToken:
    """Tests for TokenExchangeService.issue_token."""

    @pytest.mark.asyncio
    async def test_returns_upstream_body_unmodified(self, upstream):
        service = make_service(upstream.url)
        result = await service.issue_token("a@b.com", "A", Role.USER)

        assert result == {"token": "abc", "expiresIn": 3600}
        assert SECRET not in repr(result)

    @pytest.mark.asyncio
    async def test_secret_travels_as_header_only(self, upstream):
        service = make_service(upstream.url)
        await service.issue_token("a@b.com", "A", "Admin")

        assert len(upstream.requests) == 1
        request = upstream.requests[0]
        assert request["json"] == {"email": "a@b.com", "name": "A", "role": "Admin"}
        headers = {k.lower(): v for k, v in request["headers"].items()}
        assert headers[API_KEY_HEADER] == SECRET

    @pytest.mark.asyncio
    async def test_non_2xx_raises_without_retry(self, upstream):
        upstream.status = 500
        upstream.body = {"message": "upstream exploded"}
        service = make_service(upstream.url)

        with pytest.raises(TokenExchangeError) as exc_info:
            await service.issue_token("a@b.com", "A", Role.USER)

        assert exc_info.value.status == 500
        assert "upstream exploded" in str(exc_info.value)
        assert len(upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_secret_echoed_by_upstream_is_redacted(self, upstream):
        upstream.status = 401
        upstream.body = {"error": f"invalid key {SECRET}"}
        service = make_service(upstream.url)

        with pytest.raises(TokenExchangeError) as exc_info:
            await service.issue_token("a@b.com", "A", Role.USER)

        assert SECRET not in str(exc_info.value)
        assert "***" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_plain_text_error_body(self, upstream):
        upstream.status = 502
        upstream.body = "Bad Gateway"
        service = make_service(upstream.url)

        with pytest.raises(TokenExchangeError, match="502: Bad Gateway"):
            await service.issue_token("a@b.com", "A", Role.USER)

    @pytest.mark.asyncio
    async def test_undecodable_error_body(self, upstream):
        """A body that is not valid UTF-8 still surfaces as TokenExchangeError."""
        upstream.status = 502
        upstream.body = b"\xff\xfe bad"
        service = make_service(upstream.url)

        with pytest.raises(TokenExchangeError) as exc_info:
            await service.issue_token("a@b.com", "A", Role.USER)

        assert exc_info.value.status == 502
        assert "bad" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_object_body_is_an_error(self, upstream):
        upstream.body = ["token"]
        service = make_service(upstream.url)

        with pytest.raises(TokenExchangeError, match="not a JSON object"):
            await service.issue_token("a@b.com", "A", Role.USER)

    @pytest.mark.asyncio
    async def test_unreachable_upstream(self):
        service = make_service("http://127.0.0.1:9")

        with pytest.raises(TokenExchangeError) as exc_info:
            await service.issue_token("a@b.com", "A", Role.USER)

        assert exc_info.value.status is None
        assert SECRET not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_url(self):
        service = make_service("")
        with pytest.raises(TokenExchangeError, match="not configured"):
            await service.issue_token("a@b.com", "A", Role.USER)

    @pytest.mark.asyncio
    async def test_secret_never_logged(self, upstream, caplog):
        upstream.status = 403
        upstream.body = {"message": f"forbidden for {SECRET}"}
        service = make_service(upstream.url)

        with pytest.raises(TokenExchangeError):
            await service.issue_token("a@b.com", "A", Role.USER)
        upstream.status = 200
        upstream.body = {"token": "abc"}
        await service.issue_token("a@b.com", "A", Role.USER)

        assert SECRET not in caplog.text


@pytest.mark.asyncio
async def test_fetch_token_adapts_credentials(upstream):
    service = make_service(upstream.url)
    result = await service.fetch_token(Credentials(email="x@y.z", name="X", role=Role.ADMIN))

    assert result["token"] == "abc"
    assert upstream.requests[0]["json"] == {"email": "x@y.z", "name": "X", "role": "Admin"}


class TestHttpTokenClient:
    """Tests for the remote token client talking to /get-wa-token."""

    @pytest_asyncio.fixture
    async def backend(self):
        replies = {"status": 200, "body": {"token": "remote"}}

        async def get_wa_token(request: web.Request) -> web.Response:
            replies["request"] = await request.json()
            return web.json_response(replies["body"], status=replies["status"])

        app = web.Application()
        app.router.add_post("/get-wa-token", get_wa_token)
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            yield str(server.make_url("")).rstrip("/"), replies
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_returns_token_body(self, backend):
        url, replies = backend
        result = await HttpTokenClient(url).fetch_token(Credentials(email="a@b.com", name="A"))

        assert result == {"token": "remote"}
        assert replies["request"] == {"email": "a@b.com", "name": "A", "role": "User"}

    @pytest.mark.asyncio
    async def test_failure_surfaces_server_message(self, backend):
        url, replies = backend
        replies["status"] = 500
        replies["body"] = {"success": False, "message": "Failed to fetch WA token", "error": "down"}

        with pytest.raises(TokenExchangeError) as exc_info:
            await HttpTokenClient(url).fetch_token(Credentials())

        assert exc_info.value.status == 500
        assert str(exc_info.value) == "Failed to fetch WA token"
