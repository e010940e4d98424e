"""Token exchange: trade the held secret plus user claims for a widget token.

TokenExchangeService — calls the upstream authority with the secret header
HttpTokenClient — calls this server's ``POST /get-wa-token`` from a remote host
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

import aiohttp

from wa_embed.config import EmbedServerConfig
from wa_embed.messages import Credentials, Role

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"


class TokenExchangeError(Exception):
    """Raised when no token could be obtained. The message never carries the secret."""
    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class TokenSource(Protocol):
    """Anything a host controller can ask for a widget token."""

    async def fetch_token(self, credentials: Credentials) -> Dict[str, Any]:
        ...


def _redact(text: str, secret: str) -> str:
    if secret and secret in text:
        return text.replace(secret, "***")
    return text


def _upstream_detail(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        for key in ("message", "error"):
            if body.get(key):
                return str(body[key])
    if isinstance(body, str) and body.strip():
        return body.strip()[:200]
    return fallback


class TokenExchangeService:
    """The only component holding the upstream secret.

    Makes exactly one upstream attempt per call; retries are the caller's
    decision.
    """

    def __init__(self, config: EmbedServerConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session

    def _new_session(self) -> aiohttp.ClientSession:
        if self.config.upstream_timeout:
            return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.config.upstream_timeout))
        return aiohttp.ClientSession()

    async def issue_token(self, email: str, name: str, role: Role | str) -> Dict[str, Any]:
        """Request a token for the given claims.

        :return: The upstream response body, unmodified
        :raises TokenExchangeError: On any transport, status or body failure
        """
        if not self.config.wa_api_url:
            raise TokenExchangeError("Upstream URL is not configured")

        role_value = role.value if isinstance(role, Role) else role
        payload = {"email": email, "name": name, "role": role_value}
        headers = {API_KEY_HEADER: self.config.wa_api_key}
        secret = self.config.wa_api_key

        session = self._session
        owns_session = session is None
        if owns_session:
            session = self._new_session()
        try:
            async with session.post(self.config.token_endpoint, json=payload, headers=headers) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = await resp.text(errors="replace")
                if resp.status < 200 or resp.status >= 300:
                    detail = _upstream_detail(body, resp.reason or "error")
                    raise TokenExchangeError(
                        _redact(f"Upstream returned {resp.status}: {detail}", secret),
                        status=resp.status,
                    )
                if not isinstance(body, dict):
                    raise TokenExchangeError("Upstream body is not a JSON object", status=resp.status)
                logger.info(f"[TOKEN] Issued token for {email} ({role_value})")
                return body
        except TokenExchangeError as e:
            logger.error(f"[TOKEN] Error fetching WA token: {e}")
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            message = _redact(f"{type(e).__name__}: {e}", secret)
            logger.error(f"[TOKEN] Error fetching WA token: {message}")
            raise TokenExchangeError(message) from None
        finally:
            if owns_session:
                await session.close()

    async def fetch_token(self, credentials: Credentials) -> Dict[str, Any]:
        return await self.issue_token(credentials.email, credentials.name, credentials.role)


class HttpTokenClient:
    """Token source for host controllers that reach the backend over HTTP."""

    def __init__(self, base_url: str, path: str = "/get-wa-token"):
        self.url = f"{base_url.rstrip('/')}{path}"

    async def fetch_token(self, credentials: Credentials) -> Dict[str, Any]:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(self.url, json=credentials.to_payload()) as resp:
                    try:
                        body = await resp.json(content_type=None)
                    except ValueError:
                        body = None
                    if resp.status != 200:
                        detail = _upstream_detail(body, f"Request failed with status code {resp.status}")
                        raise TokenExchangeError(detail, status=resp.status)
                    if not isinstance(body, dict):
                        raise TokenExchangeError("Token endpoint body is not a JSON object")
                    return body
        except aiohttp.ClientError as e:
            raise TokenExchangeError(f"{type(e).__name__}: {e}") from None
