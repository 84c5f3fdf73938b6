"""
chat/gateway.py -- Scoped sessions against the remote messaging platform.

Every remote operation opens its own session and drops it when done:

    async with gateway.open_session(RemoteCredentials(email, password)) as session:
        resp = await session.request("DELETE", f"/users/{remote_id}")

Two modes:
  anonymous   -- app-level session (no user). Used only for signup.
  user-scoped -- session authenticated as an existing remote account. Used for
                 delete, update email, dialog creation and push.

Session creation is a signed POST /session: the sorted request parameters are
HMAC-SHA1 signed with the application's auth secret. The returned token is
sent as the CB-Token header on the follow-up call.

Each session owns a dedicated httpx.AsyncClient configured with the explicit
per-call timeout from Settings. Leaving the `async with` block closes the
client on both the success and error paths. The token is never persisted or
shared with another operation.

Error mapping:
  transport error / timeout / 5xx / 429 -> RemoteUnavailableError
  4xx on a user-scoped session create   -> RemoteAuthError
  4xx on an anonymous session create    -> RemoteUnavailableError (app keys)
  401 on a call made with a live token  -> RemoteAuthError
Other 4xx responses to calls are returned unchanged; operations.py decides
whether they are rejections.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from chat.errors import RemoteAuthError, RemoteUnavailableError
from core.config import Settings

logger = logging.getLogger("chatlink.gateway")


@dataclass(frozen=True)
class RemoteCredentials:
    """Login + password of a remote account. The password never appears in repr()."""

    login: str
    password: str = field(repr=False)


@dataclass
class RemoteSession:
    """A live, operation-scoped session. Only valid inside open_session()."""

    client: httpx.AsyncClient
    token: str
    user_id: Optional[int] = None

    async def request(self, method: str, path: str, json: Optional[dict[str, Any]] = None) -> httpx.Response:
        """Send one authenticated call. Returns the response for 2xx/4xx."""
        try:
            resp = await self.client.request(method, path, json=json, headers={"CB-Token": self.token})
        except httpx.RequestError as exc:
            raise RemoteUnavailableError(f"{method} {path} failed: {exc.__class__.__name__}") from exc
        if resp.status_code >= 500 or resp.status_code == 429:
            raise RemoteUnavailableError(f"{method} {path} returned HTTP {resp.status_code}")
        if resp.status_code == 401:
            raise RemoteAuthError(f"{method} {path} rejected the session token")
        return resp


def _sign(params: dict[str, Any], secret: str) -> str:
    """HMAC-SHA1 over 'k1=v1&k2=v2...' with keys in sorted order."""
    message = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha1).hexdigest()


class RemoteSessionGateway:
    """Factory for scoped RemoteSession objects.

    Args:
        settings:  Application settings; supplies app id / keys, API URL and
                   the per-call timeout.
        transport: Optional httpx transport. Tests pass httpx.MockTransport.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._app_id = settings.ccube_app_id
        self._auth_key = settings.ccube_auth_key
        self._auth_secret = settings.ccube_auth_secret
        self._base_url = settings.ccube_api_url.rstrip("/")
        self._timeout = httpx.Timeout(settings.remote_timeout_seconds)
        self._transport = transport

    @asynccontextmanager
    async def open_session(self, credentials: Optional[RemoteCredentials] = None) -> AsyncIterator[RemoteSession]:
        mode = "user" if credentials is not None else "anonymous"
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            session = await self._create_session(client, credentials)
            logger.debug("Opened %s session (remote user_id=%s)", mode, session.user_id)
            try:
                yield session
            finally:
                logger.debug("Released %s session", mode)

    async def _create_session(
        self, client: httpx.AsyncClient, credentials: Optional[RemoteCredentials]
    ) -> RemoteSession:
        params: dict[str, Any] = {
            "application_id": self._app_id,
            "auth_key": self._auth_key,
            "nonce": secrets.randbelow(10**9),
            "timestamp": int(time.time()),
        }
        if credentials is not None:
            params["user[login]"] = credentials.login
            params["user[password]"] = credentials.password
        body: dict[str, Any] = {k: v for k, v in params.items() if not k.startswith("user[")}
        body["signature"] = _sign(params, self._auth_secret)
        if credentials is not None:
            body["user"] = {"login": credentials.login, "password": credentials.password}

        try:
            resp = await client.post("/session", json=body)
        except httpx.RequestError as exc:
            raise RemoteUnavailableError(f"Session request failed: {exc.__class__.__name__}") from exc

        if resp.status_code >= 500 or resp.status_code == 429:
            raise RemoteUnavailableError(f"Session request returned HTTP {resp.status_code}")
        if resp.status_code >= 400:
            if credentials is not None:
                raise RemoteAuthError(f"Remote platform refused credentials for {credentials.login}")
            raise RemoteUnavailableError(f"Application session refused (HTTP {resp.status_code})")

        try:
            data = resp.json()["session"]
            return RemoteSession(client=client, token=data["token"], user_id=data.get("user_id"))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise RemoteUnavailableError("Malformed session response") from exc
