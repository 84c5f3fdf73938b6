"""
tests/conftest.py -- Shared test fixtures for ChatLink.

This module provides:
  - FakeChatPlatform: an in-process stand-in for the chat platform's REST API,
    served through httpx.MockTransport so no test touches the network
  - settings / codec / store / gateway / orchestrator: unit-level fixtures
  - api_client: TestClient wired to in-memory stores and the fake platform

Design: route tests use a named shared-memory SQLite URI (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG, rate limits and allowed hosts must be set before any api/auth import so
get_settings() picks them up on first (cached) construction.
"""

from __future__ import annotations

import hashlib
import hmac
import itertools
import json
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from typing import Any, Optional

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import httpx
import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.store import UserStore
from chat.crypto import CredentialCodec, generate_key
from chat.gateway import RemoteSessionGateway
from chat.sync import SyncOrchestrator
from core.config import Settings

APP_ID = "4242"
AUTH_KEY = "test-auth-key"
AUTH_SECRET = "test-auth-secret"
API_URL = "https://chat.test"


# ---------------------------------------------------------------------------
# Fake chat platform
# ---------------------------------------------------------------------------


class FakeChatPlatform:
    """Minimal in-memory model of the chat platform REST API.

    Accounts live in self.accounts keyed by remote id. Deleted accounts stay in
    the dict with deleted=True so tests can assert a former id is unreachable.

    allow_duplicate_logins=True mimics a platform that does not refuse a second
    signup with the same login.

    override(method, path, fn) replaces one endpoint: fn(request) returns an
    httpx.Response or raises an httpx exception.
    """

    def __init__(self, allow_duplicate_logins: bool = False, first_id: int = 1000) -> None:
        self.allow_duplicate_logins = allow_duplicate_logins
        self.accounts: dict[int, dict[str, Any]] = {}
        self.sessions: dict[str, Optional[int]] = {}
        self.dialogs: list[dict[str, Any]] = []
        self.events: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self._ids = itertools.count(first_id)
        self._tokens = itertools.count(1)
        self._overrides: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}

    # -- test helpers -----------------------------------------------------

    def override(self, method: str, path: str, fn: Callable[[httpx.Request], httpx.Response]) -> None:
        self._overrides[(method, path)] = fn

    def clear_overrides(self) -> None:
        self._overrides.clear()

    def respond(self, method: str, path: str, status: int = 200, json: Any = None) -> None:
        self.override(method, path, lambda request: httpx.Response(status, json=json))

    def fail(self, method: str, path: str, exc_type: type = httpx.ConnectError) -> None:
        def _raise(request: httpx.Request) -> httpx.Response:
            raise exc_type("simulated transport failure", request=request)

        self.override(method, path, _raise)

    def add_account(self, login: str, password: str, full_name: str = "") -> int:
        remote_id = next(self._ids)
        self.accounts[remote_id] = {
            "id": remote_id,
            "login": login,
            "email": login,
            "password": password,
            "full_name": full_name,
            "deleted": False,
        }
        return remote_id

    def live_account(self, remote_id: int) -> Optional[dict[str, Any]]:
        account = self.accounts.get(remote_id)
        return account if account and not account["deleted"] else None

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # -- request dispatch -------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, request.url.path
        override = self._overrides.get((method, path))
        if override is not None:
            return override(request)

        if method == "POST" and path == "/session":
            return self._create_session(request)

        token = request.headers.get("CB-Token")
        if token not in self.sessions:
            return httpx.Response(401, json={"errors": ["Token is required"]})
        session_user = self.sessions[token]

        if method == "POST" and path == "/users":
            return self._signup(request)
        if path.startswith("/users/") and method in ("PUT", "DELETE"):
            return self._user_update_or_delete(request, session_user, int(path.rsplit("/", 1)[1]))
        if method == "POST" and path == "/chat/Dialog":
            return self._dialog(request, session_user)
        if method == "POST" and path == "/events":
            return self._event(request, session_user)
        return httpx.Response(404, json={"errors": ["Not found"]})

    def _create_session(self, request: httpx.Request) -> httpx.Response:
        body = _json(request)
        user = body.get("user")
        params = {k: v for k, v in body.items() if k not in ("signature", "user")}
        if user:
            params["user[login]"] = user["login"]
            params["user[password]"] = user["password"]
        message = "&".join(f"{k}={params[k]}" for k in sorted(params))
        expected = hmac.new(AUTH_SECRET.encode(), message.encode(), hashlib.sha1).hexdigest()
        if body.get("signature") != expected or str(body.get("application_id")) != APP_ID:
            return httpx.Response(422, json={"errors": ["Unexpected signature"]})

        user_id = None
        if user:
            match = [
                a
                for a in self.accounts.values()
                if not a["deleted"] and a["login"] == user["login"] and a["password"] == user["password"]
            ]
            if not match:
                return httpx.Response(401, json={"errors": ["Unauthorized"]})
            user_id = match[0]["id"]

        token = f"tok-{next(self._tokens)}"
        self.sessions[token] = user_id
        return httpx.Response(201, json={"session": {"token": token, "user_id": user_id}})

    def _signup(self, request: httpx.Request) -> httpx.Response:
        user = _json(request)["user"]
        if not self.allow_duplicate_logins and any(
            a["login"] == user["login"] and not a["deleted"] for a in self.accounts.values()
        ):
            return httpx.Response(422, json={"errors": {"login": ["has already been taken"]}})
        remote_id = self.add_account(user["login"], user["password"], user.get("full_name", ""))
        account = {k: v for k, v in self.accounts[remote_id].items() if k not in ("password", "deleted")}
        return httpx.Response(201, json={"user": account})

    def _user_update_or_delete(self, request: httpx.Request, session_user: Optional[int], remote_id: int) -> httpx.Response:
        if session_user != remote_id or self.live_account(remote_id) is None:
            return httpx.Response(403, json={"errors": ["Forbidden"]})
        account = self.accounts[remote_id]
        if request.method == "DELETE":
            account["deleted"] = True
            return httpx.Response(200)
        changes = _json(request)["user"]
        account.update({k: changes[k] for k in ("login", "email") if k in changes})
        return httpx.Response(200, json={"user": {k: account[k] for k in ("id", "login", "email")}})

    def _dialog(self, request: httpx.Request, session_user: Optional[int]) -> httpx.Response:
        body = _json(request)
        dialog = {
            "_id": f"dlg{len(self.dialogs) + 1}",
            "type": body["type"],
            "user_id": session_user,
            "occupants_ids": sorted({session_user, *body["occupants_ids"]}),
        }
        self.dialogs.append(dialog)
        return httpx.Response(201, json=dialog)

    def _event(self, request: httpx.Request, session_user: Optional[int]) -> httpx.Response:
        event = _json(request)["event"]
        self.events.append({"sender": session_user, **event})
        return httpx.Response(201, json=[{"event": {"id": len(self.events), **event}}])


def _json(request: httpx.Request) -> dict[str, Any]:
    return json.loads(request.content or b"{}")


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=True,
        crypto_key=generate_key(),
        ccube_app_id=APP_ID,
        ccube_auth_key=AUTH_KEY,
        ccube_auth_secret=AUTH_SECRET,
        ccube_api_url=API_URL,
        remote_timeout_seconds=2.0,
    )


@pytest.fixture
def codec(settings: Settings) -> CredentialCodec:
    return CredentialCodec(settings.crypto_key)


@pytest.fixture
def platform() -> FakeChatPlatform:
    return FakeChatPlatform()


@pytest.fixture
def gateway(settings: Settings, platform: FakeChatPlatform) -> RemoteSessionGateway:
    return RemoteSessionGateway(settings, transport=platform.transport())


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def orchestrator(
    store: UserStore, codec: CredentialCodec, gateway: RemoteSessionGateway, settings: Settings
) -> SyncOrchestrator:
    return SyncOrchestrator(store, codec, gateway, settings)


# ---------------------------------------------------------------------------
# API integration fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, orchestrator: SyncOrchestrator):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.sync = orchestrator
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, FakeChatPlatform, UserStore], None, None]:
    """Yield (client, platform, store) for API integration tests.

    One client per test module. Tests register their own users with unique
    emails, so they do not depend on execution order.
    """
    test_settings = Settings(
        debug=True,
        crypto_key=generate_key(),
        ccube_app_id=APP_ID,
        ccube_auth_key=AUTH_KEY,
        ccube_auth_secret=AUTH_SECRET,
        ccube_api_url=API_URL,
    )
    fake = FakeChatPlatform()
    user_store = UserStore(db_url="sqlite:///file:test_users_api?mode=memory&cache=shared&uri=true")
    orchestrator = SyncOrchestrator(
        user_store,
        CredentialCodec(test_settings.crypto_key),
        RemoteSessionGateway(test_settings, transport=fake.transport()),
        test_settings,
    )

    app.router.lifespan_context = _patch_lifespan(user_store, orchestrator)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, fake, user_store

    user_store.close()
