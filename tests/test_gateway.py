"""Unit tests for chat/gateway.py -- scoped remote sessions.

Covers:
- anonymous and user-scoped sessions carry a valid signature and token
- each open_session() call creates a new session and closes its HTTP client
- bad credentials -> RemoteAuthError; outage / timeout / 5xx / 429 -> RemoteUnavailableError
- credentials never show up in repr()
"""

import asyncio

import httpx
import pytest

from chat.errors import RemoteAuthError, RemoteUnavailableError
from chat.gateway import RemoteCredentials, RemoteSessionGateway


async def _open(gateway: RemoteSessionGateway, credentials=None):
    async with gateway.open_session(credentials) as session:
        return session


class TestOpenSession:
    def test_anonymous_session(self, gateway, platform):
        session = asyncio.run(_open(gateway))
        assert session.token in platform.sessions
        assert session.user_id is None

    def test_user_session(self, gateway, platform):
        remote_id = platform.add_account("a@x.com", "pw")
        session = asyncio.run(_open(gateway, RemoteCredentials("a@x.com", "pw")))
        assert session.user_id == remote_id
        assert platform.sessions[session.token] == remote_id

    def test_sessions_are_not_reused(self, gateway, platform):
        first = asyncio.run(_open(gateway))
        second = asyncio.run(_open(gateway))
        assert first.token != second.token
        assert len(platform.sessions) == 2

    def test_client_closed_after_block(self, gateway):
        session = asyncio.run(_open(gateway))
        assert session.client.is_closed

    def test_client_closed_when_block_raises(self, gateway):
        captured = {}

        async def run():
            async with gateway.open_session() as session:
                captured["session"] = session
                raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            asyncio.run(run())
        assert captured["session"].client.is_closed

    def test_request_sends_token_header(self, gateway, platform):
        async def run():
            async with gateway.open_session() as session:
                await session.request("POST", "/events", json={"event": {}})
                return session.token

        token = asyncio.run(run())
        assert platform.requests[-1].headers["CB-Token"] == token


class TestSessionErrors:
    def test_wrong_password_is_auth_error(self, gateway, platform):
        platform.add_account("a@x.com", "pw")
        with pytest.raises(RemoteAuthError):
            asyncio.run(_open(gateway, RemoteCredentials("a@x.com", "wrong")))

    def test_unknown_login_is_auth_error(self, gateway):
        with pytest.raises(RemoteAuthError):
            asyncio.run(_open(gateway, RemoteCredentials("ghost@x.com", "pw")))

    def test_bad_app_keys_is_unavailable(self, settings, platform):
        bad = settings.model_copy(update={"ccube_auth_secret": "wrong-secret"})
        gateway = RemoteSessionGateway(bad, transport=platform.transport())
        with pytest.raises(RemoteUnavailableError):
            asyncio.run(_open(gateway))

    @pytest.mark.parametrize("exc_type", [httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout])
    def test_transport_failure_is_unavailable(self, gateway, platform, exc_type):
        platform.fail("POST", "/session", exc_type)
        with pytest.raises(RemoteUnavailableError):
            asyncio.run(_open(gateway))

    def test_server_error_is_unavailable(self, gateway, platform):
        platform.respond("POST", "/session", status=503, json={"errors": ["maintenance"]})
        with pytest.raises(RemoteUnavailableError):
            asyncio.run(_open(gateway, RemoteCredentials("a@x.com", "pw")))

    def test_malformed_session_body_is_unavailable(self, gateway, platform):
        platform.respond("POST", "/session", status=201, json={"unexpected": True})
        with pytest.raises(RemoteUnavailableError):
            asyncio.run(_open(gateway))

    def test_call_failure_after_session_is_unavailable(self, gateway, platform):
        platform.fail("POST", "/events")

        async def run():
            async with gateway.open_session() as session:
                await session.request("POST", "/events", json={})

        with pytest.raises(RemoteUnavailableError):
            asyncio.run(run())

    def test_rate_limited_call_is_unavailable(self, gateway, platform):
        platform.respond("POST", "/events", status=429, json={"errors": ["Too many requests"]})

        async def run():
            async with gateway.open_session() as session:
                await session.request("POST", "/events", json={})

        with pytest.raises(RemoteUnavailableError):
            asyncio.run(run())

    def test_rate_limited_user_session_is_unavailable(self, gateway, platform):
        platform.add_account("a@x.com", "pw")
        platform.respond("POST", "/session", status=429, json={"errors": ["Too many requests"]})
        with pytest.raises(RemoteUnavailableError) as excinfo:
            asyncio.run(_open(gateway, RemoteCredentials("a@x.com", "pw")))
        assert not isinstance(excinfo.value, RemoteAuthError)

    def test_call_returning_401_is_auth_error(self, gateway, platform):
        platform.respond("POST", "/events", status=401, json={"errors": ["expired"]})

        async def run():
            async with gateway.open_session() as session:
                await session.request("POST", "/events", json={})

        with pytest.raises(RemoteAuthError):
            asyncio.run(run())


def test_credentials_repr_hides_password():
    creds = RemoteCredentials("a@x.com", "super-secret")
    assert "super-secret" not in repr(creds)
    assert "a@x.com" in repr(creds)
