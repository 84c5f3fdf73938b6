"""
chat/operations.py -- Remote identity operations.

Each function opens the session it needs, performs exactly one platform call,
and returns a RemoteResult. Session and transport failures are raised as
SyncError subclasses (see chat/gateway.py); the orchestrator classifies them.
A signup that failed after it was sent raises SignupOutcomeUnknown, since the
account may exist anyway.

A call counts as rejected when the platform answers 4xx, or answers 2xx with a
body carrying "success": false.

create_remote_account is NOT idempotent. Two calls with the same email create
two remote accounts unless the platform refuses the duplicate, so nothing in
this module retries.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from chat.errors import RemoteUnavailableError, SignupOutcomeUnknown
from chat.gateway import RemoteCredentials, RemoteSessionGateway

# Private one-to-one dialog in the platform's dialog type numbering.
PRIVATE_DIALOG_TYPE = 3

# The request never left the client, so the platform cannot have acted on it.
_NOT_SENT = (httpx.ConnectError, httpx.ConnectTimeout)


@dataclass(frozen=True)
class RemoteResult:
    ok: bool
    value: Any = None
    error_detail: Optional[str] = None


def _body(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return None


def _error_text(body: Any, resp: httpx.Response) -> str:
    """Flatten the platform's error payload into one line."""
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, dict):
            return "; ".join(f"{k}: {', '.join(map(str, v)) if isinstance(v, list) else v}" for k, v in errors.items())
        if isinstance(errors, list):
            return "; ".join(map(str, errors))
        if body.get("message"):
            return str(body["message"])
    return f"HTTP {resp.status_code}"


def _to_result(resp: httpx.Response) -> RemoteResult:
    body = _body(resp)
    if resp.status_code >= 400 or (isinstance(body, dict) and body.get("success") is False):
        return RemoteResult(ok=False, error_detail=_error_text(body, resp))
    return RemoteResult(ok=True, value=body)


async def create_remote_account(gateway: RemoteSessionGateway, name: str, email: str, password: str) -> RemoteResult:
    """Sign up a new remote account. value is the remote-assigned user id.

    Raises SignupOutcomeUnknown when the signup call itself failed after it
    was sent (read timeout, dropped connection, 5xx, 429). Session-open failures
    propagate unchanged: no signup was attempted.
    """
    async with gateway.open_session() as session:
        try:
            resp = await session.request(
                "POST",
                "/users",
                json={"user": {"login": email, "email": email, "password": password, "full_name": name}},
            )
        except RemoteUnavailableError as exc:
            if isinstance(exc.__cause__, _NOT_SENT):
                raise
            raise SignupOutcomeUnknown(f"Signup for {email} may have been applied: {exc}") from exc
    result = _to_result(resp)
    if not result.ok:
        return result
    try:
        remote_id = int(result.value["user"]["id"])
    except (KeyError, TypeError, ValueError):
        return RemoteResult(ok=False, error_detail="Signup response did not include a user id")
    return RemoteResult(ok=True, value=remote_id)


async def find_remote_account(gateway: RemoteSessionGateway, login: str, password: str) -> RemoteResult:
    """Resolve login + password to the remote id of an existing account.

    Raises RemoteAuthError if the platform refuses the credentials.
    """
    async with gateway.open_session(RemoteCredentials(login, password)) as session:
        remote_id = session.user_id
    if remote_id is None:
        return RemoteResult(ok=False, error_detail="Session response did not include a user id")
    return RemoteResult(ok=True, value=int(remote_id))


async def delete_remote_account(
    gateway: RemoteSessionGateway, remote_id: int, login: str, password: str
) -> RemoteResult:
    """Delete a remote account, authenticated as that account."""
    async with gateway.open_session(RemoteCredentials(login, password)) as session:
        resp = await session.request("DELETE", f"/users/{int(remote_id)}")
    return _to_result(resp)


async def update_remote_email(
    gateway: RemoteSessionGateway, remote_id: int, login: str, password: str, new_email: str
) -> RemoteResult:
    """Change a remote account's login and email. login is the CURRENT email."""
    async with gateway.open_session(RemoteCredentials(login, password)) as session:
        resp = await session.request(
            "PUT",
            f"/users/{int(remote_id)}",
            json={"user": {"login": new_email, "email": new_email}},
        )
    return _to_result(resp)


async def create_direct_channel(
    gateway: RemoteSessionGateway, login: str, password: str, peer_remote_id: int
) -> RemoteResult:
    """Open a private dialog between the session's account and a peer. value is the dialog."""
    async with gateway.open_session(RemoteCredentials(login, password)) as session:
        resp = await session.request(
            "POST",
            "/chat/Dialog",
            json={"type": PRIVATE_DIALOG_TYPE, "occupants_ids": [int(peer_remote_id)]},
        )
    return _to_result(resp)


def encode_push_message(payload: dict[str, Any]) -> str:
    """JSON-serialise and base64-encode a push payload for the events API."""
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


async def send_push_notification(
    gateway: RemoteSessionGateway,
    login: str,
    password: str,
    target_user_ids: list[int],
    title: str,
    content: str,
    environment: str = "development",
) -> RemoteResult:
    """Deliver a push event to one or more remote accounts."""
    message = encode_push_message({"title": title, "content": content, "targetUserIds": list(target_user_ids)})
    event = {
        "event": {
            "notification_type": "push",
            "environment": environment,
            "user": {"ids": ",".join(str(int(i)) for i in target_user_ids)},
            "message": message,
        }
    }
    async with gateway.open_session(RemoteCredentials(login, password)) as session:
        resp = await session.request("POST", "/events", json=event)
    return _to_result(resp)
