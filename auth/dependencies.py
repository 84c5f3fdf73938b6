"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Three auth methods are checked in priority order:
  1. JWT cookie ("access_token") -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients using JWTs.
  3. X-API-Key header -- the per-user key issued at registration.

All three converge on a User object after successful verification.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from chat/. May import fastapi because this module is
part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.tokens import decode_access_token, hash_api_key


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request via cookie, Bearer, or API key.

    Returns the authenticated User on success, None on any failure.
    """
    user_store = request.app.state.user_store

    token: str | None = request.cookies.get("access_token")
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    if token:
        payload = decode_access_token(token)
        if payload:
            user = user_store.get_by_id(payload["user_id"])
            if user is not None:
                return user

    raw_key = request.headers.get("X-API-Key", "")
    if raw_key:
        return user_store.get_by_api_key_hash(hash_api_key(raw_key))

    return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
