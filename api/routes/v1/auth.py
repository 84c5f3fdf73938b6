"""
api/routes/v1/auth.py -- Registration, login and identity endpoints.

Routes:
  POST /api/v1/auth/register  -- create local user + remote chat account
  POST /api/v1/auth/login     -- email/password login; sets JWT cookie
  POST /api/v1/auth/logout    -- clears cookie; 200
  GET  /api/v1/auth/me        -- current user info (requires auth)

Security:
  [H2] POST /login and POST /register are rate-limited per IP.
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on responses that carry credentials.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.errors import raise_for_sync
from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse, UserResponse
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    create_access_token,
    generate_api_key,
    hash_api_key,
    hash_password,
    set_auth_cookie,
)
from chat.sync import SyncOrchestrator
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/register: public -- self-service signup
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/logout:   public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:       requires auth (get_current_user)
router = APIRouter()


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
@limiter.limit(_settings.register_rate_limit)  # [H2]
async def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Register a user locally and on the chat platform.

    The remote account is created first. The local row is inserted only after
    that succeeds, with the remote linkage in the same insert. Any remote
    failure fails the whole request and nothing is stored locally.
    """
    user_store: UserStore = request.app.state.user_store
    orchestrator: SyncOrchestrator = request.app.state.sync

    if user_store.get_by_email(body.email) is not None:
        raise HTTPException(
            status_code=400,
            detail={"code": "email_taken", "message": "Email already registered."},
        )

    raw_key = generate_api_key()
    result = await orchestrator.register(
        name=body.name,
        email=body.email,
        password=body.password,
        hashed_password=hash_password(body.password),
        api_key_hash=hash_api_key(raw_key),
    )
    raise_for_sync(result)

    resp = JSONResponse(
        status_code=201,
        content=RegisterResponse(
            id=result.data["user_id"],
            name=body.name,
            email=body.email,
            api_key=raw_key,
            remote_id=result.data["remote_id"],
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_settings.login_rate_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set JWT cookie.

    Returns the same generic error for unknown email and wrong password.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    user_store.update_last_login(user.id)
    token = create_access_token(user.id, user.email)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            user_id=user.id,
            email=user.email,
        ).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


@router.get("/auth/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    return UserResponse.from_user(current_user)
