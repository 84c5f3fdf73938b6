"""
api/routes/v1/users.py -- User lifecycle and chat endpoints.

Routes:
  GET    /api/v1/users                -- list all users (requires auth)
  PUT    /api/v1/users/{id}           -- change own email, local + remote
  DELETE /api/v1/users/{id}           -- delete own account, local + remote
  POST   /api/v1/users/dialogs        -- open a private chat dialog
  POST   /api/v1/users/notifications  -- send a push notification

Every local mutation here goes through SyncOrchestrator, which applies it only
after the remote platform confirmed the matching change. Handlers never call
user_store.update_user() / delete_user() directly.

Ownership: a user may only change, delete, or act as themselves. Any other
target is a 403, checked before any remote call.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.errors import raise_for_sync
from api.models import DialogCreateRequest, EmailChangeRequest, PushRequest, SyncResponse, UserResponse
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from chat.sync import SyncOrchestrator

router = APIRouter()


def _forbidden() -> HTTPException:
    return HTTPException(
        status_code=403,
        detail={"code": "forbidden", "message": "You can only act on your own account."},
    )


def _not_found(message: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": message})


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> list[UserResponse]:
    """List all users, newest first."""
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_user(u) for u in user_store.list_users()]


@router.put("/users/{user_id}", response_model=SyncResponse)
async def change_email(
    request: Request,
    user_id: int,
    body: EmailChangeRequest,
    current_user: User = Depends(get_current_user),
) -> SyncResponse:
    """Change a user's email on the chat platform, then locally.

    404 if current_email does not belong to user_id. 400 if new_email is taken.
    If the remote update fails, the local email is left unchanged.
    """
    if user_id != current_user.id:
        raise _forbidden()
    user_store: UserStore = request.app.state.user_store
    orchestrator: SyncOrchestrator = request.app.state.sync

    target = user_store.get_by_email(body.current_email)
    if target is None or target.id != user_id:
        raise _not_found("Current email was not found.")
    if body.new_email == body.current_email:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "New email matches the current email."},
        )
    if user_store.get_by_email(body.new_email) is not None:
        raise HTTPException(
            status_code=400,
            detail={"code": "email_taken", "message": "Email already taken by another user."},
        )

    result = await orchestrator.change_email(target, body.new_email)
    raise_for_sync(result)
    return SyncResponse(data=result.data, message="Email successfully changed.")


@router.delete("/users/{user_id}", response_model=SyncResponse)
async def delete_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(get_current_user),
) -> SyncResponse:
    """Delete a user's chat account, then the local record."""
    if user_id != current_user.id:
        raise _forbidden()
    user_store: UserStore = request.app.state.user_store
    orchestrator: SyncOrchestrator = request.app.state.sync

    target = user_store.get_by_id(user_id)
    if target is None:
        raise _not_found("User not found.")

    result = await orchestrator.delete(target)
    raise_for_sync(result)
    return SyncResponse(data=result.data, message="User deleted.")


@router.post("/users/dialogs", response_model=SyncResponse, status_code=201)
async def create_dialog(
    request: Request,
    body: DialogCreateRequest,
    current_user: User = Depends(get_current_user),
) -> SyncResponse:
    """Open a private dialog between creator_id and target_id (remote ids).

    creator_id must be the caller's own remote id. target_id may be any remote
    account; the platform validates it.
    """
    user_store: UserStore = request.app.state.user_store
    orchestrator: SyncOrchestrator = request.app.state.sync

    creator = user_store.get_by_remote_id(body.creator_id)
    if creator is None:
        raise _not_found("Creator not found.")
    if creator.id != current_user.id:
        raise _forbidden()

    result = await orchestrator.create_dialog(creator, body.target_id)
    raise_for_sync(result)
    return SyncResponse(data=result.data)


@router.post("/users/notifications", response_model=SyncResponse)
async def send_notification(
    request: Request,
    body: PushRequest,
    current_user: User = Depends(get_current_user),
) -> SyncResponse:
    """Send a push notification from the caller to one or more remote ids."""
    orchestrator: SyncOrchestrator = request.app.state.sync
    result = await orchestrator.push_notification(current_user, body.target_ids, body.title, body.content)
    raise_for_sync(result)
    return SyncResponse(data=result.data, message="Notification sent.")
