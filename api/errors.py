"""
api/errors.py -- Maps a failed SyncResult onto an HTTP error.

The sync layer never picks status codes. Route handlers call
raise_for_sync(result) after every orchestrator call; the app-level
HTTPException handler in api/main.py renders the standard error envelope.

  CredentialDecodeError  -> 500  (stored secret unreadable; internal fault)
  RemoteAuthError        -> 500  (stored credentials out of sync with remote)
  RemoteUnavailableError -> 503  + Retry-After (client may retry)
  RemoteRejected         -> 409  (platform declined, e.g. duplicate login)
  LocalCommitFailed      -> 500  (remote changed, local write failed; queued)
  NotLinked              -> 409  (user has no chat account)
"""

from __future__ import annotations

from fastapi import HTTPException

from chat.errors import ErrorKind
from chat.sync import SyncResult

RETRY_AFTER_SECONDS = 30

_STATUS: dict[ErrorKind, tuple[int, str, str]] = {
    ErrorKind.CREDENTIAL_DECODE: (500, "credential_corrupt", "Stored chat credentials could not be read."),
    ErrorKind.REMOTE_AUTH: (500, "remote_auth_failed", "Chat service refused the stored credentials."),
    ErrorKind.REMOTE_UNAVAILABLE: (503, "remote_unavailable", "Chat service is unavailable. Try again later."),
    ErrorKind.REMOTE_REJECTED: (409, "remote_rejected", "Chat service rejected the request."),
    ErrorKind.LOCAL_COMMIT_FAILED: (500, "local_commit_failed", "Chat service changed but the local update failed."),
    ErrorKind.NOT_LINKED: (409, "not_linked", "User has no linked chat account."),
}


def raise_for_sync(result: SyncResult) -> None:
    """Raise HTTPException for a failed result; return silently on success."""
    if result.ok:
        return
    status, code, message = _STATUS.get(
        result.error_kind, (500, "internal_error", "An unexpected error occurred.")
    )
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if status == 503 else None
    detail: dict = {"code": code, "message": message}
    # Remote rejection text is user-actionable (e.g. "login has already been taken").
    # Internal failure messages stay in the log.
    if result.error_kind is ErrorKind.REMOTE_REJECTED and result.message:
        detail["detail"] = result.message
    raise HTTPException(status_code=status, detail=detail, headers=headers)
