"""
chat/sync.py -- SyncOrchestrator: keeps local users and remote chat accounts in step.

Every public method is a coroutine that returns a SyncResult and never raises
for an expected failure (remote rejection, outage, bad credentials, corrupt
stored secret, failed local write). Route handlers map SyncResult.error_kind
to an HTTP status; nothing here writes a response.

Per-operation state machine:

    START -> CREDENTIAL_READY -> SESSION_READY -> REMOTE_CALL_DONE -> LOCAL_COMMITTED | FAILED

Ordering rules:
  register      -- remote signup first; the local insert carries remote_id and
                   remote_secret_enc in the same statement, so a user row never
                   exists half-linked. Remote failure => no user row.
                   A signup that was sent but not answered is queued as
                   ambiguous_signup. A later retry that the platform rejects
                   adopts the existing account if the password opens it.
                   Any later successful registration of that login resolves
                   the entry.
  delete /      -- decode the stored secret, authenticate as the account with
  change_email     its CURRENT email, and only after remote success apply the
                   local delete / email update. Changing the local email first
                   would leave the remote account unreachable: its login is the
                   old email.
  create_dialog -- pass-through, no local state.
  push          -- pass-through, no local state.

When the remote side changed but the local write then failed, the remote
account is recorded in the remote_cleanup outbox and the result is
LocalCommitFailed. Nothing is retried automatically; create is not idempotent.

No lock spans the remote call and the local write. Two concurrent operations on
the same user (e.g. change_email racing delete) are not serialised here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from auth.models import RemoteCleanup, User
from auth.store import UserStore
from chat.crypto import CredentialCodec
from chat.errors import ErrorKind, RemoteAuthError, SignupOutcomeUnknown, SyncError
from chat.gateway import RemoteCredentials, RemoteSessionGateway
from chat.operations import (
    create_direct_channel,
    create_remote_account,
    delete_remote_account,
    find_remote_account,
    send_push_notification,
    update_remote_email,
)
from core.config import Settings

logger = logging.getLogger("chatlink.sync")

# Outbox reason for a signup that was sent but never confirmed.
AMBIGUOUS_SIGNUP = "ambiguous_signup"


@dataclass(frozen=True)
class SyncResult:
    """Discriminated outcome of one orchestrator operation."""

    ok: bool
    data: Any = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, data: Any = None) -> "SyncResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "SyncResult":
        return cls(ok=False, error_kind=kind, message=message)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": self.ok}
        if self.data is not None:
            out["data"] = self.data
        if self.error_kind is not None:
            out["errorKind"] = self.error_kind.value
        if self.message is not None:
            out["message"] = self.message
        return out


class SyncOrchestrator:
    """Facade over codec, gateway, remote operations and the local store.

    Built once at startup (api/main.py lifespan) and stored on app.state.
    """

    def __init__(
        self,
        store: UserStore,
        codec: CredentialCodec,
        gateway: RemoteSessionGateway,
        settings: Settings,
    ) -> None:
        self._store = store
        self._codec = codec
        self._gateway = gateway
        self._push_environment = settings.remote_push_environment

    # ------------------------------------------------------------------
    # Lifecycle operations (remote + local)
    # ------------------------------------------------------------------

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        hashed_password: Optional[str] = None,
        api_key_hash: Optional[str] = None,
    ) -> SyncResult:
        """Create the remote account, then insert the fully linked local user.

        password becomes the remote account's password; only its encrypted
        form is stored. hashed_password / api_key_hash are the caller's local
        credential fields and go into the same insert.

        data on success: {"user_id": int, "remote_id": int}.
        """
        logger.info("Remote signup started for %s", email)
        secret_enc = self._codec.encrypt(password)
        try:
            created = await create_remote_account(self._gateway, name, email, password)
        except SignupOutcomeUnknown as exc:
            self._flag_cleanup(None, email, secret_enc, AMBIGUOUS_SIGNUP)
            return self._failed("signup", email, exc)
        except SyncError as exc:
            return self._failed("signup", email, exc)

        pending: Optional[RemoteCleanup] = None
        if created.ok:
            remote_id: int = created.value
        else:
            pending = self._pending_signup(email)
            if pending is None:
                return self._rejected("signup", email, created.error_detail)
            # An earlier signup for this login may have created the account.
            # Adopt it only if the supplied password opens a session on it.
            try:
                found = await find_remote_account(self._gateway, email, password)
            except RemoteAuthError:
                return self._rejected("signup", email, created.error_detail)
            except SyncError as exc:
                return self._failed("signup", email, exc)
            if not found.ok:
                return self._rejected("signup", email, created.error_detail)
            remote_id = found.value
            logger.info("Adopting remote_id=%s from an earlier unconfirmed signup for %s", remote_id, email)
        logger.debug("Signup REMOTE_CALL_DONE for %s (remote_id=%s)", email, remote_id)

        user = User(
            name=name,
            email=email,
            hashed_password=hashed_password,
            api_key_hash=api_key_hash,
            remote_id=remote_id,
            remote_secret_enc=secret_enc,
        )
        try:
            user_id = self._store.create_user(user)
        except SQLAlchemyError as exc:
            logger.error("Local insert failed after remote signup for %s (remote_id=%s): %s", email, remote_id, exc)
            self._flag_cleanup(remote_id, email, secret_enc, "orphaned_signup")
            return SyncResult.failure(
                ErrorKind.LOCAL_COMMIT_FAILED,
                "Remote account was created but the local user could not be saved.",
            )
        # Logins are unique on the platform, so a registered login settles any
        # earlier unconfirmed signup for it.
        if pending is None:
            pending = self._pending_signup(email)
        if pending is not None:
            self._resolve_cleanup(pending)
        logger.info("Registered %s (user_id=%s, remote_id=%s)", email, user_id, remote_id)
        return SyncResult.success({"user_id": user_id, "remote_id": remote_id})

    async def delete(self, user: User) -> SyncResult:
        """Delete the remote account, then the local row.

        A user that was never linked has no remote counterpart; only the local
        row is removed.
        """
        if user.is_linked:
            try:
                creds = self._credentials_for(user)
                outcome = await delete_remote_account(self._gateway, user.remote_id, creds.login, creds.password)
            except SyncError as exc:
                return self._failed("delete", user.email, exc)
            if not outcome.ok:
                return self._rejected("delete", user.email, outcome.error_detail)
            logger.debug("Delete REMOTE_CALL_DONE for %s (remote_id=%s)", user.email, user.remote_id)

        try:
            self._store.delete_user(user.id)
        except SQLAlchemyError as exc:
            logger.error("Local delete failed after remote delete for %s: %s", user.email, exc)
            if user.is_linked:
                self._flag_cleanup(user.remote_id, user.email, user.remote_secret_enc, "local_delete_failed")
            return SyncResult.failure(
                ErrorKind.LOCAL_COMMIT_FAILED,
                "Remote account was deleted but the local user could not be removed.",
            )
        logger.info("Deleted user %s (user_id=%s)", user.email, user.id)
        return SyncResult.success({"user_id": user.id})

    async def change_email(self, user: User, new_email: str) -> SyncResult:
        """Move the remote login to new_email, then update the local email column."""
        if user.is_linked:
            try:
                creds = self._credentials_for(user)
                outcome = await update_remote_email(
                    self._gateway, user.remote_id, creds.login, creds.password, new_email
                )
            except SyncError as exc:
                return self._failed("email change", user.email, exc)
            if not outcome.ok:
                return self._rejected("email change", user.email, outcome.error_detail)
            logger.debug("Email change REMOTE_CALL_DONE for %s -> %s", user.email, new_email)

        try:
            self._store.update_user(user.id, email=new_email)
        except SQLAlchemyError as exc:
            logger.error("Local email update failed after remote update for %s: %s", user.email, exc)
            if user.is_linked:
                self._flag_cleanup(user.remote_id, new_email, user.remote_secret_enc, "local_email_update_failed")
            return SyncResult.failure(
                ErrorKind.LOCAL_COMMIT_FAILED,
                "Remote email was changed but the local user could not be updated.",
            )
        logger.info("Changed email %s -> %s (user_id=%s)", user.email, new_email, user.id)
        return SyncResult.success({"user_id": user.id, "email": new_email})

    # ------------------------------------------------------------------
    # Pass-through operations (remote only)
    # ------------------------------------------------------------------

    async def create_dialog(self, caller: User, peer_remote_id: int) -> SyncResult:
        """Open a private dialog from caller to peer_remote_id. data is the platform's dialog."""
        if not caller.is_linked:
            return self._not_linked("dialog", caller)
        try:
            creds = self._credentials_for(caller)
            outcome = await create_direct_channel(self._gateway, creds.login, creds.password, peer_remote_id)
        except SyncError as exc:
            return self._failed("dialog", caller.email, exc)
        if not outcome.ok:
            return self._rejected("dialog", caller.email, outcome.error_detail)
        return SyncResult.success(outcome.value)

    async def push_notification(
        self, sender: User, target_remote_ids: list[int], title: str, content: str
    ) -> SyncResult:
        """Send a push event to target_remote_ids, authenticated as sender."""
        if not sender.is_linked:
            return self._not_linked("push", sender)
        try:
            creds = self._credentials_for(sender)
            outcome = await send_push_notification(
                self._gateway,
                creds.login,
                creds.password,
                target_remote_ids,
                title,
                content,
                environment=self._push_environment,
            )
        except SyncError as exc:
            return self._failed("push", sender.email, exc)
        if not outcome.ok:
            return self._rejected("push", sender.email, outcome.error_detail)
        return SyncResult.success({"delivered_to": list(target_remote_ids)})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _credentials_for(self, user: User) -> RemoteCredentials:
        """CREDENTIAL_READY: decode the stored secret. Raises CredentialDecodeError."""
        return RemoteCredentials(login=user.email, password=self._codec.decrypt(user.remote_secret_enc))

    def _pending_signup(self, email: str) -> Optional[RemoteCleanup]:
        try:
            return self._store.find_pending_cleanup(email, AMBIGUOUS_SIGNUP)
        except SQLAlchemyError:
            logger.error("Could not look up unconfirmed signups for %s", email, exc_info=True)
            return None

    def _resolve_cleanup(self, entry: RemoteCleanup) -> None:
        try:
            self._store.resolve_cleanup(entry.id)
        except SQLAlchemyError:
            # The user is registered; a stale entry only costs an operator a look.
            logger.error("Could not resolve remote cleanup %s for %s", entry.id, entry.login, exc_info=True)

    def _flag_cleanup(self, remote_id: Optional[int], login: str, secret_enc: Optional[str], reason: str) -> None:
        try:
            self._store.enqueue_remote_cleanup(
                RemoteCleanup(remote_id=remote_id, login=login, remote_secret_enc=secret_enc, reason=reason)
            )
        except SQLAlchemyError:
            # Outbox write failed too; the log line is the only record left.
            logger.critical(
                "Could not record remote cleanup (remote_id=%s, login=%s, reason=%s)",
                remote_id,
                login,
                reason,
                exc_info=True,
            )
            return
        logger.warning("Queued remote cleanup for remote_id=%s (%s)", remote_id, reason)

    @staticmethod
    def _failed(operation: str, email: str, exc: SyncError) -> SyncResult:
        logger.warning("Remote %s failed for %s: %s (%s)", operation, email, exc, exc.kind.value)
        return SyncResult.failure(exc.kind, str(exc))

    @staticmethod
    def _rejected(operation: str, email: str, detail: Optional[str]) -> SyncResult:
        logger.warning("Remote platform rejected %s for %s: %s", operation, email, detail)
        return SyncResult.failure(ErrorKind.REMOTE_REJECTED, detail or f"Remote platform rejected the {operation}.")

    @staticmethod
    def _not_linked(operation: str, user: User) -> SyncResult:
        logger.warning("Remote %s skipped: user_id=%s has no remote account", operation, user.id)
        return SyncResult.failure(ErrorKind.NOT_LINKED, "User has no linked chat account.")
