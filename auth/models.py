"""
auth/models.py -- Domain dataclasses for local identity entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work.

Layer rule: no imports from api/ or chat/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A locally registered identity and its link to the remote chat account.

    email is unique and doubles as the login for both the local password and
    the remote platform account.

    remote_id / remote_secret_enc are the linkage to the remote messaging
    platform. They are written together in the same insert that creates the
    row and are either both set or both None. The store rejects a half-linked
    row with a CHECK constraint.

    api_key_hash is HMAC-SHA256(SECRET_KEY, raw_key). The raw key is returned
    once at registration and never persisted.
    """

    name: str
    email: str
    id: int | None = None
    hashed_password: str | None = None
    api_key_hash: str | None = None
    remote_id: int | None = None
    remote_secret_enc: str | None = None  # Fernet token of the remote password
    created_at: str | None = None
    last_login: str | None = None

    @property
    def is_linked(self) -> bool:
        return self.remote_id is not None and self.remote_secret_enc is not None


@dataclass
class RemoteCleanup:
    """An outbox entry for a remote-side change with no local counterpart.

    Written when the remote platform accepted a change (signup, delete, email
    update) but the matching local write failed, or when a signup call failed
    after it was sent and the platform may or may not have created the account.
    A separate cleanup job reads pending entries (resolved_at is None) and
    reconciles them.

    reason is one of "orphaned_signup", "ambiguous_signup",
    "local_delete_failed", "local_email_update_failed". remote_id is None only
    for "ambiguous_signup": the platform never returned an id.
    """

    login: str
    reason: str
    remote_id: int | None = None
    remote_secret_enc: str | None = None
    id: int | None = None
    created_at: str | None = None
    resolved_at: str | None = None
