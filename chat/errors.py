"""
chat/errors.py -- Failure taxonomy for the remote sync layer.

The exceptions are raised inside chat/ (codec, gateway) and caught by the
orchestrator, which turns them into a SyncResult carrying the matching
ErrorKind. Nothing in this module escapes SyncOrchestrator's public methods.

RemoteRejected and LocalCommitFailed have no exception class: they are
outcomes the orchestrator observes, not errors a lower layer raises.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Discriminator carried by a failed SyncResult (serialised as errorKind)."""

    CREDENTIAL_DECODE = "CredentialDecodeError"
    REMOTE_AUTH = "RemoteAuthError"
    REMOTE_UNAVAILABLE = "RemoteUnavailableError"
    REMOTE_REJECTED = "RemoteRejected"
    LOCAL_COMMIT_FAILED = "LocalCommitFailed"
    NOT_LINKED = "NotLinked"


class SyncError(Exception):
    """Base class for failures raised inside the sync layer."""

    kind: ErrorKind


class CredentialDecodeError(SyncError):
    """The stored remote secret could not be decrypted (corrupt or wrong key)."""

    kind = ErrorKind.CREDENTIAL_DECODE


class RemoteAuthError(SyncError):
    """The remote platform refused the stored credentials."""

    kind = ErrorKind.REMOTE_AUTH


class RemoteUnavailableError(SyncError):
    """Network failure, timeout, or remote outage. Safe for the client to retry."""

    kind = ErrorKind.REMOTE_UNAVAILABLE


class SignupOutcomeUnknown(RemoteUnavailableError):
    """The signup request was sent but no usable answer came back.

    The platform may have created the account. Raised only by
    create_remote_account, never for a failure while opening the session.
    """
