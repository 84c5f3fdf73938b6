"""
chat/crypto.py -- Reversible protection for the remote chat password.

The remote platform authenticates every user-scoped session with login +
password, so the password must be recoverable. It is encrypted (not hashed)
with Fernet: AES-128-CBC plus HMAC-SHA256, random IV per token. Each token is
self-contained, so the same ciphertext can be decrypted any number of times.

Tampered, truncated or foreign-key ciphertext fails the HMAC check and raises
CredentialDecodeError. A decode failure must abort the operation in progress;
it is never treated as an empty password.
"""

from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken

from chat.errors import CredentialDecodeError


def generate_key() -> str:
    """Return a fresh urlsafe-base64 Fernet key suitable for CRYPTO_KEY."""
    return Fernet.generate_key().decode("ascii")


class CredentialCodec:
    """Encrypts and decrypts secondary credentials with one process-wide key.

    Raises ValueError at construction if the key is not a valid Fernet key,
    so a misconfigured deployment fails at startup rather than on first use.
    """

    def __init__(self, key: str | bytes) -> None:
        if isinstance(key, str):
            key = key.encode("ascii")
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str | None) -> str:
        if not isinstance(ciphertext, str) or not ciphertext:
            raise CredentialDecodeError("Stored remote secret is missing.")
        try:
            raw = self._fernet.decrypt(ciphertext.encode("ascii"))
            return raw.decode("utf-8")
        except (InvalidToken, UnicodeError) as exc:
            raise CredentialDecodeError("Stored remote secret could not be decrypted.") from exc
