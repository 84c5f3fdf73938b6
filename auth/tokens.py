"""
auth/tokens.py -- JWT, password hashing, and API key utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, email and expiry. Verification returns None on any failure --
       the route layer turns that into a 401.

  Passwords: bcrypt, used directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered [C1].

  API keys: one per user, issued at registration. secrets.token_hex(32) gives
       256 bits of entropy. We store HMAC-SHA256(SECRET_KEY, raw_key) so lookup
       is O(1); bcrypt's slowness is unnecessary for high-entropy keys.

  The remote chat password is NOT handled here. It must be recoverable, so it
  is encrypted (chat/crypto.py), never hashed.

Layer rule: no imports from api/ or chat/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("chatlink.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; the API layer caps passwords at
    72 characters so nothing is silently truncated for ASCII input.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1]. Computed once at module load.
_DUMMY_HASH: str = hash_password("chatlink_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, email: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with user identity and expiry.

    Args:
        user_id:        Numeric user ID stored in the DB.
        email:          Stored as the JWT subject claim.
        expire_seconds: Token lifetime. 0 (default) uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": email,
        "user_id": user_id,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
        if "user_id" not in payload:
            return None
        return payload
    except JWTError:
        return None


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists, so an attacker cannot
    enumerate registered emails by response time.

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# API key generation and hashing
# ---------------------------------------------------------------------------


def generate_api_key() -> str:
    """Generate a new API key in the format: cl_<64 hex chars>."""
    return f"cl_{secrets.token_hex(32)}"


def hash_api_key(raw_key: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_key) as a hex string."""
    return hmac.new(
        _settings.secret_key.encode(),
        raw_key.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
