"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware) and api/routes/v1/auth.py
(per-route limits on login and register, the two unauthenticated writes).

A single shared instance keeps one in-memory counter store for every route.
Limits are keyed by client IP. Register is limited separately from login
because each signup creates an account on the chat platform.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
