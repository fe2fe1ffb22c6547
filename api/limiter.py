"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
that apply per-route limits with @limiter.limit(): login and self-registration.

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Limits are keyed by client IP. The limit strings themselves come from
Settings (LOGIN_RATE_LIMIT, REGISTER_RATE_LIMIT).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
