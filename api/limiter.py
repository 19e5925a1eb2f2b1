"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/auth.py (to apply the login limit with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

The login limit is a fixed window per remote address. The auth core keeps its
failure responses uniform so that counting them tells an attacker nothing.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://", strategy="fixed-window")


def login_rate_limit() -> str:
    """Resolved per request so tests can change LOGIN_RATE_LIMIT via get_settings.cache_clear()."""
    return get_settings().login_rate_limit
