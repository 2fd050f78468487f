"""
api/limiter.py -- slowapi rate limiter construction.

create_app() builds one Limiter per application and hands it to both
SlowAPIMiddleware (via app.state.limiter) and create_auth_router() (to apply
per-route limits with @limiter.limit()).

Using a single instance per app ensures all of that app's routes share the
same in-memory counter store, and that two apps built in one process (tests)
never share counters or limits.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address


def create_limiter() -> Limiter:
    """Return a Limiter keyed on client IP with in-memory storage."""
    return Limiter(key_func=get_remote_address, storage_uri="memory://")
