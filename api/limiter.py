"""
api/limiter.py -- The one slowapi Limiter shared by the whole API.

Per-route limits live on the route functions in api/routes/auth.py
(@limiter.limit(...)); api/main.py mounts SlowAPIMiddleware, which enforces
them. Both must see this same instance or the counters are never shared.

Limits are keyed by client IP. The counter backend comes from
RATE_LIMIT_STORAGE_URI: "memory://" is per-process, so a multi-worker
deployment should point it at a shared store such as redis://.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_settings.rate_limit_storage_uri,
    enabled=_settings.rate_limit_enabled,
)
