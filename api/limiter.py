"""
api/limiter.py -- The one slowapi Limiter the API mounts.

api/main.py installs it as middleware and on app.state; api/routes/v1/auth.py
decorates the authorize callback with @limiter.limit(). Both must import this
instance: a limiter built per module keeps its own counters and never trips.

Counters live wherever RATE_LIMIT_STORAGE_URI points. The in-process default
is per worker; a multi-worker deployment that wants one shared budget per
client points it at redis:// instead.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri=get_settings().rate_limit_storage_uri)
