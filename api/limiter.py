"""
api/limiter.py -- The one slowapi Limiter shared by api/main.py and the login route.

A single instance means one in-memory counter store; a limiter per module
would keep separate counters and never trip.

RATE_LIMIT_ENABLED=false turns every limit off (test suites log in far more
than 10 times a minute from the same client address).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)
