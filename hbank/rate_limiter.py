"""Rate limiter configuration for auth endpoints.

Per-IP request throttling; per-address code cooldowns live in the database
(see ``RateLimitRepository``) so they hold across workers.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Rate limiter instance - shared across modules
limiter = Limiter(key_func=get_remote_address)
