"""Per-client rate limiting (slowapi), wired into the app in main.py."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from leavedesk.config import settings

# Routes can tighten this with @limiter.limit("N/period").
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)
