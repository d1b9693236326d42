from slowapi import Limiter
from slowapi.util import get_remote_address
from isuite.core.config import settings

# Rate Limiter Configuration
# clients are identified by IP address; the cookie is not trusted before
# the route runs. Per-endpoint limits come from RATE_LIMIT_<NAME> settings.

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=list(settings.RATE_LIMIT_DEFAULT)
)


def endpoint_limit(name: str) -> str:
    """The slowapi limit string for one endpoint group, e.g. "30 per minute"."""
    limits = settings.RATE_LIMIT_ENDPOINTS.get(name) or settings.RATE_LIMIT_DEFAULT
    return ";".join(limits)
