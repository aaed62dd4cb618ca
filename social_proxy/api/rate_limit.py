"""
API rate limiting.

Two layers:
- An optional slowapi Limiter (RATE_LIMIT_ENABLED=true) applying a coarse
  per-client limit to authenticated routes
- caller_identity(), the key the social creation limit is counted against
"""

import hashlib

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from social_proxy.api.auth import DEV_MODE_KEY
from social_proxy.config.settings import get_settings

USER_ID_HEADER = "X-User-ID"


def _get_rate_limit_key(request: Request) -> str:
    """Extract rate limit key: API key header or remote IP."""
    api_key = request.headers.get("X-API-KEY")
    if api_key:
        return api_key
    return get_remote_address(request)


def api_key_fingerprint(api_key: str) -> str:
    """Short stable digest of an API key, safe to log and expose in events."""
    return hashlib.sha256(api_key.encode()).hexdigest()[:16]


def caller_identity(request: Request, api_key: str | None = None) -> str:
    """
    Identify the caller for per-user limits.

    Prefers the user id set by the authentication layer in front of the
    service, then a fingerprint of the API key, then the client address.
    """
    user_id = request.headers.get(USER_ID_HEADER, "").strip()
    if user_id:
        return f"user:{user_id}"
    if api_key and api_key != DEV_MODE_KEY:
        return f"key:{api_key_fingerprint(api_key)}"
    return f"ip:{get_remote_address(request)}"


def create_limiter() -> Limiter:
    """Create a configured Limiter instance (in-process storage)."""
    settings = get_settings()
    return Limiter(
        key_func=_get_rate_limit_key,
        default_limits=[settings.rate_limit_default],
        storage_uri="memory://",
        enabled=settings.rate_limit_enabled,
    )


limiter = create_limiter()
