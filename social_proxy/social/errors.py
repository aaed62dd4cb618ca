"""Exception hierarchy for the social feed proxy.

Each error knows the HTTP status and a public message it maps to, so the API
layer can translate them without inspecting error text.
"""


class SocialFeedError(Exception):
    """Base exception for social feed errors."""

    status_code: int = 500
    error_type: str = "internal"

    def __init__(self, message: str, public_message: str | None = None):
        super().__init__(message)
        self.public_message = public_message or message


class ConfigurationError(SocialFeedError):
    """Raised when a required setting (bridge URL, token secret, ...) is missing."""

    status_code = 503
    error_type = "not_configured"

    def __init__(self, message: str):
        super().__init__(message, public_message="Social feeds are not configured")


class InvalidInputError(SocialFeedError):
    """Raised when the platform or handle supplied by a user is invalid."""

    status_code = 400
    error_type = "invalid_input"


class InvalidTokenError(SocialFeedError):
    """Raised when a proxy token is malformed, tampered with or unsupported."""

    status_code = 400
    error_type = "invalid_token"

    def __init__(self, message: str = "Invalid social feed token"):
        super().__init__(message, public_message="Invalid social feed token")


class RateLimitedError(SocialFeedError):
    """Raised when a fixed-window rate limit rejects a request."""

    status_code = 429
    error_type = "rate_limited"

    def __init__(self, scope: str, retry_after_seconds: int):
        super().__init__(
            f"Rate limit exceeded for scope {scope}",
            public_message="Rate limit exceeded, retry later",
        )
        self.scope = scope
        self.retry_after_seconds = retry_after_seconds


class DiscoveryFailedError(SocialFeedError):
    """Raised when no working bridge feed could be found for a profile."""

    status_code = 502
    error_type = "discovery_failed"

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(
            message,
            public_message="Could not find a working feed for this profile",
        )
        self.errors = list(errors or [])


class NoBridgeAvailableError(DiscoveryFailedError):
    """Raised when the bridge has no handler for the requested profile shape."""

    status_code = 400
    error_type = "no_bridge"

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message, errors)
        self.public_message = (
            "No feed bridge is available for this profile. "
            "Ensure the required bridge is enabled in RSS-Bridge."
        )


class UpstreamError(SocialFeedError):
    """Raised when the final upstream feed fetch fails.

    ``upstream_status`` is None for transport failures (timeouts,
    connection errors).
    """

    error_type = "upstream_error"

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        retry_after_seconds: int | None = None,
    ):
        super().__init__(message, public_message="Upstream feed bridge error")
        self.upstream_status = upstream_status
        self.retry_after_seconds = retry_after_seconds
        self.status_code = 429 if upstream_status == 429 else 502


class FeedReaderError(SocialFeedError):
    """Raised when the feed-reader backend rejects or fails a subscription."""

    status_code = 502
    error_type = "feed_reader_error"

    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message, public_message="Feed reader could not subscribe to the feed")
        self.upstream_status = upstream_status
