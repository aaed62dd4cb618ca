"""Feed-reader backend client."""

from social_proxy.reader.client import FeedReaderClient, RetryConfig

__all__ = ["FeedReaderClient", "RetryConfig"]
