"""
Feed-reader (Miniflux) client with retry logic.

Provides:
- RetryConfig: Exponential backoff configuration
- FeedReaderClient: Subscribes proxy URLs in the reader

Only transport failures and gateway errors are retried. A 4xx from the
reader (duplicate feed, unknown category) is final.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

from social_proxy.social.errors import ConfigurationError, FeedReaderError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for reader requests.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 3
    max_backoff_seconds: float = 10.0
    base_delay: float = 0.5
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff duration for a given retry attempt.

        Args:
            attempt: The retry attempt number (0-indexed)

        Returns:
            Backoff duration in seconds with jitter applied
        """
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in RETRYABLE_STATUS_CODES

    def is_retryable_exception(self, exc: Exception) -> bool:
        return isinstance(exc, (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError))


class FeedReaderClient:
    """
    Minimal Miniflux API client.

    Example:
        async with FeedReaderClient("http://miniflux:8080", token) as reader:
            feed_id = await reader.subscribe("https://app/api/social/rss/v1...", category_id=3)
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        *,
        retry_config: RetryConfig | None = None,
        timeout: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the reader client.

        Args:
            base_url: Miniflux base URL
            api_token: Miniflux API token, sent as X-Auth-Token
            retry_config: Retry behavior. Uses defaults if None.
            timeout: Per-request timeout in seconds
            http_client: Shared client to use instead of creating one
        """
        if not base_url or not api_token:
            raise ConfigurationError("MINIFLUX_BASE_URL and MINIFLUX_API_TOKEN must be set")
        self.base_url = base_url.rstrip("/")
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._api_token = api_token
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "FeedReaderClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def subscribe(self, feed_url: str, category_id: int | None = None) -> int:
        """
        Create a feed subscription.

        Returns:
            The reader's id for the new feed

        Raises:
            FeedReaderError: On rejection, malformed reply, or after retries
        """
        body: dict[str, Any] = {"feed_url": feed_url}
        if category_id is not None:
            body["category_id"] = category_id

        response = await self._request_with_retry("POST", "/v1/feeds", json_body=body)
        try:
            feed_id = response.json()["feed_id"]
        except (ValueError, KeyError, TypeError):
            raise FeedReaderError(
                "Feed reader returned an unexpected response",
                upstream_status=response.status_code,
            ) from None
        if not isinstance(feed_id, int):
            raise FeedReaderError(
                "Feed reader returned a non-integer feed_id",
                upstream_status=response.status_code,
            )
        return feed_id

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("FeedReaderClient must be used as async context manager")

        url = f"{self.base_url}{path}"
        headers = {"X-Auth-Token": self._api_token, "Accept": "application/json"}
        attempts = self.retry_config.max_retries + 1

        for attempt in range(attempts):
            try:
                response = await self._client.request(
                    method, url, headers=headers, json=json_body, timeout=self.timeout
                )
            except httpx.HTTPError as e:
                if self.retry_config.is_retryable_exception(e) and attempt < self.retry_config.max_retries:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Retryable error {type(e).__name__} for {url}, "
                        f"attempt {attempt + 1}/{attempts}, backing off {backoff:.2f}s"
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise FeedReaderError(f"Feed reader request failed after {attempt + 1} attempts: {e}") from e

            if self.retry_config.is_retryable_status(response.status_code) and attempt < self.retry_config.max_retries:
                backoff = self.retry_config.calculate_backoff(attempt)
                logger.warning(
                    f"Retryable status {response.status_code} from {url}, "
                    f"attempt {attempt + 1}/{attempts}, backing off {backoff:.2f}s"
                )
                await asyncio.sleep(backoff)
                continue

            if response.status_code >= 400:
                raise FeedReaderError(
                    f"Feed reader rejected {method} {path}: {response.status_code} {_error_message(response)}",
                    upstream_status=response.status_code,
                )
            return response

        raise FeedReaderError(f"Feed reader request failed after {attempts} attempts")


def _error_message(response: httpx.Response) -> str:
    """Miniflux reports errors as {"error_message": "..."}."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and isinstance(data.get("error_message"), str):
        return data["error_message"]
    return response.text[:200]
