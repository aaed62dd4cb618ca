"""
Social feed endpoints.

- POST /api/social/feeds: discover a bridge feed and subscribe its proxy URL
- GET /api/social/rss/{token}: public proxy polled by the feed reader
"""

import time

import structlog
from fastapi import APIRouter, Depends, Response, status
from starlette.requests import Request

from social_proxy.api.auth import verify_api_key
from social_proxy.api.dependencies import get_feed_creator, get_feed_proxy, get_social_config
from social_proxy.api.models import CreateSocialFeedRequest, CreateSocialFeedResponse, ErrorResponse
from social_proxy.api.rate_limit import caller_identity, limiter
from social_proxy.config.settings import get_settings as _get_settings
from social_proxy.social.config import SocialConfig
from social_proxy.social.proxy import SocialFeedProxy
from social_proxy.social.service import SocialFeedCreator

logger = structlog.get_logger(__name__)
router = APIRouter()

CACHE_STATUS_HEADER = "X-Social-Proxy-Cache"


@router.post(
    "/api/social/feeds",
    response_model=CreateSocialFeedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Create a social feed",
)
@limiter.limit(lambda: _get_settings().rate_limit_default)
async def create_social_feed(
    request: Request,
    body: CreateSocialFeedRequest,
    api_key: str = Depends(verify_api_key),
    creator: SocialFeedCreator = Depends(get_feed_creator),
) -> CreateSocialFeedResponse:
    """
    Resolve a profile to a working RSS-Bridge feed and return its proxy URL.

    Credentials, when given, are sealed inside the proxy token and never
    returned or logged.
    """
    start = time.perf_counter()
    caller = caller_identity(request, api_key)

    created = await creator.create(
        body.model_dump(exclude={"category_id"}),
        caller_id=caller,
        category_id=body.category_id,
    )

    latency_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "Social feed created",
        platform=created.platform.value,
        handle=created.handle,
        subscribed=created.subscribed,
        latency_ms=round(latency_ms, 2),
    )
    return CreateSocialFeedResponse(
        feed_url=created.feed_url,
        platform=created.platform,
        handle=created.handle,
        feed_id=created.feed_id,
        subscribed=created.subscribed,
        latency_ms=round(latency_ms, 2),
    )


@router.get(
    "/api/social/rss/{token}",
    response_class=Response,
    responses={
        200: {"content": {"application/atom+xml": {}, "application/rss+xml": {}}},
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Proxy a social bridge feed",
)
async def proxy_social_feed(
    token: str,
    proxy: SocialFeedProxy = Depends(get_feed_proxy),
    config: SocialConfig = Depends(get_social_config),
) -> Response:
    """Serve the upstream feed bytes for a token, from cache when fresh.

    The upstream Content-Type is sent unchanged.
    """
    result = await proxy.fetch(token)

    headers = {
        "Content-Type": result.content_type,
        "Cache-Control": f"private, max-age={int(config.proxy_cache_ttl_seconds)}",
        CACHE_STATUS_HEADER: result.cache_status,
    }
    if result.cache_status == "HIT":
        headers["Age"] = str(result.age_seconds)

    return Response(content=result.body, headers=headers)
