"""
Health check endpoint.

The proxy has no databases to ping; health reports whether the pieces needed
to create and serve social feeds are configured, plus in-memory store sizes.
"""

import structlog
from fastapi import APIRouter, Depends

from social_proxy.api.dependencies import get_social_config, get_store_sizes
from social_proxy.api.models import HealthResponse
from social_proxy.config.settings import get_settings
from social_proxy.social.config import SocialConfig

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check configuration readiness and in-memory store sizes.",
)
async def health_check(config: SocialConfig = Depends(get_social_config)) -> HealthResponse:
    """
    Status logic:
    - degraded: bridge URL, public base URL or token secret missing
    - healthy: social feeds can be created and served
    """
    settings = get_settings()
    token_secret_configured = bool((config.token_secret_value or "").strip())
    ready = config.bridge_configured and bool(config.feeds_base_url) and token_secret_configured

    return HealthResponse(
        status="healthy" if ready else "degraded",
        bridge_configured=config.bridge_configured,
        token_secret_configured=token_secret_configured,
        feed_reader_configured=settings.miniflux_configured,
        stores=get_store_sizes(),
    )
