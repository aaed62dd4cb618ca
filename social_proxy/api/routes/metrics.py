"""
Social proxy metrics snapshot endpoint.

Disabled (404) unless SOCIAL_METRICS_TOKEN is set; the token is accepted from
the X-Social-Metrics-Token header or the ``token`` query parameter.
"""

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from social_proxy.api.dependencies import get_metrics_recorder, get_social_config
from social_proxy.api.models import ErrorResponse, SocialMetricsResponse
from social_proxy.social.config import SocialConfig
from social_proxy.social.metrics import SocialMetrics

router = APIRouter()


def _verify_metrics_token(
    config: SocialConfig = Depends(get_social_config),
    header_token: str | None = Header(default=None, alias="X-Social-Metrics-Token"),
    query_token: str | None = Query(default=None, alias="token"),
) -> None:
    if not config.metrics_token:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    supplied = (header_token or "").strip() or (query_token or "").strip()
    if not hmac.compare_digest(supplied.encode("utf-8"), config.metrics_token.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.get(
    "/api/social/metrics",
    response_model=SocialMetricsResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    dependencies=[Depends(_verify_metrics_token)],
    summary="Social proxy counters and recent events",
)
async def social_metrics(
    recorder: SocialMetrics = Depends(get_metrics_recorder),
) -> SocialMetricsResponse:
    return SocialMetricsResponse(**recorder.snapshot())
