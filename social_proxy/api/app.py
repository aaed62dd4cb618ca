"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from social_proxy.api.dependencies import cleanup_dependencies, get_store_sizes
from social_proxy.api.middleware.timeout import TimeoutMiddleware
from social_proxy.api.routes import health, metrics, social
from social_proxy.config.settings import get_settings
from social_proxy.observability.logging import bind_context, clear_context
from social_proxy.observability.metrics import get_metrics
from social_proxy.social.errors import RateLimitedError, SocialFeedError, UpstreamError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Social feed proxy starting up")

    settings = get_settings()
    if settings.tracing_enabled:
        from social_proxy.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )

    get_metrics().track_store_sizes(get_store_sizes)

    yield

    logger.info("Social feed proxy shutting down")
    await cleanup_dependencies()


def _retry_after(exc: SocialFeedError) -> int | None:
    if isinstance(exc, (RateLimitedError, UpstreamError)):
        return exc.retry_after_seconds
    return None


async def social_feed_exception_handler(request: Request, exc: SocialFeedError) -> JSONResponse:
    """Translate domain errors into JSON with the public message only."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Social feed request failed",
        path=request.url.path,
        error_type=exc.error_type,
        status_code=exc.status_code,
        error=str(exc),
    )

    headers = {}
    retry_after = _retry_after(exc)
    if retry_after:
        headers["Retry-After"] = str(retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.public_message, "error_type": exc.error_type},
        headers=headers,
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "social", "description": "Social feed creation and public feed proxy"},
        {"name": "metrics", "description": "Social proxy counters and recent events"},
    ]

    app = FastAPI(
        title="Social Feed Proxy",
        description="""
RSS proxy that fronts RSS-Bridge for Instagram and Twitter profiles.

## Authentication

`POST /api/social/feeds` requires the `X-API-KEY` header when API keys are
configured. Proxy URLs are public; the encrypted token is the capability.
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )

    # Add CORS middleware (origins from CORS_ORIGINS env var, comma-separated)
    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Request timeout middleware (added before the logging middleware so the
    # timeout wraps the entire request lifecycle)
    if settings.request_timeout_seconds > 0:
        app.add_middleware(
            TimeoutMiddleware,
            timeout_seconds=settings.request_timeout_seconds,
        )

    # Request logging, correlation ID, and tracing middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        from social_proxy.observability.tracing import get_tracer, is_tracing_enabled

        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )
        bind_context(request_id=request_id)

        # Tokens are capabilities; keep them out of logs and span names
        path = request.url.path
        if path.startswith("/api/social/rss/"):
            path = "/api/social/rss/{token}"

        start_time = time.perf_counter()

        try:
            if is_tracing_enabled():
                tracer = get_tracer("social-proxy.api")
                with tracer.start_as_current_span(
                    f"{request.method} {path}",
                    attributes={
                        "http.method": request.method,
                        "http.route": path,
                        "http.request_id": request_id,
                    },
                ) as span:
                    response = await call_next(request)
                    duration = time.perf_counter() - start_time
                    span.set_attribute("http.status_code", response.status_code)
                    span.set_attribute("http.duration_ms", round(duration * 1000, 2))
            else:
                response = await call_next(request)
                duration = time.perf_counter() - start_time

            response.headers["X-Request-ID"] = request_id

            logger.info(
                "HTTP request",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            clear_context()

    # Coarse per-client limiting (opt-in via RATE_LIMIT_ENABLED=true)
    if settings.rate_limit_enabled:
        from slowapi import _rate_limit_exceeded_handler
        from slowapi.errors import RateLimitExceeded

        from social_proxy.api.rate_limit import limiter

        app.state.limiter = limiter
        app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_exception_handler(SocialFeedError, social_feed_exception_handler)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(social.router, tags=["social"])
    app.include_router(metrics.router, tags=["metrics"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "Social Feed Proxy",
            "version": "0.1.0",
            "docs": "/docs",
        }

    return app
