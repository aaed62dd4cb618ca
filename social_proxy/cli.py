"""
Command-line interface for the social feed proxy.

Usage:
    social-proxy serve                       # Run the API server
    social-proxy discover twitter @jack      # Find a bridge feed for a profile
    social-proxy discover-medium URL         # Medium fallback discovery
    social-proxy inspect-token TOKEN         # Decode a proxy token
"""

import asyncio
import json
import os
import sys

import click

from social_proxy.config.settings import get_settings
from social_proxy.observability.logging import setup_logging
from social_proxy.observability.metrics import get_metrics
from social_proxy.social.config import SocialConfig
from social_proxy.social.errors import SocialFeedError

PASSWORD_MASK = "********"


def _fail(message: str) -> None:
    click.echo(click.style(message, fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Social Feed Proxy - RSS-Bridge proxy for Instagram and Twitter."""
    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    settings = get_settings()
    if settings.tracing_enabled:
        from social_proxy.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "social_proxy.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command()
@click.argument("platform")
@click.argument("handle")
@click.option("--login-username", default=None, help="RSS-Bridge HTTP Basic username")
@click.option("--login-password", default=None, help="RSS-Bridge HTTP Basic password")
def discover(platform: str, handle: str, login_username: str | None, login_password: str | None) -> None:
    """Find a working bridge feed for a profile.

    HANDLE may be a bare handle, @handle, or a profile URL.
    """
    from social_proxy.api.dependencies import create_http_client
    from social_proxy.social.bridge import BridgeDiscovery
    from social_proxy.social.normalize import normalize_social_input

    async def run() -> str:
        social_input = normalize_social_input({
            "platform": platform,
            "handle": handle,
            "login_username": login_username,
            "login_password": login_password,
        })
        click.echo(f"Discovering {social_input.platform.value} feed for {social_input.handle}...")
        async with create_http_client() as client:
            return await BridgeDiscovery(SocialConfig(), client).discover(social_input)

    try:
        feed_url = asyncio.run(run())
    except SocialFeedError as e:
        _fail(f"Discovery failed: {e}")
        return
    click.echo(click.style(feed_url, fg="green"))


@main.command("discover-medium")
@click.argument("source_url")
def discover_medium(source_url: str) -> None:
    """Find a bridge feed for an arbitrary page, preferring MediumBridge."""
    from social_proxy.api.dependencies import create_http_client
    from social_proxy.social.bridge import BridgeDiscovery

    async def run() -> str:
        async with create_http_client() as client:
            return await BridgeDiscovery(SocialConfig(), client).discover_medium_feed_url(source_url)

    try:
        feed_url = asyncio.run(run())
    except SocialFeedError as e:
        _fail(f"Discovery failed: {e}")
        return
    click.echo(click.style(feed_url, fg="green"))


@main.command("inspect-token")
@click.argument("token")
def inspect_token(token: str) -> None:
    """Decode a proxy token and print its payload (password masked).

    Accepts a bare token or a full proxy URL.
    """
    from urllib.parse import unquote, urlsplit

    from social_proxy.social.token import SocialFeedTokenCodec

    if "://" in token:
        token = unquote(urlsplit(token).path.rstrip("/").rsplit("/", 1)[-1])

    try:
        payload = SocialFeedTokenCodec(SocialConfig().token_secret_value).decode(token)
    except SocialFeedError as e:
        _fail(f"Cannot decode token: {e}")
        return

    data = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    if "bridgeLoginPassword" in data:
        data["bridgeLoginPassword"] = PASSWORD_MASK
    click.echo(json.dumps(data, indent=2))


if __name__ == "__main__":
    main()
