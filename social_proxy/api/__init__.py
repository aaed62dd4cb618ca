"""
FastAPI social feed proxy service.

Provides:
- POST /api/social/feeds - Create a social feed behind an encrypted proxy URL
- GET /api/social/rss/{token} - Public feed proxy
- GET /api/social/metrics - Counter snapshot (token protected)
- GET /health - Service health check
"""

from social_proxy.api.app import create_app

__all__ = ["create_app"]
