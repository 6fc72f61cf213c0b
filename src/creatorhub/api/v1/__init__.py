"""Version 1 API endpoints."""

from .endpoints import content_router, upload_router, x402_router

__all__ = [
    "content_router",
    "upload_router",
    "x402_router",
]
