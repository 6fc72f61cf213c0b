"""API endpoint modules for version 1."""

from .content import router as content_router
from .upload import router as upload_router
from .x402 import router as x402_router

__all__ = [
    "content_router",
    "upload_router",
    "x402_router",
]
