"""Main entry point for the CreatorHub gateway."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from creatorhub.api.v1 import content_router, upload_router, x402_router
from creatorhub.core.errors import ClientInputError, GatewayError
from creatorhub.core.logging import configure_logging, redact
from creatorhub.core.settings import settings
from creatorhub.services.chain import close_chain_reader
from creatorhub.services.contract import CREATOR_HUB_ABI_VERSION

configure_logging()
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="x402 payment-gated content access for CreatorHub",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=[
        "X-Accept-Payment",
        "X-Payment-Required",
        "X-Payment-Chain-Id",
        "X-Payment-Token",
        "X-Payment-Amount",
        "X-Payment-Recipient",
        "Retry-After",
    ],
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(x402_router, prefix="/api/v1")
app.include_router(content_router, prefix="/api/v1")
app.include_router(upload_router, prefix="/api/v1")


@app.exception_handler(GatewayError)
async def gateway_error_handler(_request: Request, exc: GatewayError) -> JSONResponse:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s: %s (%s)", type(exc).__name__, exc.error, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    logger.info("Rejected %s %s: %s", request.method, request.url.path, redact(exc.body))
    error = ClientInputError(details="; ".join(problems) or None)
    return JSONResponse(status_code=error.status_code, content=error.to_body())


@app.on_event("startup")
async def on_startup() -> None:
    logger.info(
        "Starting %s on chain %d (hub %s, abi %s)",
        settings.app_name,
        settings.chain_id,
        settings.creator_hub_address,
        CREATOR_HUB_ABI_VERSION,
    )
    if not settings.content_signing_secret:
        logger.warning("CONTENT_SIGNING_SECRET is not set; content authorization is disabled")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await close_chain_reader()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "x402 payment-gated content access for CreatorHub",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("creatorhub.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
