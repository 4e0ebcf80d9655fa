"""FastAPI application factory for the finops admin API.

Creates the shared vendor clients, registers every route module under
``/api`` and maps domain errors to JSON ``{"error": ...}`` responses.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from finops import __version__
from finops.config import ConfigurationError, configure_logging, get_settings
from finops.halaxy import HalaxyAPIError, HalaxyClient
from finops.operations.validation import InvalidRequestError
from finops.store import PostgrestStore, StoreError
from finops.up import UpAPIError, UpClient
from finops.xero.client import XeroAPIError, XeroClient

logger = structlog.get_logger(__name__)

VENDOR_ERRORS = (XeroAPIError, HalaxyAPIError, UpAPIError, StoreError)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _describe(error: dict[str, Any]) -> str:
    # drop the leading "body" / "query" segment
    field = ".".join(str(part) for part in error.get("loc", ())[1:])
    return f"{field}: {error.get('msg')}" if field else str(error.get("msg"))


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(InvalidRequestError)
    async def invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = "; ".join(_describe(e) for e in exc.errors()) or "Invalid request"
        logger.warning("request_validation_failed", path=request.url.path, error=message)
        return _error(400, message)

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("configuration_error", path=request.url.path, env=exc.env_name)
        return _error(500, str(exc))

    for error_type in VENDOR_ERRORS:

        @app.exception_handler(error_type)
        async def vendor_error(request: Request, exc: Exception) -> JSONResponse:
            logger.error(
                "vendor_request_failed",
                path=request.url.path,
                error=str(exc),
                status=getattr(exc, "status_code", None),
            )
            return _error(500, str(exc))

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", path=request.url.path)
        return _error(500, str(exc) or exc.__class__.__name__)


def create_app(
    xero: XeroClient | None = None,
    halaxy: HalaxyClient | None = None,
    up: UpClient | None = None,
    store: PostgrestStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        xero: XeroClient instance (built from settings when omitted)
        halaxy: HalaxyClient instance; built only when Halaxy is configured
        up: UpClient instance
        store: PostgrestStore instance

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()
    if halaxy is None and settings.is_halaxy_configured:
        halaxy = HalaxyClient()
    clients = {
        "xero": xero or XeroClient(),
        "halaxy": halaxy,
        "up": up or UpClient(),
        "store": store or PostgrestStore(),
    }

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        for name, client in clients.items():
            if client is not None:
                await client.close()
                logger.debug("client_closed", client=name)

    app = FastAPI(
        title="finops API",
        description="Xero clearing reconciliation, invoice remediation and budget tracking",
        version=__version__,
        lifespan=lifespan,
    )

    # Store shared dependencies on app state
    for name, client in clients.items():
        setattr(app.state, name, client)

    register_error_handlers(app)

    from finops.api.routes.budget import router as budget_router
    from finops.api.routes.clearing import router as clearing_router
    from finops.api.routes.halaxy import router as halaxy_router
    from finops.api.routes.xero import router as xero_router

    app.include_router(xero_router, prefix="/api")
    app.include_router(clearing_router, prefix="/api")
    app.include_router(halaxy_router, prefix="/api")
    app.include_router(budget_router, prefix="/api")

    @app.get("/api/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok", "service": "finops"}

    logger.info("app_created", halaxy=halaxy is not None)
    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="Run the finops admin API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    configure_logging()
    uvicorn.run(create_app(), host=args.host, port=args.port)
