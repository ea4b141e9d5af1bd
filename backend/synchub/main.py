"""
FastAPI application for the access-control and invitation control plane.

Run locally:
    uvicorn synchub.main:app --reload
"""

import logging

from fastapi import FastAPI, Request

from synchub import __version__
from synchub.api.routes import brands, health, invitations, me, products, stores
from synchub.platform.errors import (
    AppError,
    ErrorHandlerMiddleware,
    app_error_response,
    get_correlation_id,
)

logger = logging.getLogger(__name__)


async def handle_app_error(request: Request, exc: AppError):
    correlation_id = get_correlation_id(request)
    logger.warning(
        "Application error",
        extra={
            "correlation_id": correlation_id,
            "error_code": exc.code,
            "status_code": exc.status_code,
            "path": request.url.path,
        },
    )
    return app_error_response(exc, correlation_id)


def create_app() -> FastAPI:
    """Build the API application with error handling and all routers."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(title="Sync Hub Access Control", version=__version__)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_exception_handler(AppError, handle_app_error)

    app.include_router(health.router)
    app.include_router(stores.router)
    app.include_router(brands.router)
    app.include_router(invitations.router)
    app.include_router(me.router)
    app.include_router(products.router)
    return app


app = create_app()
