"""FastAPI application factory."""
from __future__ import annotations

from typing import List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.api.v1.api import api_router
from app.config import settings
from app.services.push_transport import get_push_transport
from app.utils.exceptions import (
    AuthenticationError,
    PushTransportError,
    ValidationError,
    handle_authentication_error,
    handle_push_transport_error,
    handle_validation_error,
)


tags_metadata: List[dict[str, str]] = [
    {"name": "notifications", "description": "Register push subscriptions and manage notification preferences."},
    {"name": "health", "description": "Liveness and push configuration status."},
]


def _as_response(exc) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Push subscription registry and scheduled notification dispatch for teaching events.",
        version="0.1.0",
        openapi_tags=tags_metadata,
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors(), "message": "Validation failed"},
        )

    @app.exception_handler(ValidationError)
    async def domain_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _as_response(handle_validation_error(exc))

    @app.exception_handler(AuthenticationError)
    async def authentication_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
        return _as_response(handle_authentication_error(exc))

    @app.exception_handler(PushTransportError)
    async def push_transport_handler(request: Request, exc: PushTransportError) -> JSONResponse:
        return _as_response(handle_push_transport_error(exc))

    @app.get("/health", tags=["health"])
    def health() -> dict[str, object]:
        return {"status": "ok", "push_configured": get_push_transport().is_configured}

    app.include_router(api_router, prefix=settings.API_V1_STR)
    logger.info("Application configured", project=settings.PROJECT_NAME, api_prefix=settings.API_V1_STR)
    return app


app = create_app()
