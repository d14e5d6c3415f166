import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional, Type

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings
from .deps import Services, build_services
from .logging import setup_logging
from .routers import auth, vault
from ..core.errors import (
    AlreadyExists,
    InvalidCredentials,
    InvalidInput,
    MissingFields,
    NotFound,
    StorageError,
    StorageTimeout,
    Unauthorized,
    VaultError,
)

logger = logging.getLogger(__name__)

# most specific class first; storage failures never expose their detail
ERROR_RESPONSES: Dict[Type[VaultError], tuple] = {
    StorageTimeout: (status.HTTP_503_SERVICE_UNAVAILABLE, "Storage unavailable"),
    StorageError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Server error"),
    InvalidInput: (status.HTTP_400_BAD_REQUEST, None),
    MissingFields: (status.HTTP_400_BAD_REQUEST, None),
    AlreadyExists: (status.HTTP_409_CONFLICT, None),
    InvalidCredentials: (status.HTTP_401_UNAUTHORIZED, None),
    Unauthorized: (status.HTTP_401_UNAUTHORIZED, None),
    NotFound: (status.HTTP_404_NOT_FOUND, None),
}


def error_response(exc: VaultError) -> JSONResponse:
    for error_type, (status_code, message) in ERROR_RESPONSES.items():
        if isinstance(exc, error_type):
            return JSONResponse(status_code=status_code, content={"error": message or str(exc)})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)
        owned = app.state.services is None
        if owned:
            app.state.services = build_services(settings)
        logger.info("%s started with %s storage", settings.PROJECT_NAME, app.state.services.storage.name)
        yield
        if owned:
            app.state.services.close()
            app.state.services = None

    app = FastAPI(title=settings.PROJECT_NAME, version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services

    if settings.CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    @app.exception_handler(VaultError)
    async def handle_vault_error(request: Request, exc: VaultError):
        if isinstance(exc, StorageError):
            logger.error("%s %s failed: %r", request.method, request.url.path, exc)
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request"})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        # unmatched routes and methods use the same error body as the API
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    app.include_router(auth.router, prefix=settings.API_PREFIX, tags=["Authentication"])
    app.include_router(vault.router, prefix=settings.API_PREFIX, tags=["Vault"])

    @app.get("/")
    def root():
        return {"message": f"{settings.PROJECT_NAME} is running"}

    return app


app = create_app()
