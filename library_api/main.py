"""
FastAPI application for the library catalogue API.
"""

import time
from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from starlette.exceptions import HTTPException as StarletteHTTPException

from library_api.auth import RateLimiter, client_key, get_rate_limit_headers
from library_api.config import APIConfig
from library_api.database import LibraryDatabaseService
from library_api.errors import LibraryAPIError, RateLimitExceeded
from library_api.logger import AccessLogger, setup_logging
from library_api.models import APIResponse, FieldError
from library_api.routers import auth, books, reviews, status as status_router
from library_api.security import TokenService

logger = structlog.get_logger(__name__)


def error_response(
    status_code: int,
    message: str,
    errors: Optional[List[FieldError]] = None,
    headers: Optional[dict] = None
) -> JSONResponse:
    """Render an error in the shared envelope."""
    body = APIResponse(status="error", message=message, errors=errors)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=headers
    )


def _field_name(loc) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header")]
    return ".".join(parts) or ".".join(str(part) for part in loc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: APIConfig = app.state.settings
    logger.info("Starting library API", environment=settings.environment)

    client = AsyncIOMotorClient(settings.mongodb_url)
    try:
        database = client[settings.mongodb_database]

        # Test connection
        await database.command("ping")
        logger.info("Database connection established", database=settings.mongodb_database)

        db_service = LibraryDatabaseService(database)
        await db_service.ensure_indexes()
        app.state.db_service = db_service

    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        client.close()
        raise

    yield

    logger.info("Shutting down library API")
    app.state.db_service = None
    client.close()


def register_exception_handlers(app: FastAPI) -> None:
    settings: APIConfig = app.state.settings

    @app.exception_handler(LibraryAPIError)
    async def library_error_handler(request: Request, exc: LibraryAPIError):
        """Handle expected API errors."""
        return error_response(exc.status_code, exc.message, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Turn FastAPI validation errors into field-level messages."""
        errors = [
            FieldError(field=_field_name(error.get("loc", ())), message=error.get("msg", "Invalid value"))
            for error in exc.errors()
        ]
        return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "Invalid data", errors=errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions raised by routing."""
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = "Route not found"
        else:
            message = str(exc.detail)
        return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error("Unhandled exception", error=str(exc), path=request.url.path, exc_info=exc)
        message = "Internal server error" if settings.is_production() else str(exc)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


def create_app(settings: Optional[APIConfig] = None) -> FastAPI:
    """
    Build the application.

    Configuration is read once here and shared, read-only, through ``app.state``.
    """
    settings = settings or APIConfig()

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        debug=settings.debug
    )

    app = FastAPI(
        title=settings.api_title,
        description="""
    REST API for a library catalogue.

    ## Features

    * **Accounts**: registration and login returning a bearer token
    * **Books**: public catalogue, administered by admins
    * **Reviews**: one review per user per book, editable by its author

    ## Authentication

    Include the token returned by register or login in the Authorization header:

    ```
    Authorization: Bearer your_token_here
    ```
    """,
        version=settings.api_version,
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.db_service = None
    app.state.token_service = TokenService(settings)
    app.state.global_rate_limiter = RateLimiter(
        settings.global_rate_limit,
        settings.global_rate_window,
    )
    app.state.auth_rate_limiter = RateLimiter(
        settings.auth_rate_limit,
        settings.auth_rate_window,
        message=f"Too many login attempts, please try again in {max(1, settings.auth_rate_window // 60)} minutes",
    )

    access_logger = AccessLogger()

    @app.middleware("http")
    async def rate_limit_and_log(request: Request, call_next):
        """Apply the global rate limit and write one access log line per request."""
        started = time.perf_counter()
        structlog.contextvars.clear_contextvars()
        # Unhandled errors escape call_next and are rendered by the outer error middleware
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        try:
            try:
                rate_info = app.state.global_rate_limiter.hit(client_key(request))
            except RateLimitExceeded as exc:
                logger.warning("Global rate limit exceeded", client=client_key(request), path=request.url.path)
                response = error_response(exc.status_code, exc.message, headers=exc.headers)
            else:
                response = await call_next(request)
                for header, value in get_rate_limit_headers(rate_info).items():
                    response.headers.setdefault(header, value)
            status_code = response.status_code
            return response
        finally:
            access_logger.log_request(
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=(time.perf_counter() - started) * 1000,
                client=client_key(request)
            )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_exception_handlers(app)

    app.include_router(status_router.router)
    app.include_router(auth.router)
    app.include_router(books.router)
    app.include_router(reviews.router)

    return app
