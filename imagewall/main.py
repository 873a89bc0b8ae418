"""
FastAPI application factory.
Builds the application around resources resolved at boot: the frozen
configuration, the storage client and the database engine.
"""
from fastapi import FastAPI, Request, status, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy import text
from typing import List, Optional
import logging

from imagewall.config import AppConfig
from imagewall.database import create_engine, create_session_factory, get_db, close_db
from imagewall.dependencies import get_config
from imagewall.services.storage_service import StorageClient, validate_storage_config
from imagewall.routes import comments, images, pages

logger = logging.getLogger(__name__)


def add_cors_headers(response: JSONResponse, request: Request) -> JSONResponse:
    """
    Add CORS headers to error responses.
    Exception handlers bypass the CORS middleware, so set them here.
    """
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "*"
    return response


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions (400, 404, 500 raised by routes) with CORS headers."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"HTTPException on {request.method} {request.url.path}: "
        f"status={exc.status_code} detail={exc.detail}"
    )

    # Handle both string and dict detail formats
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"error": exc.detail, "detail": str(exc.detail)}

    response = JSONResponse(status_code=exc.status_code, content=content)
    return add_cors_headers(response, request)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    logger.info(
        f"Validation error on {request.method} {request.url.path}: {exc.errors()}"
    )
    response = JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Validation error",
            "detail": jsonable_errors(exc),
        }
    )
    return add_cors_headers(response, request)


def jsonable_errors(exc: RequestValidationError) -> List[dict]:
    """Keep only the JSON-safe parts of pydantic error entries."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}:\n"
        f"  Error: {str(exc)}\n"
        f"  Error type: {type(exc).__name__}",
        exc_info=True
    )
    response = JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": str(exc)
        }
    )
    return add_cors_headers(response, request)


async def log_requests(request: Request, call_next):
    """Log every request with its response status."""
    method = request.method
    path = request.url.path
    logger.debug(f"Incoming {method} request to {path}")

    try:
        response = await call_next(request)
        logger.info(f"Response status: {response.status_code} for {method} {path}")
        return response
    except Exception as e:
        logger.error(
            f"Error processing {method} {path}: {str(e)}\n"
            f"  Error type: {type(e).__name__}",
            exc_info=True
        )
        raise


def create_app(
    config: AppConfig,
    storage: StorageClient,
    engine: Optional[AsyncEngine] = None,
    title: str = "Imagewall API",
    version: str = "0.1.0",
    description: str = "Image gallery backend with object storage and comments",
    cors_origins: Optional[List[str]] = None,
) -> FastAPI:
    """
    Create the application.

    Args:
        config: Resolved configuration
        storage: Bucket client shared by all requests
        engine: Async engine; built from config.database_url when omitted

    Returns:
        FastAPI: Application with routes, middleware and handlers installed
    """
    if engine is None:
        engine = create_engine(config.database_url)

    app = FastAPI(title=title, description=description, version=version)

    app.state.config = config
    app.state.storage = storage
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=3600,
    )
    app.middleware("http")(log_requests)

    app.include_router(images.router, prefix="/api", tags=["images"])
    app.include_router(comments.router, prefix="/api", tags=["comments"])

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/health/db")
    async def health_check_db(db: AsyncSession = Depends(get_db)):
        """
        Database health check endpoint.
        Reports status instead of raising.
        """
        try:
            result = await db.execute(text("SELECT 1"))
            return {
                "database": "connected",
                "status": "healthy",
                "result": result.scalar()
            }
        except Exception as e:
            logger.error(f"Database health check failed: {str(e)}", exc_info=True)
            return {
                "database": "error",
                "status": "unhealthy",
                "error": "Database connection failed"
            }

    @app.get("/health/storage")
    async def health_check_storage(app_config: AppConfig = Depends(get_config)):
        """Storage configuration check endpoint."""
        if validate_storage_config(app_config):
            return {
                "storage": "configured",
                "status": "healthy",
                "mode": app_config.mode,
                "bucket": app_config.storage_bucket,
            }
        return {
            "storage": "not_configured",
            "status": "warning",
            "mode": app_config.mode,
        }

    # Page shells last so /api and /health take precedence
    app.include_router(pages.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            f"Serving {config.mode} gallery: bucket={config.storage_bucket}, "
            f"cdn={config.cdn_domain}"
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Close database connections on application shutdown."""
        try:
            await close_db(engine)
        except Exception as e:
            logger.warning(f"Error during database shutdown: {str(e)}")

    return app
