"""
Database engine and session management for SQLAlchemy 2.0.
Configured for async operations against PostgreSQL (asyncpg) in deployment
and SQLite (aiosqlite) for local development and tests.
"""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy import event, text
from fastapi import Request
from urllib.parse import urlparse
import logging
import socket

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()

SUPPORTED_SCHEMES = ("postgresql+asyncpg", "sqlite+aiosqlite")


def normalize_database_url(url: str) -> str:
    """Map plain driver-less URLs onto the async drivers."""
    url = url.strip()
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + url[len("sqlite://"):]
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str) -> AsyncEngine:
    """
    Create the async engine for the resolved database URL.
    Pool settings only apply to PostgreSQL; SQLite gets a NullPool and
    foreign key enforcement.
    """
    url = normalize_database_url(database_url)
    engine_args = {
        "echo": False,
    }

    if url.startswith("postgresql"):
        engine_args.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
            "connect_args": {
                "server_settings": {
                    "application_name": "imagewall-backend"
                }
            }
        })
    elif url.startswith("sqlite"):
        engine_args["poolclass"] = NullPool

    engine = create_async_engine(url, **engine_args)

    if url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncSession:
    """
    FastAPI dependency for database sessions.
    Uses the session factory stored on the application state by create_app.
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {str(e)}", exc_info=True)
            raise
        finally:
            await session.close()


def _validate_database_url(url: str) -> tuple[bool, str]:
    """
    Validate database URL and provide diagnostic information.
    Returns (is_valid, diagnostic_message)
    """
    if not url:
        return False, "DATABASE_URL is empty"

    url = normalize_database_url(url)
    try:
        parsed = urlparse(url)

        if parsed.scheme not in SUPPORTED_SCHEMES:
            return False, (
                f"Invalid database URL scheme. Expected one of "
                f"{', '.join(SUPPORTED_SCHEMES)}, got: {parsed.scheme}"
            )

        if parsed.scheme.startswith("sqlite"):
            return True, f"SQLite database: {parsed.path or ':memory:'}"

        hostname = parsed.hostname
        if not hostname:
            return False, "No hostname found in DATABASE_URL"

        try:
            socket.getaddrinfo(hostname, None)
            dns_status = "DNS resolution successful"
        except socket.gaierror as e:
            dns_status = f"DNS resolution failed: {str(e)}. This may indicate network connectivity issues or incorrect hostname."

        return True, f"URL format valid. Hostname: {hostname}, Port: {parsed.port or 5432}, Database: {parsed.path or '/postgres'}. {dns_status}"

    except ValueError as e:
        return False, f"Error parsing DATABASE_URL: {str(e)}"


async def init_db(engine: AsyncEngine, database_url: str):
    """
    Verify the database is reachable.
    Called once at boot; any failure propagates and is fatal.
    """
    is_valid, diagnostic = _validate_database_url(database_url)
    if not is_valid:
        logger.error(f"Invalid DATABASE_URL: {diagnostic}")
        raise ValueError(f"Invalid DATABASE_URL: {diagnostic}")

    logger.info(f"Database URL validation: {diagnostic}")

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection verified successfully")
    except Exception as e:
        error_msg = str(e)
        error_type = type(e).__name__

        if "getaddrinfo failed" in error_msg or "name or service not known" in error_msg.lower():
            logger.error(
                f"Database connection failed - DNS resolution error: {error_msg}\n"
                f"Check the hostname in DATABASE_URL and network connectivity.\n"
                f"Diagnostic: {diagnostic}"
            )
        elif "connection refused" in error_msg.lower() or "timeout" in error_msg.lower():
            logger.error(
                f"Database connection failed - Connection refused/timeout: {error_msg}\n"
                f"Check that the database server is reachable and the port is correct.\n"
                f"Diagnostic: {diagnostic}"
            )
        elif "authentication failed" in error_msg.lower() or "password" in error_msg.lower():
            logger.error(
                f"Database connection failed - Authentication error: {error_msg}\n"
                f"Check the credentials in DATABASE_URL.\n"
                f"Diagnostic: {diagnostic}"
            )
        else:
            logger.error(
                f"Database connection failed ({error_type}): {error_msg}\n"
                f"Diagnostic: {diagnostic}"
            )
        raise


async def create_tables(engine: AsyncEngine):
    """Create the schema directly. Deployed databases are managed separately."""
    # Register the models on Base.metadata
    import imagewall.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine):
    """Dispose of pooled connections."""
    await engine.dispose()
    logger.info("Database connections closed")
