"""
Process entry point.
Resolves configuration, verifies the database and serves the app with uvicorn.
Any boot failure exits with status 1 before a single request is served.
"""
import asyncio
import logging
import sys
from typing import Tuple

import uvicorn
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from imagewall.config import AppConfig, Settings
from imagewall.database import create_engine, init_db
from imagewall.main import create_app
from imagewall.services.config_resolver import ConfigurationError, resolve_configuration
from imagewall.services.storage_service import S3StorageClient, create_storage_client

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


async def _verify_database(engine: AsyncEngine, database_url: str):
    try:
        await init_db(engine, database_url)
    finally:
        # Drop connections bound to this event loop before uvicorn starts its own
        await engine.dispose()


def initialize_services(settings: Settings) -> Tuple[AppConfig, S3StorageClient, AsyncEngine]:
    """
    Resolve configuration and build the shared clients.
    Exits the process with status 1 on any failure.
    """
    try:
        config = resolve_configuration(settings)
        storage = create_storage_client(config)
        engine = create_engine(config.database_url)
        asyncio.run(_verify_database(engine, config.database_url))
        logger.info(f"Database connected ({config.mode} mode).")
    except ConfigurationError as e:
        logger.error(f"Failed to initialize services: {str(e)}")
        logger.error(e.hint)
        sys.exit(1)
    except Exception as e:
        logger.error(f"Failed to initialize services: {str(e)}", exc_info=True)
        sys.exit(1)

    return config, storage, engine


def build_app(settings: Settings) -> FastAPI:
    config, storage, engine = initialize_services(settings)
    return create_app(
        config,
        storage,
        engine,
        title=settings.API_TITLE,
        version=settings.API_VERSION,
        description=settings.API_DESCRIPTION,
        cors_origins=settings.CORS_ORIGINS,
    )


def main():
    settings = Settings()
    configure_logging(settings.LOG_LEVEL)
    app = build_app(settings)
    logger.info(f"Server running on http://{settings.HOST}:{settings.PORT}")
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
