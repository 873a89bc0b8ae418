"""
FastAPI dependencies exposing the boot-time resources stored on app.state.
"""
from fastapi import Request

from imagewall.config import AppConfig
from imagewall.services.storage_service import StorageClient


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_storage(request: Request) -> StorageClient:
    return request.app.state.storage
