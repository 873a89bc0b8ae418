"""
Object storage service for uploaded images.
Wraps an S3-compatible bucket and builds storage keys and CDN URLs.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Protocol

import boto3
from botocore.config import Config

from imagewall.config import AppConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    key: str
    last_modified: datetime
    size: int = 0


class StorageClient(Protocol):
    """Operations the API needs from object storage."""

    bucket: str

    def put_object(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        ...

    def list_objects(self, prefix: str = "") -> List[StoredObject]:
        ...

    def delete_object(self, key: str) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    bucket: str = "test-bucket"
    objects: Dict[str, bytes] = field(default_factory=dict)
    content_types: Dict[str, Optional[str]] = field(default_factory=dict)
    modified: Dict[str, datetime] = field(default_factory=dict)

    def put_object(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        self.objects[key] = data
        self.content_types[key] = content_type
        self.modified[key] = datetime.now(timezone.utc)

    def list_objects(self, prefix: str = "") -> List[StoredObject]:
        return [
            StoredObject(key=key, last_modified=self.modified[key], size=len(data))
            for key, data in sorted(self.objects.items())
            if key.startswith(prefix)
        ]

    def delete_object(self, key: str) -> None:
        self.objects.pop(key, None)
        self.content_types.pop(key, None)
        self.modified.pop(key, None)


@dataclass
class S3StorageClient:
    """
    S3-compatible bucket client.
    Without explicit keys boto3 falls back to its default credential chain,
    which picks up the instance role in production.
    """

    bucket: str
    region: str
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        client_args = {
            "region_name": self.region,
            "config": config,
        }
        if self.endpoint_url:
            client_args["endpoint_url"] = self.endpoint_url
        if self.access_key_id and self.secret_access_key:
            client_args["aws_access_key_id"] = self.access_key_id
            client_args["aws_secret_access_key"] = self.secret_access_key
        self._client = boto3.client("s3", **client_args)

    def put_object(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        params = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        self._client.put_object(**params)

    def list_objects(self, prefix: str = "") -> List[StoredObject]:
        paginator = self._client.get_paginator("list_objects_v2")
        objects = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                objects.append(
                    StoredObject(
                        key=item["Key"],
                        last_modified=item["LastModified"],
                        size=item.get("Size", 0),
                    )
                )
        return objects

    def delete_object(self, key: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=key)


def create_storage_client(config: AppConfig) -> S3StorageClient:
    """
    Build the bucket client for the resolved configuration.

    Production talks to the internal endpoint with the ambient role;
    development uses the public endpoint with explicit keys.
    """
    if config.is_production:
        client = S3StorageClient(
            bucket=config.storage_bucket,
            region=config.storage_region,
            endpoint_url=config.storage_endpoint_url,
        )
        logger.info("Storage client configured for production (internal endpoint, instance role).")
    else:
        client = S3StorageClient(
            bucket=config.storage_bucket,
            region=config.storage_region,
            endpoint_url=config.storage_endpoint_url,
            access_key_id=config.storage_access_key_id,
            secret_access_key=config.storage_secret_access_key,
        )
        logger.info("Storage client configured for development (public endpoint, explicit keys).")
    return client


def build_object_key(
    filename: str,
    prefix: str = "user-upload/",
    timestamp_ms: Optional[int] = None,
    token: Optional[str] = None,
) -> str:
    """
    Generate a storage key unique without coordination.

    Format: {prefix}{epoch milliseconds}-{random token}-{original filename}.
    Directory components of the client-supplied filename are dropped.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    if token is None:
        token = uuid.uuid4().hex[:8]
    name = PurePosixPath((filename or "").replace("\\", "/")).name or "upload"
    return f"{prefix}{timestamp_ms}-{token}-{name}"


def build_cdn_url(cdn_domain: str, storage_key: str) -> str:
    return f"https://{cdn_domain}/{storage_key}"


def validate_storage_config(config: AppConfig) -> bool:
    """
    Check that the storage side of the configuration is usable.

    Returns:
        bool: True if bucket, region and CDN domain are all set
    """
    if not config.storage_bucket:
        logger.warning("STORAGE_BUCKET not configured")
        return False
    if not config.storage_region:
        logger.warning("STORAGE_REGION not configured")
        return False
    if not config.cdn_domain:
        logger.warning("CDN_DOMAIN not configured")
        return False
    return True
