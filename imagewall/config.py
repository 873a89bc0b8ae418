"""
Configuration management for the image gallery backend.
Uses Pydantic Settings for environment variable management.
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings
from typing import List, Optional


PRODUCTION = "production"
DEVELOPMENT = "development"


class Settings(BaseSettings):
    """Raw settings loaded from environment variables and the local .env file."""

    # API Configuration
    API_TITLE: str = "Imagewall API"
    API_VERSION: str = "0.1.0"
    API_DESCRIPTION: str = "Image gallery backend with object storage and comments"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # "production" pulls everything from the secrets manager
    APP_ENV: str = DEVELOPMENT

    # Development values (read directly from the environment)
    DATABASE_URL: str = ""
    STORAGE_REGION: str = ""
    STORAGE_BUCKET: str = ""
    CDN_DOMAIN: str = ""
    STORAGE_ACCESS_KEY_ID: str = ""
    STORAGE_SECRET_ACCESS_KEY: str = ""
    # Public endpoint; empty means https://s3.{region}.amazonaws.com
    STORAGE_ENDPOINT_URL: str = ""

    # Production values
    ROLE_NAME: str = ""
    APP_CONFIG_SECRET_NAME: str = ""
    SECRETS_REGION: str = ""
    # Internal endpoint; empty lets the SDK pick the regional default
    STORAGE_INTERNAL_ENDPOINT_URL: str = ""

    UPLOAD_KEY_PREFIX: str = "user-upload/"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.strip().lower() == PRODUCTION


class AppConfig(BaseModel):
    """
    Fully resolved configuration.
    Built once at boot and shared read-only by the storage client,
    the database engine and the route handlers.
    """
    mode: str
    database_url: str = Field(repr=False)
    storage_region: str
    storage_bucket: str
    cdn_domain: str
    storage_endpoint_url: Optional[str] = None
    storage_access_key_id: Optional[str] = Field(default=None, repr=False)
    storage_secret_access_key: Optional[str] = Field(default=None, repr=False)
    upload_key_prefix: str = "user-upload/"

    model_config = ConfigDict(frozen=True)

    @property
    def is_production(self) -> bool:
        return self.mode == PRODUCTION
