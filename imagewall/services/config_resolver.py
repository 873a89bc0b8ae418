"""
Configuration resolver.
Turns raw Settings into an immutable AppConfig, either straight from the
local environment (development) or from a secret bundle fetched with the
ambient instance role (production).
"""
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, NoRegionError

from imagewall.config import AppConfig, Settings, DEVELOPMENT, PRODUCTION

logger = logging.getLogger(__name__)

# Keys carried by the production secret bundle
BUNDLE_KEYS = ("DATABASE_URL", "STORAGE_REGION", "STORAGE_BUCKET", "CDN_DOMAIN")

# Development additionally needs explicit storage credentials
DEVELOPMENT_KEYS = BUNDLE_KEYS + ("STORAGE_ACCESS_KEY_ID", "STORAGE_SECRET_ACCESS_KEY")

PUBLIC_ENDPOINT_TEMPLATE = "https://s3.{region}.amazonaws.com"

ClientFactory = Callable[[str], Any]


class ConfigurationError(Exception):
    """Base class for every boot-fatal configuration failure."""

    hint = "Check the application configuration."

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        if hint:
            self.hint = hint


class MissingSecretNameError(ConfigurationError):
    hint = "Set APP_CONFIG_SECRET_NAME in the instance environment."


class SecretUnavailableError(ConfigurationError):
    """The secret could not be fetched: not found, access denied, or no usable identity."""

    hint = "Check APP_CONFIG_SECRET_NAME and the instance role's permissions for the secrets manager."

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class SecretFormatError(ConfigurationError):
    hint = (
        "The secret bundle must be a JSON object with "
        "DATABASE_URL, STORAGE_REGION, STORAGE_BUCKET and CDN_DOMAIN."
    )


class MissingEnvironmentError(ConfigurationError):
    hint = "Ensure .env defines every required variable, including the storage access keys."

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            "Missing essential environment variables for local development: "
            + ", ".join(self.missing)
        )


def _default_client_factory(region: str) -> ClientFactory:
    session = boto3.session.Session()

    def factory(service_name: str):
        return session.client(service_name, region_name=region or None)

    return factory


def resolve_configuration(
    settings: Settings,
    client_factory: Optional[ClientFactory] = None,
) -> AppConfig:
    """
    Resolve the process configuration.

    Args:
        settings: Raw environment settings
        client_factory: Builds boto3 clients by service name (injected by tests)

    Returns:
        AppConfig: Frozen configuration record

    Raises:
        ConfigurationError: Any failure; callers treat it as fatal
    """
    if settings.is_production:
        logger.info("Running in PRODUCTION mode. Fetching config from the secrets manager.")
        factory = client_factory or _default_client_factory(settings.SECRETS_REGION)
        return _resolve_production(settings, factory)

    logger.info("Running in DEVELOPMENT mode. Using local environment configuration.")
    return _resolve_development(settings)


def _resolve_development(settings: Settings) -> AppConfig:
    values = {name: getattr(settings, name).strip() for name in DEVELOPMENT_KEYS}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise MissingEnvironmentError(missing)

    region = values["STORAGE_REGION"]
    endpoint_url = (
        settings.STORAGE_ENDPOINT_URL.strip()
        or PUBLIC_ENDPOINT_TEMPLATE.format(region=region)
    )

    return AppConfig(
        mode=DEVELOPMENT,
        database_url=values["DATABASE_URL"],
        storage_region=region,
        storage_bucket=values["STORAGE_BUCKET"],
        cdn_domain=values["CDN_DOMAIN"],
        storage_endpoint_url=endpoint_url,
        storage_access_key_id=values["STORAGE_ACCESS_KEY_ID"],
        storage_secret_access_key=values["STORAGE_SECRET_ACCESS_KEY"],
        upload_key_prefix=settings.UPLOAD_KEY_PREFIX,
    )


def _resolve_production(settings: Settings, client_factory: ClientFactory) -> AppConfig:
    secret_name = settings.APP_CONFIG_SECRET_NAME.strip()
    if not secret_name:
        raise MissingSecretNameError(
            "APP_CONFIG_SECRET_NAME environment variable is not set in production."
        )

    sts_client = _build_client(client_factory, "sts")
    secrets_client = _build_client(client_factory, "secretsmanager")

    verify_ambient_identity(sts_client, settings.ROLE_NAME.strip())
    bundle = fetch_secret_bundle(secrets_client, secret_name)

    return AppConfig(
        mode=PRODUCTION,
        database_url=bundle["DATABASE_URL"],
        storage_region=bundle["STORAGE_REGION"],
        storage_bucket=bundle["STORAGE_BUCKET"],
        cdn_domain=bundle["CDN_DOMAIN"],
        storage_endpoint_url=settings.STORAGE_INTERNAL_ENDPOINT_URL.strip() or None,
        upload_key_prefix=settings.UPLOAD_KEY_PREFIX,
    )


def _build_client(client_factory: ClientFactory, service_name: str):
    try:
        return client_factory(service_name)
    except NoRegionError as e:
        raise SecretUnavailableError(
            f"No region configured for the {service_name} client. "
            "Set SECRETS_REGION or AWS_DEFAULT_REGION.",
            code="NoRegion",
        ) from e
    except BotoCoreError as e:
        raise SecretUnavailableError(f"Could not create the {service_name} client: {e}") from e


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


def verify_ambient_identity(sts_client, role_name: str = "") -> str:
    """
    Confirm the process runs with usable ambient credentials.

    When role_name is given, the caller ARN must belong to that role
    (arn:aws:sts::<account>:assumed-role/<role_name>/<session>).

    Returns:
        str: Caller ARN
    """
    try:
        identity = sts_client.get_caller_identity()
    except NoCredentialsError as e:
        raise SecretUnavailableError(
            "No ambient credentials available. Is an instance role attached?",
            code="NoCredentials",
        ) from e
    except ClientError as e:
        code = _error_code(e)
        raise SecretUnavailableError(f"Ambient identity rejected ({code}): {e}", code=code) from e
    except BotoCoreError as e:
        raise SecretUnavailableError(f"Could not verify ambient identity: {e}") from e

    arn = identity.get("Arn", "")
    if role_name and f"/{role_name}/" not in arn and not arn.endswith(f"/{role_name}"):
        raise SecretUnavailableError(
            f"Ambient identity {arn} does not belong to role {role_name}.",
            code="RoleMismatch",
        )

    logger.info(f"Authenticated with ambient identity: {arn}")
    return arn


def fetch_secret_bundle(secrets_client, secret_name: str) -> Dict[str, str]:
    """
    Fetch and parse the JSON configuration bundle.

    Raises:
        SecretUnavailableError: Secret missing, access denied, or transport failure
        SecretFormatError: Value is not a JSON object carrying every BUNDLE_KEYS entry
    """
    try:
        response = secrets_client.get_secret_value(SecretId=secret_name)
    except ClientError as e:
        code = _error_code(e)
        if code == "ResourceNotFoundException":
            message = f"Secret {secret_name} not found."
        elif code in ("AccessDeniedException", "AccessDenied"):
            message = f"Access to secret {secret_name} denied."
        else:
            message = f"Failed to fetch secret {secret_name} ({code}): {e}"
        raise SecretUnavailableError(message, code=code) from e
    except BotoCoreError as e:
        raise SecretUnavailableError(f"Failed to fetch secret {secret_name}: {e}") from e

    secret_string = response.get("SecretString")
    if not secret_string:
        raise SecretFormatError(f"Secret {secret_name} has no string value.")

    try:
        bundle = json.loads(secret_string)
    except ValueError as e:
        raise SecretFormatError(f"Secret {secret_name} is not valid JSON: {e}") from e

    if not isinstance(bundle, dict):
        raise SecretFormatError(f"Secret {secret_name} must be a JSON object.")

    missing = [key for key in BUNDLE_KEYS if not str(bundle.get(key) or "").strip()]
    if missing:
        raise SecretFormatError(
            f"Secret {secret_name} is missing required keys: {', '.join(missing)}"
        )

    logger.info(f"Loaded application config from secret {secret_name}")
    return {key: str(bundle[key]).strip() for key in BUNDLE_KEYS}
