"""
OAuth 2.0 Protected Resource Metadata (RFC 9728).
GET /.well-known/oauth-protected-resource returns the metadata, or 503 when the
configuration is incomplete; a partially populated document is never served.
"""
import logging
from dataclasses import dataclass, field
from typing import Annotated
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from resource_server.config import PROTECTED_RESOURCE_METADATA_PATH, RESOURCE_PATH, Settings, get_settings

logger = logging.getLogger(__name__)
router = APIRouter()

SCOPES_SUPPORTED = ["openid", "profile", "email"]
BEARER_METHODS_SUPPORTED = ["header"]

UNAVAILABLE_DESCRIPTION = "OAuth metadata temporarily unavailable due to configuration error"


@dataclass
class ConfigurationCheck:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def validate_configuration(settings: Settings) -> ConfigurationCheck:
    """Check required settings, collecting every violation."""
    errors = []
    required = [
        ("RESOURCE_SERVER_URL", settings.resource_server_url),
        ("COGNITO_USER_POOL_ID", settings.user_pool_id),
        ("AWS_REGION", settings.region),
    ]
    for name, value in required:
        if not value or not value.strip():
            errors.append(f"Missing required environment variable: {name}")

    # Format is only checked when the value is present
    if settings.resource_server_url:
        try:
            parts = urlsplit(settings.resource_server_url)
        except ValueError:
            errors.append("Invalid RESOURCE_SERVER_URL format: must be a valid URL")
        else:
            if parts.scheme not in ("http", "https"):
                errors.append("Invalid RESOURCE_SERVER_URL format: must use http or https protocol")
            elif not parts.netloc:
                errors.append("Invalid RESOURCE_SERVER_URL format: must be a valid URL")

    if errors:
        logger.error("OAuth metadata configuration validation failed: %s", errors)
    return ConfigurationCheck(is_valid=not errors, errors=errors)


def authorization_servers(settings: Settings) -> list[str]:
    """The DCR proxy when enabled and configured, otherwise the Cognito issuer directly."""
    if settings.dcr_enabled and settings.authorization_server_with_dcr_url:
        return [settings.authorization_server_with_dcr_url.rstrip("/")]
    return [settings.issuer]


def generate_metadata(settings: Settings) -> dict:
    return {
        "resource": f"{settings.resource_server_url.rstrip('/')}{RESOURCE_PATH}",
        "authorization_servers": authorization_servers(settings),
        "scopes_supported": list(SCOPES_SUPPORTED),
        "bearer_methods_supported": list(BEARER_METHODS_SUPPORTED),
    }


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": "service_unavailable", "error_description": UNAVAILABLE_DESCRIPTION},
    )


@router.get(PROTECTED_RESOURCE_METADATA_PATH)
@router.get(PROTECTED_RESOURCE_METADATA_PATH + "/{suffix:path}", include_in_schema=False)
def protected_resource_metadata(request: Request, settings: Annotated[Settings, Depends(get_settings)]):
    """RFC 9728 document for this resource server."""
    logger.debug(
        "OAuth metadata endpoint accessed: %s from %s",
        request.url.path,
        request.client.host if request.client else None,
    )
    try:
        check = validate_configuration(settings)
        if not check.is_valid:
            return _unavailable()
        return generate_metadata(settings)
    except Exception:
        logger.exception("Unexpected error in OAuth metadata endpoint")
        return _unavailable()
