"""
Authorization server metadata (RFC 8414 / OpenID discovery) for the Cognito user pool,
augmented with our registration_endpoint and an S256-only PKCE signal.
Served at /.well-known/openid-configuration and the /.well-known/oauth-authorization-server alias.
"""
import logging
import re

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from auth_proxy.config import METADATA_DEFAULT_MAX_AGE, Settings, get_settings
from auth_proxy.errors import ConfigurationError, UpstreamError
from auth_proxy.metadata_cache import MetadataCache

logger = logging.getLogger(__name__)
router = APIRouter()

UNAVAILABLE_DESCRIPTION = "OpenID configuration temporarily unavailable"
RESPONSE_HEADERS = {"Cache-Control": "public, max-age=3600"}

_MAX_AGE = re.compile(r"max-age=(\d+)")


def parse_max_age(cache_control: str | None) -> int | None:
    """max-age from a Cache-Control header value, or None if absent."""
    if not cache_control:
        return None
    match = _MAX_AGE.search(cache_control)
    return int(match.group(1)) if match else None


def enhance_metadata(upstream: dict, registration_endpoint: str) -> dict:
    return {
        **upstream,
        "registration_endpoint": registration_endpoint,
        "code_challenge_methods_supported": ["S256"],
    }


def fetch_metadata(settings: Settings, cache: MetadataCache) -> dict:
    """Cached document, or fetch from Cognito, enhance and cache. Concurrent misses may each fetch."""
    cached = cache.get()
    if cached is not None:
        logger.debug("Returning cached OpenID configuration")
        return cached

    url = settings.upstream_metadata_url
    logger.info("Fetching Cognito OpenID configuration from %s", url)
    try:
        response = httpx.get(url, timeout=settings.http_timeout)
    except httpx.HTTPError as e:
        logger.error("Failed to fetch Cognito OpenID configuration: %s", e)
        raise UpstreamError(UNAVAILABLE_DESCRIPTION)
    if not response.is_success:
        logger.error("Cognito OpenID config request failed: %s", response.status_code)
        raise UpstreamError(UNAVAILABLE_DESCRIPTION)
    try:
        upstream = response.json()
    except ValueError as e:
        logger.error("Cognito OpenID configuration is not valid JSON: %s", e)
        raise UpstreamError(UNAVAILABLE_DESCRIPTION)
    if not isinstance(upstream, dict):
        logger.error("Cognito OpenID configuration is not a JSON object")
        raise UpstreamError(UNAVAILABLE_DESCRIPTION)

    document = enhance_metadata(upstream, settings.registration_endpoint_url)
    max_age = parse_max_age(response.headers.get("cache-control"))
    if max_age is None:
        max_age = METADATA_DEFAULT_MAX_AGE
    cache.put(document, max_age)
    logger.info("Cached OpenID configuration for issuer %s (max-age %ss)", upstream.get("issuer"), max_age)
    return document


def get_metadata_cache(request: Request) -> MetadataCache:
    return request.app.state.metadata_cache


@router.get("/.well-known/openid-configuration")
@router.get("/.well-known/oauth-authorization-server")
def authorization_server_metadata(
    settings: Settings = Depends(get_settings),
    cache: MetadataCache = Depends(get_metadata_cache),
):
    """Cognito discovery document plus registration_endpoint and code_challenge_methods_supported."""
    missing = settings.missing_metadata_settings()
    if missing:
        logger.error("Missing required environment variables: %s", missing)
        raise ConfigurationError(UNAVAILABLE_DESCRIPTION)
    return JSONResponse(content=fetch_metadata(settings, cache), headers=RESPONSE_HEADERS)
