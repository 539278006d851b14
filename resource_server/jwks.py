"""
Signing keys for access-token verification, through PyJWT's PyJWKClient.
The app owns one client (app.state.jwks_client). It caches the key set for JWKS_CACHE_TTL_SECONDS
and up to JWKS_CACHE_MAX_KEYS resolved keys, and refetches once when a token names an unknown kid.
"""
import logging

from jwt import PyJWKClient

from resource_server.config import JWKS_CACHE_MAX_KEYS, JWKS_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


def new_jwks_client(jwks_uri: str, timeout: float = 10.0) -> PyJWKClient:
    return PyJWKClient(
        uri=jwks_uri,
        cache_jwk_set=True,
        lifespan=JWKS_CACHE_TTL_SECONDS,
        cache_keys=True,
        max_cached_keys=JWKS_CACHE_MAX_KEYS,
        timeout=timeout,
    )


def shared_jwks_client(state, jwks_uri: str, timeout: float = 10.0) -> PyJWKClient:
    """
    The client kept on state, replaced when the configured JWKS URI changes.
    Two requests racing on first use may each build one; the later assignment wins.
    """
    client = getattr(state, "jwks_client", None)
    if client is None or client.uri != jwks_uri:
        logger.info("Using JWKS at %s", jwks_uri)
        client = new_jwks_client(jwks_uri, timeout)
        state.jwks_client = client
    return client
