"""
Bearer-token gate for protected routes.
Parses the Authorization header, verifies the token, checks required scopes and
attaches a TenantContext to request.state. Failures answer 401/403 with a
WWW-Authenticate challenge pointing at the protected-resource metadata.
Protected handlers must not declare body parameters, so the body is never read before this gate.
"""
import logging
from typing import Annotated

from fastapi import Depends, Request

from resource_server.config import PROTECTED_RESOURCE_METADATA_PATH, Settings, get_settings
from resource_server.context import AuthState, TenantContext, transition
from resource_server.errors import AuthenticationError, AuthorizationError, ConfigurationError
from resource_server.jwks import shared_jwks_client
from resource_server.verifier import TokenErrorKind, TokenVerificationError, TokenVerifier

logger = logging.getLogger(__name__)

REASON_MISSING_CREDENTIAL = "missing_credential"
REASON_INVALID_FORMAT = "invalid_format"
REASON_EMPTY_TOKEN = "empty_token"
REASON_INSUFFICIENT_SCOPE = "insufficient_scope"


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def resource_metadata_url(request: Request, settings: Settings) -> str:
    """Configured metadata URL, else the one this server answers on for the current request."""
    if settings.resource_server_url:
        return settings.resource_metadata_url
    return str(request.base_url).rstrip("/") + PROTECTED_RESOURCE_METADATA_PATH


def www_authenticate(
    request: Request, settings: Settings, error: str, description: str, scope: str | None = None
) -> dict[str, str]:
    """RFC 6750 challenge with the RFC 9728 resource_metadata pointer."""
    params = [f'error="{error}"', f'error_description="{_quote(description)}"']
    if scope:
        params.append(f'scope="{scope}"')
    params.append(f'resource_metadata="{resource_metadata_url(request, settings)}"')
    return {"WWW-Authenticate": "Bearer " + ", ".join(params)}


def _reject(request: Request, settings: Settings, reason: str, description: str, *, error: str = "invalid_token"):
    transition(request, AuthState.REJECTED)
    logger.debug("Rejected %s %s: %s", request.method, request.url.path, reason)
    return AuthenticationError(
        reason,
        description,
        error=error,
        headers=www_authenticate(request, settings, error, description),
    )


def get_token_verifier(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenVerifier:
    """Dependency: verifier bound to the configured user pool and the app's JWKS client."""
    if not settings.issuer:
        raise ConfigurationError("Token verification unavailable: COGNITO_USER_POOL_ID is not configured")
    return TokenVerifier(
        settings.issuer,
        shared_jwks_client(request.app.state, settings.jwks_uri, settings.http_timeout),
        verify_audience=settings.verify_audience,
        audience=settings.audience or None,
    )


def get_bearer_token(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    """Extract the Bearer token. A present-but-empty token is reported apart from a missing header."""
    transition(request, AuthState.VERIFYING)
    authorization = request.headers.get("Authorization")
    if not authorization:
        raise _reject(
            request, settings, REASON_MISSING_CREDENTIAL, "Authorization header missing", error="invalid_request"
        )
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise _reject(request, settings, REASON_INVALID_FORMAT, "Bearer scheme required", error="invalid_request")
    token = token.strip()
    if not token:
        raise _reject(request, settings, REASON_EMPTY_TOKEN, "Bearer token is empty", error="invalid_request")
    return token


def require_tenant(
    request: Request,
    token: Annotated[str, Depends(get_bearer_token)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TenantContext:
    """Dependency: verified token with the required scopes -> TenantContext (also set on request.state.tenant)."""
    try:
        claims = verifier.verify(token)
    except TokenVerificationError as e:
        if e.kind is TokenErrorKind.BACKEND_UNAVAILABLE:
            logger.warning("Token verification backend unavailable for %s", request.url.path)
        raise _reject(request, settings, e.kind.value, f"Authentication failed: {e.description}")

    missing = settings.required_scopes - claims.scopes
    if missing:
        transition(request, AuthState.REJECTED)
        required = " ".join(sorted(settings.required_scopes))
        description = f"Scope '{required}' required"
        raise AuthorizationError(
            REASON_INSUFFICIENT_SCOPE,
            description,
            error="insufficient_scope",
            headers=www_authenticate(request, settings, "insufficient_scope", description, scope=required),
        )

    tenant = TenantContext.from_claims(claims)
    request.state.tenant = tenant
    transition(request, AuthState.AUTHORIZED)
    return tenant


RequireTenant = Depends(require_tenant)
