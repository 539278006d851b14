"""
Error taxonomy for the resource server. Every error renders as
{"error": ..., "error_description": ...} JSON (plus "reason" for auth failures);
no stack traces or upstream details reach the client.
"""
from fastapi import Request
from fastapi.responses import JSONResponse


class OAuthError(Exception):
    status_code = 500
    error = "server_error"

    def __init__(self, description: str, *, headers: dict[str, str] | None = None):
        super().__init__(description)
        self.description = description
        self.headers = headers or {}

    def body(self) -> dict:
        return {"error": self.error, "error_description": self.description}


class ConfigurationError(OAuthError):
    """Required settings are missing or invalid."""

    status_code = 503
    error = "service_unavailable"


class UpstreamError(OAuthError):
    """A dependency (JWKS, STS, S3) failed; detail is logged, never returned."""

    status_code = 500
    error = "server_error"


class AuthenticationError(OAuthError):
    """401. `reason` is the stable fine-grained kind (missing_credential, token_expired, ...)."""

    status_code = 401

    def __init__(self, reason: str, description: str, *, error: str = "invalid_token", headers=None):
        super().__init__(description, headers=headers)
        self.reason = reason
        self.error = error

    def body(self) -> dict:
        return {**super().body(), "reason": self.reason}


class AuthorizationError(AuthenticationError):
    """403: the identity is valid but not allowed (scope, tenant)."""

    status_code = 403


class CredentialDerivationError(OAuthError):
    status_code = 500
    error = "server_error"

    def __init__(self, description: str = "credential derivation failed"):
        super().__init__(description)


async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.body(), headers=exc.headers)
