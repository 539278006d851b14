"""
Error taxonomy for the authorization-server proxy, rendered as RFC 7591 / RFC 6749
style {"error", "error_description"} JSON. Registration responses are never cached.
"""
from fastapi import Request
from fastapi.responses import JSONResponse

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


class OAuthError(Exception):
    status_code = 500
    error = "server_error"

    def __init__(self, description: str, *, error: str | None = None):
        super().__init__(description)
        self.description = description
        if error is not None:
            self.error = error

    def body(self) -> dict:
        return {"error": self.error, "error_description": self.description}


class ConfigurationError(OAuthError):
    """Required settings missing; the proxy fails closed."""


class UpstreamError(OAuthError):
    """Cognito or another dependency failed; its detail is logged, never returned."""


class ValidationError(OAuthError):
    """Bad client input. Carries every violation found, joined into the description."""

    status_code = 400

    def __init__(self, error: str, messages: list[str]):
        super().__init__("; ".join(messages), error=error)
        self.messages = messages


class InvalidRequestError(OAuthError):
    """Malformed request: wrong content type or unparseable body."""

    status_code = 400
    error = "invalid_request"


class NotAllowedError(OAuthError):
    status_code = 405
    error = "invalid_request"


async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.body(), headers=NO_STORE_HEADERS)
