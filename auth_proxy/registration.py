"""
Dynamic Client Registration (RFC 7591), POST /register.
Registers public clients only (token_endpoint_auth_method "none", never a secret) as
Cognito app clients. Identical (client_name, redirect_uris) registrations are
deduplicated through the index so repeats return the same client_id.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from auth_proxy.audit import (
    EVENT_CLIENT_REGISTERED,
    EVENT_CLIENT_REUSED,
    EVENT_REGISTRATION_FAILED,
    EVENT_REGISTRATION_REJECTED,
    OUTCOME_FAIL,
    get_client_ip,
    log_audit,
)
from auth_proxy.cognito import CognitoClientAdmin, UpstreamClient, UpstreamClientError, get_client_admin
from auth_proxy.config import DEFAULT_CLIENT_NAME, Settings, get_settings
from auth_proxy.database import get_db
from auth_proxy.dedup_store import DedupStore, DedupStoreError, client_key
from auth_proxy.errors import (
    NO_STORE_HEADERS,
    ConfigurationError,
    InvalidRequestError,
    NotAllowedError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)
router = APIRouter()

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}

DEFAULT_GRANT_TYPES = ["authorization_code"]
DEFAULT_RESPONSE_TYPES = ["code"]
DEFAULT_SCOPES = ["openid"]

# Set by the server; a request can never override these in the response
SERVER_SET_FIELDS = frozenset(
    {
        "client_id",
        "client_id_issued_at",
        "client_secret",
        "client_secret_expires_at",
        "registration_access_token",
        "registration_client_uri",
        "token_endpoint_auth_method",
        "redirect_uris",
        "grant_types",
        "response_types",
    }
)


@dataclass
class RegistrationRequest:
    redirect_uris: list[str]
    grant_types: list[str]
    response_types: list[str]
    client_name: str | None = None
    scope: str | None = None
    # Optional, internationalized (client_name#xx) and extension metadata, echoed verbatim
    metadata: dict = field(default_factory=dict)

    @property
    def scopes(self) -> list[str]:
        return self.scope.split() if self.scope else list(DEFAULT_SCOPES)


def redirect_uri_error(uri) -> str | None:
    """Why uri is not an acceptable redirect URI, or None. https anywhere; http only to loopback."""
    if not isinstance(uri, str) or not uri:
        return f"Invalid URI format: {uri!r}"
    try:
        parts = urlsplit(uri)
        parts.port
    except ValueError:
        return f"Invalid URI format: {uri}"
    if not parts.scheme or not parts.netloc or not parts.hostname:
        return f"Invalid URI format: {uri}"
    if parts.fragment:
        return f"redirect_uris must not contain a fragment: {uri}"
    if parts.scheme == "https":
        return None
    if parts.scheme == "http" and parts.hostname in LOOPBACK_HOSTS:
        return None
    return f"redirect_uris must use HTTPS or localhost: {uri}"


def _string_list(body: dict, name: str, default: list[str], errors: list[str]) -> list[str]:
    value = body.get(name)
    if value is None:
        return list(default)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        errors.append(f"{name} must be an array of strings")
        return list(default)
    return value


def parse_registration(body) -> RegistrationRequest:
    """
    Validate RFC 7591 client metadata, collecting every violation.
    Redirect URI problems are reported as invalid_redirect_uri and take precedence over
    other metadata problems (invalid_client_metadata).
    """
    if not isinstance(body, dict):
        raise ValidationError("invalid_client_metadata", ["Request body must be a JSON object"])

    redirect_uris = body.get("redirect_uris")
    if not isinstance(redirect_uris, list) or not redirect_uris:
        raise ValidationError(
            "invalid_redirect_uri", ["redirect_uris is required and must be a non-empty array"]
        )
    redirect_errors = [e for e in (redirect_uri_error(uri) for uri in redirect_uris) if e]
    if redirect_errors:
        raise ValidationError("invalid_redirect_uri", redirect_errors)

    errors: list[str] = []
    grant_types = _string_list(body, "grant_types", DEFAULT_GRANT_TYPES, errors)
    response_types = _string_list(body, "response_types", DEFAULT_RESPONSE_TYPES, errors)
    if not errors and "authorization_code" in grant_types and "code" not in response_types:
        errors.append("authorization_code grant requires code response_type")
    client_name = body.get("client_name")
    if client_name is not None and not isinstance(client_name, str):
        errors.append("client_name must be a string")
    scope = body.get("scope")
    if scope is not None and not isinstance(scope, str):
        errors.append("scope must be a space-separated string")
    if errors:
        raise ValidationError("invalid_client_metadata", errors)

    metadata = {k: v for k, v in body.items() if k not in SERVER_SET_FIELDS and v is not None}
    return RegistrationRequest(
        redirect_uris=redirect_uris,
        grant_types=grant_types,
        response_types=response_types,
        client_name=client_name or None,
        scope=scope or None,
        metadata=metadata,
    )


class DynamicClientRegistrar:
    def __init__(self, store: DedupStore, admin: CognitoClientAdmin):
        self.store = store
        self.admin = admin

    def _find_existing(self, key: str) -> UpstreamClient | None:
        """Indexed client still present upstream, or None. Index or lookup failures count as a miss."""
        try:
            entry = self.store.find(key)
        except DedupStoreError as e:
            logger.warning("Error reading public client index: %s", e)
            return None
        if entry is None:
            return None
        try:
            return self.admin.describe_client(entry.client_id)
        except UpstreamClientError as e:
            logger.warning("Indexed client %s could not be described: %s", entry.client_id, e)
            return None

    def register(self, registration: RegistrationRequest) -> tuple[UpstreamClient, bool]:
        """Return (client, created). Reuses the indexed client for a repeated registration."""
        key = client_key(registration.client_name, registration.redirect_uris)
        existing = self._find_existing(key)
        if existing is not None:
            logger.info("Returning existing client: %s", existing.client_id)
            return existing, False

        logger.info("Creating new client")
        try:
            client = self.admin.create_public_client(
                registration.client_name or DEFAULT_CLIENT_NAME,
                registration.redirect_uris,
                registration.grant_types,
                registration.scopes,
            )
        except UpstreamClientError as e:
            logger.error("Upstream client creation failed: %s", e)
            raise UpstreamError("Internal server error")

        # The client exists from here on; indexing and branding are best effort
        try:
            self.store.put(key, client.client_id)
        except DedupStoreError as e:
            logger.warning("Error storing public client %s: %s", client.client_id, e)
        try:
            self.admin.create_branding(client.client_id)
            logger.info("Created branding for client: %s", client.client_id)
        except UpstreamClientError as e:
            logger.warning("Could not create branding for client %s: %s", client.client_id, e)
        return client, True


def registration_response(registration: RegistrationRequest, client: UpstreamClient) -> dict:
    issued_at = int(client.created_at.timestamp()) if client.created_at else int(time.time())
    return {
        **registration.metadata,
        "client_id": client.client_id,
        "client_id_issued_at": issued_at,
        "redirect_uris": registration.redirect_uris,
        "grant_types": registration.grant_types,
        "response_types": registration.response_types,
        "token_endpoint_auth_method": "none",
    }


async def registration_body(request: Request):
    """Dependency: the parsed JSON body. Only application/json is accepted."""
    media_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if media_type != "application/json":
        raise InvalidRequestError("Content-Type must be application/json")
    raw = await request.body()
    try:
        body = json.loads(raw or b"{}")
    except ValueError:
        raise InvalidRequestError("Invalid JSON in request body")
    if not isinstance(body, dict):
        raise ValidationError("invalid_client_metadata", ["Request body must be a JSON object"])
    return body


def get_dedup_store(db: Session = Depends(get_db)) -> DedupStore:
    return DedupStore(db)


@router.post("/register", status_code=201)
def register(
    request: Request,
    body=Depends(registration_body),
    settings: Settings = Depends(get_settings),
    store: DedupStore = Depends(get_dedup_store),
    admin: CognitoClientAdmin = Depends(get_client_admin),
    db: Session = Depends(get_db),
):
    """RFC 7591 registration of a public client."""
    if not settings.user_pool_id:
        logger.error("COGNITO_USER_POOL_ID is not configured")
        raise ConfigurationError("Server configuration error")

    ip = get_client_ip(request)
    try:
        registration = parse_registration(body)
    except ValidationError as e:
        logger.info("Registration rejected (%s): %s", e.error, e.description)
        log_audit(db, EVENT_REGISTRATION_REJECTED, ip=ip, outcome=OUTCOME_FAIL)
        raise

    try:
        client, created = DynamicClientRegistrar(store, admin).register(registration)
    except UpstreamError:
        log_audit(db, EVENT_REGISTRATION_FAILED, ip=ip, outcome=OUTCOME_FAIL)
        raise
    log_audit(db, EVENT_CLIENT_REGISTERED if created else EVENT_CLIENT_REUSED, client_id=client.client_id, ip=ip)
    return JSONResponse(
        status_code=201,
        content=registration_response(registration, client),
        headers=NO_STORE_HEADERS,
    )


@router.api_route("/register", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def register_method_not_allowed():
    raise NotAllowedError("Only POST method is allowed")
