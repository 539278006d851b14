"""
Resource server configuration. All values come from the environment; nothing secret lives here.
Settings are read per request (see get_settings) so a missing value is reported by the
endpoint that needs it instead of crashing the process at import.
"""
import os
from dataclasses import dataclass

# Path of the MCP endpoint appended to RESOURCE_SERVER_URL to form the RFC 9728 resource identifier
RESOURCE_PATH = "/mcp"

PROTECTED_RESOURCE_METADATA_PATH = "/.well-known/oauth-protected-resource"

# Region used for the issuer when AWS_REGION is unset (token verification only)
DEFAULT_REGION = "us-east-1"

# Signing-key cache: 10 minutes, at most 5 keys
JWKS_CACHE_TTL_SECONDS = int(os.environ.get("JWKS_CACHE_TTL_SECONDS", "600"))
JWKS_CACHE_MAX_KEYS = int(os.environ.get("JWKS_CACHE_MAX_KEYS", "5"))


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _flag(name: str, default: str = "false") -> bool:
    return _env(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    resource_server_url: str
    user_pool_id: str
    region: str
    dcr_enabled: bool
    authorization_server_with_dcr_url: str
    role_arn: str
    bucket_name: str
    required_scopes: frozenset[str]
    # Audience is not checked by default: clients registered through DCR have no pre-known audience
    verify_audience: bool
    audience: str
    http_timeout: float

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            resource_server_url=_env("RESOURCE_SERVER_URL"),
            user_pool_id=_env("COGNITO_USER_POOL_ID"),
            region=_env("AWS_REGION"),
            dcr_enabled=_flag("DCR_ENABLED"),
            authorization_server_with_dcr_url=_env("AUTHORIZATION_SERVER_WITH_DCR_URL"),
            role_arn=_env("ROLE_ARN"),
            bucket_name=_env("BUCKET_NAME"),
            required_scopes=frozenset(_env("OAUTH_REQUIRED_SCOPES", "openid").split()),
            verify_audience=_flag("OAUTH_VERIFY_AUDIENCE"),
            audience=_env("OAUTH_AUDIENCE"),
            http_timeout=float(_env("HTTP_TIMEOUT_SECONDS", "10")),
        )

    @property
    def issuer(self) -> str:
        """Cognito issuer for the user pool; empty when the pool id is not configured."""
        if not self.user_pool_id:
            return ""
        return cognito_issuer(self.region or DEFAULT_REGION, self.user_pool_id)

    @property
    def jwks_uri(self) -> str:
        return f"{self.issuer}/.well-known/jwks.json" if self.issuer else ""

    @property
    def resource_metadata_url(self) -> str:
        return f"{self.resource_server_url.rstrip('/')}{PROTECTED_RESOURCE_METADATA_PATH}"


def cognito_issuer(region: str, user_pool_id: str) -> str:
    return f"https://cognito-idp.{region}.amazonaws.com/{user_pool_id}"


def get_settings() -> Settings:
    """Dependency: current settings from the environment."""
    return Settings.from_env()
