"""
Authorization-server proxy configuration (dynamic client registration + discovery metadata).
Values from the environment; no secrets in this file. Request-scoped settings are
read through get_settings so missing values fail the request that needs them.
"""
import os
from dataclasses import dataclass

# Dedup index and audit log. SQLite for development; any SQLAlchemy URL works.
DATABASE_URL = os.environ.get("DCR_DATABASE_URL", "sqlite:///./dcr_clients.db")

# Cache lifetime for upstream discovery metadata when Cognito sends no max-age (seconds)
METADATA_DEFAULT_MAX_AGE = int(os.environ.get("METADATA_DEFAULT_MAX_AGE", "3600"))

# Name given to the upstream app client when the registration has no client_name
DEFAULT_CLIENT_NAME = "OAuth Dynamic Client"


@dataclass(frozen=True)
class Settings:
    user_pool_id: str
    region: str
    registration_endpoint_url: str
    http_timeout: float

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            user_pool_id=os.environ.get("COGNITO_USER_POOL_ID", "").strip(),
            region=(os.environ.get("DEPLOYMENT_REGION") or os.environ.get("AWS_REGION") or "").strip(),
            registration_endpoint_url=os.environ.get("REGISTRATION_ENDPOINT_URL", "").strip(),
            http_timeout=float(os.environ.get("HTTP_TIMEOUT_SECONDS", "10")),
        )

    @property
    def issuer(self) -> str:
        return f"https://cognito-idp.{self.region}.amazonaws.com/{self.user_pool_id}"

    @property
    def upstream_metadata_url(self) -> str:
        return f"{self.issuer}/.well-known/openid-configuration"

    def missing_metadata_settings(self) -> list[str]:
        """Names of settings the discovery proxy needs but does not have."""
        required = [
            ("COGNITO_USER_POOL_ID", self.user_pool_id),
            ("DEPLOYMENT_REGION", self.region),
            ("REGISTRATION_ENDPOINT_URL", self.registration_endpoint_url),
        ]
        return [name for name, value in required if not value]


def get_settings() -> Settings:
    """Dependency: current settings from the environment."""
    return Settings.from_env()
