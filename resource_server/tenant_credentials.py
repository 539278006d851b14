"""
Tenant-scoped temporary AWS credentials.
The tenant id always comes from the verified TenantContext; it is carried as the
"tenantId" session tag so the role's policies can restrict access to that tenant's data.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Depends, Request

from resource_server.auth import RequireTenant
from resource_server.config import DEFAULT_REGION, Settings, get_settings
from resource_server.context import AuthState, TenantContext, transition
from resource_server.errors import AuthorizationError, ConfigurationError, CredentialDerivationError

logger = logging.getLogger(__name__)

SESSION_TAG_KEY = "tenantId"

# STS RoleSessionName: [\w+=,.@-], 2-64 chars
_SESSION_NAME_INVALID = re.compile(r"[^\w+=,.@-]")
_SESSION_NAME_MAX = 64


@dataclass(frozen=True)
class TemporaryCredential:
    access_key: str
    secret_key: str
    session_token: str
    expiry: datetime | None


class RoleAssumer(Protocol):
    def assume_role(self, **kwargs) -> dict: ...


def session_name(tenant_id: str) -> str:
    """Deterministic STS session name for audit trails."""
    name = f"tenant-{_SESSION_NAME_INVALID.sub('-', tenant_id)}-session"
    return name[:_SESSION_NAME_MAX]


class TenantCredentialDeriver:
    def __init__(self, sts_client: RoleAssumer, role_arn: str):
        self.sts_client = sts_client
        self.role_arn = role_arn

    def derive(self, tenant: TenantContext) -> TemporaryCredential:
        """Assume the tenant role tagged with tenant.tenant_id. No fallback to ambient credentials."""
        if not tenant.tenant_id:
            raise AuthorizationError("tenant_required", "Token carries no tenant identity")
        try:
            response = self.sts_client.assume_role(
                RoleArn=self.role_arn,
                RoleSessionName=session_name(tenant.tenant_id),
                Tags=[{"Key": SESSION_TAG_KEY, "Value": tenant.tenant_id}],
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("AssumeRole failed for tenant %s: %s", tenant.tenant_id, e)
            raise CredentialDerivationError()

        credentials = (response or {}).get("Credentials")
        if not credentials or not credentials.get("AccessKeyId") or not credentials.get("SecretAccessKey"):
            logger.error("AssumeRole returned no credentials for tenant %s", tenant.tenant_id)
            raise CredentialDerivationError()
        return TemporaryCredential(
            access_key=credentials["AccessKeyId"],
            secret_key=credentials["SecretAccessKey"],
            session_token=credentials.get("SessionToken", ""),
            expiry=credentials.get("Expiration"),
        )


def boto_config(settings: Settings) -> Config:
    """Bounded timeouts for every AWS call. One attempt only: failures surface to the caller."""
    return Config(
        connect_timeout=settings.http_timeout,
        read_timeout=settings.http_timeout,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )


def get_sts_client(settings: Annotated[Settings, Depends(get_settings)]) -> RoleAssumer:
    return boto3.client("sts", region_name=settings.region or DEFAULT_REGION, config=boto_config(settings))


def get_credential_deriver(
    settings: Annotated[Settings, Depends(get_settings)],
    sts_client: Annotated[RoleAssumer, Depends(get_sts_client)],
) -> TenantCredentialDeriver:
    if not settings.role_arn:
        raise ConfigurationError("Tenant credentials unavailable: ROLE_ARN is not configured")
    return TenantCredentialDeriver(sts_client, settings.role_arn)


def tenant_credentials(
    request: Request,
    tenant: TenantContext = RequireTenant,
    deriver: TenantCredentialDeriver = Depends(get_credential_deriver),
) -> TemporaryCredential:
    """Dependency: credentials for the verified tenant of this request."""
    try:
        credential = deriver.derive(tenant)
    except Exception:
        transition(request, AuthState.CREDENTIAL_FAILED)
        raise
    transition(request, AuthState.CREDENTIALED)
    return credential
