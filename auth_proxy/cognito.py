"""
Upstream client administration against the Cognito user pool (boto3 cognito-idp).
Only public app clients are ever created: GenerateSecret is always False.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Depends

from auth_proxy.config import Settings, get_settings

logger = logging.getLogger(__name__)


class UpstreamClientError(Exception):
    """A Cognito admin call failed."""


@dataclass(frozen=True)
class UpstreamClient:
    client_id: str
    created_at: datetime | None = None


def _to_client(user_pool_client: dict) -> UpstreamClient:
    return UpstreamClient(
        client_id=user_pool_client["ClientId"],
        created_at=user_pool_client.get("CreationDate"),
    )


class CognitoClientAdmin:
    def __init__(self, user_pool_id: str, cognito_client=None, client_factory=None):
        self.user_pool_id = user_pool_id
        self._cognito = cognito_client
        self._client_factory = client_factory

    @property
    def cognito(self):
        # Created on first use so requests rejected before any upstream call never build a client
        if self._cognito is None:
            self._cognito = self._client_factory()
        return self._cognito

    def create_public_client(
        self,
        client_name: str,
        redirect_uris: list[str],
        grant_types: list[str],
        scopes: list[str],
    ) -> UpstreamClient:
        try:
            result = self.cognito.create_user_pool_client(
                UserPoolId=self.user_pool_id,
                ClientName=client_name,
                GenerateSecret=False,
                AllowedOAuthFlowsUserPoolClient=True,
                AllowedOAuthFlows=["code"] if "authorization_code" in grant_types else [],
                AllowedOAuthScopes=scopes,
                CallbackURLs=redirect_uris,
                ExplicitAuthFlows=["ALLOW_USER_SRP_AUTH"],
                SupportedIdentityProviders=["COGNITO"],
            )
        except (BotoCoreError, ClientError) as e:
            raise UpstreamClientError(str(e)) from e
        return _to_client(result["UserPoolClient"])

    def describe_client(self, client_id: str) -> UpstreamClient:
        try:
            result = self.cognito.describe_user_pool_client(UserPoolId=self.user_pool_id, ClientId=client_id)
        except (BotoCoreError, ClientError) as e:
            raise UpstreamClientError(str(e)) from e
        return _to_client(result["UserPoolClient"])

    def create_branding(self, client_id: str) -> None:
        """Managed login branding with Cognito defaults. The pool limits how many clients can have one."""
        try:
            self.cognito.create_managed_login_branding(
                UserPoolId=self.user_pool_id,
                ClientId=client_id,
                UseCognitoProvidedValues=True,
            )
        except (BotoCoreError, ClientError) as e:
            raise UpstreamClientError(str(e)) from e


def cognito_client_factory(settings: Settings):
    def _create():
        return boto3.client(
            "cognito-idp",
            region_name=settings.region or None,
            # One attempt: a retried CreateUserPoolClient can leave duplicate clients upstream
            config=Config(
                connect_timeout=settings.http_timeout,
                read_timeout=settings.http_timeout,
                retries={"total_max_attempts": 1, "mode": "standard"},
            ),
        )

    return _create


def get_client_admin(settings: Annotated[Settings, Depends(get_settings)]) -> CognitoClientAdmin:
    """Dependency: admin bound to the configured user pool."""
    return CognitoClientAdmin(settings.user_pool_id, client_factory=cognito_client_factory(settings))
