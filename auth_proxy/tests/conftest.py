"""
Pytest configuration for auth_proxy. Use in-memory SQLite so tests don't touch the filesystem,
and an in-memory stand-in for the Cognito cognito-idp client.
"""
import os
from datetime import datetime, timezone

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["DCR_DATABASE_URL"] = "sqlite:///:memory:"

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from auth_proxy.cognito import CognitoClientAdmin, get_client_admin
from auth_proxy.database import SessionLocal, engine, init_db
from auth_proxy.main import app
from auth_proxy.models import Base

POOL_ID = "us-east-1_ABC"
REGION = "us-east-1"
ISSUER = f"https://cognito-idp.{REGION}.amazonaws.com/{POOL_ID}"
REGISTRATION_ENDPOINT = "https://auth.example.com/register"
CREATION_DATE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeCognito:
    """Records cognito-idp calls; set fail_* to make the matching call raise."""

    def __init__(self):
        self.clients: dict[str, dict] = {}
        self.create_calls: list[dict] = []
        self.branding_calls: list[dict] = []
        self.fail_create = False
        self.fail_describe = False
        self.fail_branding = False

    def create_user_pool_client(self, **kwargs):
        self.create_calls.append(kwargs)
        if self.fail_create:
            raise _client_error("LimitExceededException", "CreateUserPoolClient")
        client_id = f"client-{len(self.create_calls)}"
        record = {"ClientId": client_id, "ClientName": kwargs["ClientName"], "CreationDate": CREATION_DATE}
        self.clients[client_id] = record
        return {"UserPoolClient": record}

    def describe_user_pool_client(self, UserPoolId, ClientId):
        if self.fail_describe or ClientId not in self.clients:
            raise _client_error("ResourceNotFoundException", "DescribeUserPoolClient")
        return {"UserPoolClient": self.clients[ClientId]}

    def create_managed_login_branding(self, **kwargs):
        self.branding_calls.append(kwargs)
        if self.fail_branding:
            raise _client_error("LimitExceededException", "CreateManagedLoginBranding")
        return {"ManagedLoginBranding": {"ManagedLoginBrandingId": f"branding-{kwargs['ClientId']}"}}


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.setenv("COGNITO_USER_POOL_ID", POOL_ID)
    monkeypatch.setenv("DEPLOYMENT_REGION", REGION)
    monkeypatch.setenv("REGISTRATION_ENDPOINT_URL", REGISTRATION_ENDPOINT)
    monkeypatch.delenv("AWS_REGION", raising=False)
    init_db()
    app.state.metadata_cache.clear()
    yield
    app.dependency_overrides.clear()
    app.state.metadata_cache.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def cognito():
    fake = FakeCognito()
    app.dependency_overrides[get_client_admin] = lambda: CognitoClientAdmin(POOL_ID, cognito_client=fake)
    return fake


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
