"""
Pytest configuration for resource_server: environment for a test user pool,
a real RSA key with its JWKS, and a token factory signed with that key.
"""
import json
import time
from unittest.mock import patch

import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key
from fastapi.testclient import TestClient

from resource_server.main import app

POOL_ID = "us-east-1_ABC"
REGION = "us-east-1"
ISSUER = f"https://cognito-idp.{REGION}.amazonaws.com/{POOL_ID}"
JWKS_URI = f"{ISSUER}/.well-known/jwks.json"
RESOURCE_SERVER_URL = "https://api.x.com"
KID = "test-key"


def _int_to_b64url(value: int) -> str:
    """Encode a positive int as base64url (JWK n/e)."""
    length = (value.bit_length() + 7) // 8
    s = jwt.utils.base64url_encode(value.to_bytes(length, "big"))
    return s.decode("utf-8") if isinstance(s, bytes) else s


def jwks_for(key, kid: str = KID) -> dict:
    pub = key.public_key().public_numbers()
    return {
        "keys": [
            {"kty": "RSA", "kid": kid, "alg": "RS256", "use": "sig", "n": _int_to_b64url(pub.n), "e": _int_to_b64url(pub.e)}
        ]
    }


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.setenv("RESOURCE_SERVER_URL", RESOURCE_SERVER_URL)
    monkeypatch.setenv("COGNITO_USER_POOL_ID", POOL_ID)
    monkeypatch.setenv("AWS_REGION", REGION)
    monkeypatch.setenv("ROLE_ARN", "arn:aws:iam::123456789012:role/tenant-role")
    monkeypatch.setenv("BUCKET_NAME", "tenant-bucket")
    for name in ("DCR_ENABLED", "AUTHORIZATION_SERVER_WITH_DCR_URL", "OAUTH_REQUIRED_SCOPES", "OAUTH_VERIFY_AUDIENCE"):
        monkeypatch.delenv(name, raising=False)
    app.state.jwks_client = None
    yield
    app.dependency_overrides.clear()
    app.state.jwks_client = None


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture(scope="session")
def rsa_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture
def make_token(rsa_key):
    """Factory: signed access token; keyword overrides replace or (with None) drop claims."""

    def _make(*, key=None, kid: str = KID, algorithm: str = "RS256", **claims):
        now = int(time.time())
        payload = {
            "sub": "user-1",
            "iss": ISSUER,
            "client_id": "dcr-client",
            "scope": "openid profile email",
            "custom:tenantId": "acme",
            "custom:tenantTier": "premium",
            "token_use": "access",
            "exp": now + 3600,
            "iat": now,
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        return jwt.encode(payload, key if key is not None else rsa_key, algorithm=algorithm, headers={"kid": kid})

    return _make


class MockJwksResponse:
    """What urllib.request.urlopen returns to PyJWKClient: a context manager with read()."""

    def __init__(self, data: dict):
        self._body = json.dumps(data).encode("utf-8")

    def read(self, *args):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass


def serve_jwks(data: dict):
    """Patch urlopen so PyJWKClient receives data; the patch's mock counts fetches."""
    return patch("urllib.request.urlopen", side_effect=lambda *args, **kwargs: MockJwksResponse(data))


@pytest.fixture
def jwks(rsa_key):
    """Serve the test key as the pool's JWKS; yields the mock to count calls."""
    with serve_jwks(jwks_for(rsa_key)) as mock_urlopen:
        yield mock_urlopen
