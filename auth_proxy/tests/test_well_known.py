"""
Tests for the authorization server metadata proxy and its cache.
"""
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import httpx
import pytest

from auth_proxy.config import Settings
from auth_proxy.metadata_cache import MetadataCache
from auth_proxy.well_known import fetch_metadata, parse_max_age

POOL_ID = "us-east-1_ABC"
REGION = "us-east-1"
ISSUER = f"https://cognito-idp.{REGION}.amazonaws.com/{POOL_ID}"
REGISTRATION_ENDPOINT = "https://auth.example.com/register"
METADATA_PATHS = ["/.well-known/openid-configuration", "/.well-known/oauth-authorization-server"]

UPSTREAM = {
    "issuer": ISSUER,
    "authorization_endpoint": "https://auth.example.auth.us-east-1.amazoncognito.com/oauth2/authorize",
    "token_endpoint": "https://auth.example.auth.us-east-1.amazoncognito.com/oauth2/token",
    "jwks_uri": f"{ISSUER}/.well-known/jwks.json",
    "response_types_supported": ["code", "token"],
}


def upstream_response(cache_control: str | None = None, status_code: int = 200, document=UPSTREAM):
    headers = {"Cache-Control": cache_control} if cache_control else {}
    return httpx.Response(status_code, json=document, headers=headers)


@pytest.mark.parametrize("path", METADATA_PATHS)
def test_metadata_is_enhanced(client, path):
    with patch("auth_proxy.well_known.httpx.get", return_value=upstream_response()) as get:
        r = client.get(path)
    assert r.status_code == 200
    data = r.json()
    assert data["issuer"] == ISSUER
    assert data["jwks_uri"] == UPSTREAM["jwks_uri"]
    assert data["registration_endpoint"] == REGISTRATION_ENDPOINT
    assert data["code_challenge_methods_supported"] == ["S256"]
    assert r.headers["cache-control"] == "public, max-age=3600"
    assert get.call_args.args[0] == f"{ISSUER}/.well-known/openid-configuration"
    assert get.call_args.kwargs["timeout"] > 0


def test_second_call_uses_cache(client):
    with patch("auth_proxy.well_known.httpx.get", return_value=upstream_response()) as get:
        first = client.get(METADATA_PATHS[0])
        second = client.get(METADATA_PATHS[1])
    assert first.json() == second.json()
    assert get.call_count == 1


def test_max_age_zero_is_not_cached(client):
    with patch("auth_proxy.well_known.httpx.get", return_value=upstream_response("max-age=0")) as get:
        client.get(METADATA_PATHS[0])
        client.get(METADATA_PATHS[0])
    assert get.call_count == 2


@pytest.mark.parametrize("missing", ["COGNITO_USER_POOL_ID", "DEPLOYMENT_REGION", "REGISTRATION_ENDPOINT_URL"])
@pytest.mark.parametrize("path", METADATA_PATHS)
def test_missing_setting_fails_before_fetch(client, monkeypatch, missing, path):
    monkeypatch.delenv(missing)
    with patch("auth_proxy.well_known.httpx.get") as get:
        r = client.get(path)
    assert r.status_code == 500
    assert set(r.json()) == {"error", "error_description"}
    assert r.json()["error"] == "server_error"
    get.assert_not_called()


def test_region_falls_back_to_aws_region(client, monkeypatch):
    monkeypatch.delenv("DEPLOYMENT_REGION")
    monkeypatch.setenv("AWS_REGION", REGION)
    with patch("auth_proxy.well_known.httpx.get", return_value=upstream_response()):
        r = client.get(METADATA_PATHS[0])
    assert r.status_code == 200


def test_upstream_error_status(client):
    with patch("auth_proxy.well_known.httpx.get", return_value=upstream_response(status_code=503, document={"message": "down"})):
        r = client.get(METADATA_PATHS[0])
    assert r.status_code == 500
    assert r.json() == {"error": "server_error", "error_description": "OpenID configuration temporarily unavailable"}


def test_upstream_transport_error_is_not_cached(client):
    with patch("auth_proxy.well_known.httpx.get", side_effect=httpx.ConnectTimeout("timed out")) as get:
        assert client.get(METADATA_PATHS[0]).status_code == 500
        assert client.get(METADATA_PATHS[0]).status_code == 500
    assert get.call_count == 2


@pytest.mark.parametrize(
    "header,expected",
    [
        ("max-age=300", 300),
        ("public, max-age=0", 0),
        ("no-cache", None),
        (None, None),
    ],
)
def test_parse_max_age(header, expected):
    assert parse_max_age(header) == expected


def test_cache_expires():
    now = [1000.0]
    cache = MetadataCache(clock=lambda: now[0])
    cache.put({"issuer": ISSUER}, 60)
    assert cache.get() == {"issuer": ISSUER}
    now[0] += 59
    assert cache.get() is not None
    now[0] += 1
    assert cache.get() is None


def test_expired_cache_under_concurrency_fetches_a_few_times():
    now = [0.0]
    cache = MetadataCache(clock=lambda: now[0])
    settings = Settings(user_pool_id=POOL_ID, region=REGION, registration_endpoint_url=REGISTRATION_ENDPOINT, http_timeout=5)
    with patch("auth_proxy.well_known.httpx.get", return_value=upstream_response("max-age=60")) as get:
        fetch_metadata(settings, cache)
        now[0] += 61
        with ThreadPoolExecutor(max_workers=8) as pool:
            documents = list(pool.map(lambda _: fetch_metadata(settings, cache), range(8)))
    assert all(d["registration_endpoint"] == REGISTRATION_ENDPOINT for d in documents)
    assert 2 <= get.call_count <= 9
