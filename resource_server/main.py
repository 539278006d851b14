"""
Resource Server (multi-tenant MCP API).
RFC 9728 metadata at /.well-known/oauth-protected-resource; Cognito bearer tokens on
protected routes; tenant-scoped AWS credentials for tenant data. Port 3000.
"""
import logging
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from resource_server.auth import RequireTenant
from resource_server.config import Settings, get_settings
from resource_server.context import TenantContext
from resource_server.errors import OAuthError, oauth_error_handler
from resource_server.protected_resource import router as protected_resource_router
from resource_server.tenant_credentials import TemporaryCredential, tenant_credentials
from resource_server.tenant_resources import list_tenant_resources, s3_client_for

logger = logging.getLogger(__name__)

app = FastAPI(title="Resource Server", version="1.0.0")
# PyJWKClient for the configured pool, built on first verification
app.state.jwks_client = None
app.add_exception_handler(OAuthError, oauth_error_handler)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Mcp-Protocol-Version"],
    expose_headers=["WWW-Authenticate"],
)
app.include_router(protected_resource_router, tags=["well-known"])


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "resource_server"}


@app.get("/whoami")
def whoami(tenant: TenantContext = RequireTenant):
    """Caller identity as bound to this request."""
    return {
        "userId": tenant.user_id,
        "tenantId": tenant.tenant_id,
        "tenantTier": tenant.tenant_tier,
        "scopes": sorted(tenant.scopes),
    }


def get_tenant_s3_client(
    credential: Annotated[TemporaryCredential, Depends(tenant_credentials)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Dependency: S3 client authenticated with the tenant's temporary credentials."""
    return s3_client_for(credential, settings)


@app.get("/tenants/{tenant_id}/resources")
def tenant_resources(
    tenant_id: str,
    request: Request,
    s3_client=Depends(get_tenant_s3_client),
    settings: Settings = Depends(get_settings),
):
    """
    Resources of the caller's tenant. The path tenant_id is informational only:
    the verified tenant from the token decides whose data is listed.
    """
    tenant: TenantContext = request.state.tenant
    if tenant_id != tenant.tenant_id:
        logger.warning(
            "Path tenant %s does not match verified tenant %s; using verified tenant",
            tenant_id,
            tenant.tenant_id,
        )
    return {
        "tenantId": tenant.tenant_id,
        "resources": list_tenant_resources(s3_client, settings.bucket_name, tenant.tenant_id),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "resource_server.main:app",
        host="0.0.0.0",
        port=3000,
        reload=True,
    )
