"""
Authorization-server proxy in front of the Cognito user pool.
Dynamic client registration (POST /register), discovery metadata under /.well-known,
and the registration audit log. Port 9000.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auth_proxy.audit import router as audit_router
from auth_proxy.database import init_db
from auth_proxy.errors import OAuthError, oauth_error_handler
from auth_proxy.metadata_cache import MetadataCache
from auth_proxy.registration import router as registration_router
from auth_proxy.well_known import router as well_known_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the dedup index and audit tables on startup."""
    init_db()
    yield


app = FastAPI(title="Auth Proxy", version="1.0.0", lifespan=lifespan)
app.state.metadata_cache = MetadataCache()
app.add_exception_handler(OAuthError, oauth_error_handler)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.include_router(registration_router, tags=["registration"])
app.include_router(well_known_router, tags=["well-known"])
app.include_router(audit_router)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "auth_proxy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "auth_proxy.main:app",
        host="127.0.0.1",
        port=9000,
        reload=True,
    )
