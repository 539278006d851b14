"""
Request-local tenant identity and the per-request authorization state.
Both live on request.state only; nothing here is cached across requests.
"""
import enum
import logging
from dataclasses import dataclass

from fastapi import Request

from resource_server.verifier import VerifiedClaims

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    tenant_tier: str
    user_id: str
    scopes: frozenset[str]

    @classmethod
    def from_claims(cls, claims: VerifiedClaims) -> "TenantContext":
        return cls(
            tenant_id=claims.tenant_id,
            tenant_tier=claims.tenant_tier,
            user_id=claims.subject,
            scopes=claims.scopes,
        )


class AuthState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    VERIFYING = "verifying"
    AUTHORIZED = "authorized"
    REJECTED = "rejected"
    CREDENTIALED = "credentialed"
    CREDENTIAL_FAILED = "credential_failed"


_TRANSITIONS: dict[AuthState, frozenset[AuthState]] = {
    AuthState.UNAUTHENTICATED: frozenset({AuthState.VERIFYING}),
    AuthState.VERIFYING: frozenset({AuthState.AUTHORIZED, AuthState.REJECTED}),
    AuthState.AUTHORIZED: frozenset({AuthState.CREDENTIALED, AuthState.CREDENTIAL_FAILED}),
    AuthState.REJECTED: frozenset(),
    AuthState.CREDENTIALED: frozenset(),
    AuthState.CREDENTIAL_FAILED: frozenset(),
}


def get_auth_state(request: Request) -> AuthState:
    return getattr(request.state, "auth_state", AuthState.UNAUTHENTICATED)


def transition(request: Request, new_state: AuthState) -> None:
    """Move the request to new_state. Raises RuntimeError on a transition the machine does not allow."""
    current = get_auth_state(request)
    if new_state not in _TRANSITIONS[current]:
        raise RuntimeError(f"illegal auth state transition {current.value} -> {new_state.value}")
    request.state.auth_state = new_state
    logger.debug("auth state %s -> %s for %s", current.value, new_state.value, request.url.path)
