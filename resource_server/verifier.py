"""
Access-token verification against the Cognito user pool JWKS.
RS256 only; issuer, exp and nbf are validated. Audience is checked only when
OAUTH_VERIFY_AUDIENCE is enabled, so clients created through dynamic registration are accepted.
"""
import enum
import logging
from dataclasses import dataclass, field

import jwt
from jwt import PyJWKClient
from jwt.exceptions import PyJWKClientConnectionError, PyJWKClientError, PyJWKSetError

logger = logging.getLogger(__name__)

ALLOWED_ALGORITHMS = ["RS256"]

# Claim names in priority order; Cognito puts custom attributes under "custom:"
TENANT_ID_CLAIMS = ("custom:tenantId", "tenantId")
TENANT_TIER_CLAIMS = ("custom:tenantTier", "tenantTier")
DEFAULT_TENANT_TIER = "basic"

# PyJWKClientError text for a kid that is still missing after a refetch
UNKNOWN_KID_MESSAGE = "Unable to find a signing key"


class TokenErrorKind(str, enum.Enum):
    EXPIRED = "token_expired"
    NOT_YET_VALID = "token_not_yet_valid"
    MALFORMED = "malformed_token"
    UNKNOWN_SIGNING_KEY = "unknown_signing_key"
    ISSUER_MISMATCH = "issuer_mismatch"
    AUDIENCE_MISMATCH = "audience_mismatch"
    BACKEND_UNAVAILABLE = "backend_unavailable"


_DESCRIPTIONS = {
    TokenErrorKind.EXPIRED: "Your token has expired. Please log in again.",
    TokenErrorKind.NOT_YET_VALID: "Token not yet valid.",
    TokenErrorKind.MALFORMED: "Invalid token format or signature.",
    TokenErrorKind.UNKNOWN_SIGNING_KEY: "Token was signed with an unknown key.",
    TokenErrorKind.ISSUER_MISMATCH: "Token was not issued by the expected authority.",
    TokenErrorKind.AUDIENCE_MISMATCH: "Token was not issued for this resource.",
    TokenErrorKind.BACKEND_UNAVAILABLE: "Token verification is temporarily unavailable.",
}


class TokenVerificationError(Exception):
    def __init__(self, kind: TokenErrorKind):
        super().__init__(kind.value)
        self.kind = kind

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self.kind]


@dataclass(frozen=True)
class VerifiedClaims:
    subject: str
    tenant_id: str
    tenant_tier: str
    scopes: frozenset[str]
    client_id: str | None = None
    expires_at: int | None = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)


def first_claim(claims: dict, names: tuple[str, ...], default: str = "") -> str:
    """Value of the first present, non-empty claim in names; default otherwise."""
    for name in names:
        value = claims.get(name)
        if value not in (None, ""):
            return str(value)
    return default


def parse_scope(scope_value: str | list | None) -> frozenset[str]:
    """Normalize scope claim to a set of scope strings."""
    if scope_value is None:
        return frozenset()
    if isinstance(scope_value, list):
        return frozenset(str(s) for s in scope_value)
    if isinstance(scope_value, str):
        return frozenset(scope_value.split())
    return frozenset()


class TokenVerifier:
    def __init__(
        self,
        issuer: str,
        jwks_client: PyJWKClient,
        *,
        verify_audience: bool = False,
        audience: str | None = None,
    ):
        self.issuer = issuer
        self.jwks_client = jwks_client
        self.verify_audience = verify_audience
        self.audience = audience

    def _signing_key(self, kid: str) -> object:
        try:
            return self.jwks_client.get_signing_key(kid).key
        except PyJWKClientConnectionError as e:
            logger.warning("JWKS fetch from %s failed: %s", self.jwks_client.uri, e)
            raise TokenVerificationError(TokenErrorKind.BACKEND_UNAVAILABLE)
        except PyJWKClientError as e:
            # Raised after the one refetch PyJWKClient makes for an unknown kid
            if str(e).startswith(UNKNOWN_KID_MESSAGE):
                raise TokenVerificationError(TokenErrorKind.UNKNOWN_SIGNING_KEY)
            logger.warning("JWKS at %s is unusable: %s", self.jwks_client.uri, e)
            raise TokenVerificationError(TokenErrorKind.BACKEND_UNAVAILABLE)
        except (PyJWKSetError, ValueError) as e:
            logger.warning("JWKS at %s could not be parsed: %s", self.jwks_client.uri, e)
            raise TokenVerificationError(TokenErrorKind.BACKEND_UNAVAILABLE)

    def verify(self, token: str) -> VerifiedClaims:
        """Verify signature and standard claims. Raises TokenVerificationError with a distinct kind."""
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError:
            raise TokenVerificationError(TokenErrorKind.MALFORMED)
        # Checked before any key lookup so "none"/HS256 tokens never reach decode
        if header.get("alg") not in ALLOWED_ALGORITHMS:
            raise TokenVerificationError(TokenErrorKind.MALFORMED)
        kid = header.get("kid")
        if not kid or not isinstance(kid, str):
            raise TokenVerificationError(TokenErrorKind.MALFORMED)

        key = self._signing_key(kid)
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=ALLOWED_ALGORITHMS,
                issuer=self.issuer,
                audience=self.audience if self.verify_audience else None,
                options={
                    "verify_exp": True,
                    "verify_nbf": True,
                    "verify_iss": True,
                    "verify_aud": self.verify_audience,
                    "require": ["exp", "iss"],
                },
            )
        except jwt.ExpiredSignatureError:
            raise TokenVerificationError(TokenErrorKind.EXPIRED)
        except jwt.ImmatureSignatureError:
            raise TokenVerificationError(TokenErrorKind.NOT_YET_VALID)
        except jwt.InvalidIssuerError:
            raise TokenVerificationError(TokenErrorKind.ISSUER_MISMATCH)
        except jwt.InvalidAudienceError:
            raise TokenVerificationError(TokenErrorKind.AUDIENCE_MISMATCH)
        except jwt.InvalidTokenError as e:
            logger.debug("JWT verification failed: %s", e)
            raise TokenVerificationError(TokenErrorKind.MALFORMED)

        return VerifiedClaims(
            subject=str(payload.get("sub") or "anonymous"),
            tenant_id=first_claim(payload, TENANT_ID_CLAIMS),
            tenant_tier=first_claim(payload, TENANT_TIER_CLAIMS, DEFAULT_TENANT_TIER),
            scopes=parse_scope(payload.get("scope")),
            client_id=payload.get("client_id"),
            expires_at=payload.get("exp"),
            raw=payload,
        )
