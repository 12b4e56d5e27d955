"""Organization-scoped access tokens issued by /auth/exchange.

An access token names the user and, once one is selected, the active
organization. Roles are never embedded; they are resolved from memberships
on every request.
"""

import hashlib
import logging
import time
from functools import lru_cache
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import JWTError, jwk, jwt
from jose.exceptions import ExpiredSignatureError

from cohort_tracker.auth.access import RequestContext
from cohort_tracker.config import jwt_settings

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"
ORG_CLAIM = "org_id"
REQUIRED_CLAIMS = ("sub", "iss", "aud", "iat", "exp")


class TokenError(Exception):
    """An access token was not accepted."""


class TokenExpiredError(TokenError):
    pass


class TokenInvalidError(TokenError):
    pass


def _key_pair(private_pem: str | None, public_pem: str | None) -> tuple[str, str]:
    """PEM texts of the signing key pair.

    Without a configured private key a throwaway one is generated, which
    only suits a single development process.
    """
    if private_pem:
        private_key = serialization.load_pem_private_key(
            private_pem.encode(), password=None
        )
    else:
        logger.info("No JWT private key configured, generating an ephemeral one")
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()

    if not public_pem:
        public_pem = (
            private_key.public_key()
            .public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            .decode()
        )
    return private_pem, public_pem


class AccessTokenIssuer:
    """Signs request contexts into RS256 tokens and reads them back."""

    def __init__(
        self,
        private_key_pem: str | None = None,
        public_key_pem: str | None = None,
        issuer: str = "cohort-tracker-api",
        audience: str = "cohort-tracker",
        ttl_minutes: int = 10,
        key_id: str | None = None,
    ):
        self._private_pem, self._public_pem = _key_pair(private_key_pem, public_key_pem)
        self.key_id = key_id or (
            hashlib.sha256(self._public_pem.strip().encode()).hexdigest()[:16]
        )
        self.issuer = issuer
        self.audience = audience
        self.ttl_seconds = ttl_minutes * 60

    def issue(self, ctx: RequestContext) -> str:
        issued_at = int(time.time())
        claims: dict[str, Any] = {
            "sub": ctx.user_id,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        if ctx.active_org_id is not None:
            claims[ORG_CLAIM] = ctx.active_org_id
        return jwt.encode(
            claims, self._private_pem, algorithm=ALGORITHM, headers={"kid": self.key_id}
        )

    def verify(self, token: str) -> RequestContext:
        """Check signature, issuer, audience and expiry of an access token.

        Raises:
            TokenExpiredError: The token is past its ``exp``.
            TokenInvalidError: Anything else is wrong with it.
        """
        try:
            claims = jwt.decode(
                token,
                self._public_pem,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                audience=self.audience,
                options={f"require_{claim}": True for claim in REQUIRED_CLAIMS},
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except JWTError as e:
            raise TokenInvalidError(f"Invalid token: {e}") from e

        return RequestContext(
            user_id=claims["sub"], active_org_id=claims.get(ORG_CLAIM)
        )

    def jwks(self) -> dict[str, Any]:
        """JSON Web Key Set publishing the verification key."""
        key = jwk.construct(self._public_pem, ALGORITHM).to_dict()
        return {"keys": [{**key, "use": "sig", "kid": self.key_id}]}


@lru_cache(maxsize=1)
def get_token_issuer() -> AccessTokenIssuer:
    return AccessTokenIssuer(
        private_key_pem=jwt_settings.private_key,
        public_key_pem=jwt_settings.public_key,
        issuer=jwt_settings.issuer,
        audience=jwt_settings.audience,
        ttl_minutes=jwt_settings.access_token_ttl_minutes,
        key_id=jwt_settings.key_id,
    )
