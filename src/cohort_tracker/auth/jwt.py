"""Identity provider tokens presented to /auth/exchange.

Only the claims used to provision users and link pre-added members are
read. Signatures are checked against the provider's published JWKS.
"""

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx
from jose import JWTError, jwt

from cohort_tracker.config import oidc_settings

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """An identity provider token cannot be trusted."""


@dataclass(frozen=True)
class Identity:
    """Who the identity provider says the caller is."""

    subject: str
    email: str | None
    display_name: str
    picture: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "Identity":
        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("Token missing required 'sub' claim")

        email = claims.get("email")
        full_name = " ".join(
            part
            for part in (claims.get("given_name"), claims.get("family_name"))
            if part
        )
        display_name = (
            claims.get("name")
            or full_name
            or claims.get("preferred_username")
            or (email.split("@")[0] if email else subject)
        )
        return cls(
            subject=subject,
            email=email,
            display_name=display_name,
            picture=claims.get("picture"),
        )


class IdentityVerifier:
    """Verifies identity tokens with keys fetched from the provider.

    Keys are kept for ``cache_ttl`` seconds. A key id missing from a cached
    set triggers one refetch, so rotated keys are picked up.
    """

    def __init__(
        self,
        jwks_url: str,
        issuers: list[str],
        audiences: list[str],
        cache_ttl: int = 300,
    ):
        self.jwks_url = jwks_url
        self.issuers = issuers
        self.audiences = audiences
        self.cache_ttl = cache_ttl
        self._keys: dict[str, dict[str, Any]] = {}
        self._loaded_at: float | None = None

    async def _fetch_jwks(self) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(self.jwks_url)
            response.raise_for_status()
            return response.json()

    async def _reload_keys(self) -> None:
        logger.debug("Fetching identity provider keys from %s", self.jwks_url)
        jwks = await self._fetch_jwks()
        self._keys = {key["kid"]: key for key in jwks.get("keys", []) if "kid" in key}
        self._loaded_at = time.monotonic()

    def _keys_expired(self) -> bool:
        return (
            self._loaded_at is None
            or time.monotonic() - self._loaded_at >= self.cache_ttl
        )

    async def signing_key(self, kid: str) -> dict[str, Any]:
        reloaded = self._keys_expired()
        if reloaded:
            await self._reload_keys()
        if kid not in self._keys and not reloaded:
            await self._reload_keys()
        if kid not in self._keys:
            raise AuthenticationError(f"Unable to find key with ID: {kid}")
        return self._keys[kid]

    def _check_audience(self, aud: str | list[str] | None) -> None:
        # Tokens without an audience are accepted
        if not aud:
            return
        token_audiences = [aud] if isinstance(aud, str) else list(aud)
        if not set(token_audiences) & set(self.audiences):
            raise AuthenticationError(
                f"Invalid audience {token_audiences}, expected one of {self.audiences}"
            )

    async def verify(self, token: str) -> Identity:
        try:
            kid = jwt.get_unverified_header(token).get("kid")
            if not kid:
                raise AuthenticationError("Token missing key ID (kid)")
            claims = jwt.decode(
                token,
                await self.signing_key(kid),
                algorithms=["RS256"],
                issuer=self.issuers,
                options={
                    "verify_aud": False,
                    "require_sub": True,
                    "require_iss": True,
                    "require_exp": True,
                },
            )
        except JWTError as e:
            raise AuthenticationError(f"Invalid token: {e}") from e
        except httpx.HTTPError as e:
            logger.error("Failed to fetch identity provider keys: %s", e)
            raise AuthenticationError(
                "Unable to validate token (JWKS fetch failed)"
            ) from e

        self._check_audience(claims.get("aud"))
        return Identity.from_claims(claims)


@lru_cache(maxsize=1)
def get_identity_verifier() -> IdentityVerifier:
    return IdentityVerifier(
        jwks_url=oidc_settings.effective_jwks_url,
        issuers=oidc_settings.allowed_issuers,
        audiences=oidc_settings.allowed_audiences,
        cache_ttl=oidc_settings.jwks_cache_ttl,
    )
