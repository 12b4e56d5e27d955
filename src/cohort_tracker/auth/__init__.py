"""Authentication and authorization for the cohort tracker API.

Token types:
- Identity tokens: JWTs from the external OIDC provider (only /auth/exchange)
- Internal tokens: JWTs minted by /auth/exchange carrying the user id and
  the active organization id (used by every other endpoint)
"""

from cohort_tracker.auth.access import (
    ADMIN_ONLY,
    ANY_MEMBER,
    PM_OR_ADMIN,
    Caller,
    MembershipRoleResolver,
    RequestContext,
    RoleCache,
    RoleResolver,
    authorize,
    resolve_role,
    role_cache,
)
from cohort_tracker.auth.dependencies import (
    get_current_user,
    get_identity,
    get_or_create_user,
    get_request_context,
    require_role,
)
from cohort_tracker.auth.jwt import (
    AuthenticationError,
    Identity,
    IdentityVerifier,
    get_identity_verifier,
)
from cohort_tracker.auth.tokens import (
    AccessTokenIssuer,
    TokenError,
    TokenExpiredError,
    TokenInvalidError,
    get_token_issuer,
)

__all__ = [
    # Access control
    "ADMIN_ONLY",
    "ANY_MEMBER",
    "PM_OR_ADMIN",
    "Caller",
    "MembershipRoleResolver",
    "RequestContext",
    "RoleCache",
    "RoleResolver",
    "authorize",
    "resolve_role",
    "role_cache",
    # Dependencies
    "get_current_user",
    "get_identity",
    "get_or_create_user",
    "get_request_context",
    "require_role",
    # Identity provider tokens
    "AuthenticationError",
    "Identity",
    "IdentityVerifier",
    "get_identity_verifier",
    # Internal tokens
    "AccessTokenIssuer",
    "TokenError",
    "TokenExpiredError",
    "TokenInvalidError",
    "get_token_issuer",
]
