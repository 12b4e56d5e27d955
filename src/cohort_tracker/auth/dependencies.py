"""FastAPI dependencies for authentication and authorization."""

import logging
from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.auth.access import (
    Caller,
    RequestContext,
    authorize,
    default_resolver,
)
from cohort_tracker.auth.jwt import (
    AuthenticationError,
    Identity,
    get_identity_verifier,
)
from cohort_tracker.auth.tokens import TokenError, get_token_issuer
from cohort_tracker.db import get_db
from cohort_tracker.exceptions import InvalidRequestError, UnauthorizedError
from cohort_tracker.models import OrganizationRole, User

logger = logging.getLogger(__name__)

# auto_error=False so a missing header becomes an UNAUTHORIZED domain error
bearer_scheme = HTTPBearer(auto_error=False)


async def get_request_context(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> RequestContext:
    """Per-request context read from the access token (required)."""
    if credentials is None:
        raise UnauthorizedError()

    try:
        return get_token_issuer().verify(credentials.credentials)
    except TokenError as e:
        logger.warning("Token validation failed: %s", e)
        raise UnauthorizedError(str(e)) from e


async def get_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Identity:
    """Validate an identity provider token (only used for token exchange)."""
    if credentials is None:
        raise UnauthorizedError()

    try:
        return await get_identity_verifier().verify(credentials.credentials)
    except AuthenticationError as e:
        logger.warning("Identity token validation failed: %s", e)
        raise UnauthorizedError(str(e)) from e


async def get_or_create_user(db: AsyncSession, identity: Identity) -> User:
    """Get the user for an identity token, provisioning it on first sight.

    Users added to an organization by email before their first sign-in are
    linked to the identity by email.
    """
    result = await db.execute(
        select(User).where(User.external_id == identity.subject)
    )
    user = result.scalar_one_or_none()

    if user is None and identity.email:
        result = await db.execute(
            select(User).where(
                User.email == identity.email, User.external_id.is_(None)
            )
        )
        user = result.scalar_one_or_none()
        if user is not None:
            user.external_id = identity.subject
            logger.info("Linked user %s to identity %s", user.id, identity.subject)

    if user is not None:
        if identity.email and user.email != identity.email:
            user.email = identity.email
        if identity.display_name and user.display_name != identity.display_name:
            user.display_name = identity.display_name
        if identity.picture and user.image != identity.picture:
            user.image = identity.picture
        if db.dirty:
            await db.commit()
            logger.info("Updated user %s with new info from token", user.id)
        return user

    if not identity.email:
        raise InvalidRequestError("Identity token must contain an email claim")

    user = User(
        external_id=identity.subject,
        email=identity.email,
        display_name=identity.display_name,
        image=identity.picture,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Created new user %s from identity token", user.id)
    return user


async def get_current_user(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the user behind the access token."""
    user = await db.get(User, ctx.user_id)
    if user is None:
        raise UnauthorizedError("Unknown user")
    return user


def require_role(
    allowed: frozenset[OrganizationRole],
) -> Callable[..., Awaitable[Caller]]:
    """Dependency factory gating a route on the caller's organization role."""

    async def dependency(
        ctx: Annotated[RequestContext, Depends(get_request_context)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> Caller:
        return await authorize(db, ctx, allowed, resolver=default_resolver)

    return dependency
