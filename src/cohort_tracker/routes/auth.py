"""Authentication routes for token exchange and JWKS."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.auth import (
    Identity,
    RequestContext,
    get_identity,
    get_or_create_user,
    get_token_issuer,
)
from cohort_tracker.db import get_db
from cohort_tracker.exceptions import ForbiddenError
from cohort_tracker.schemas import TokenExchangeRequest, TokenExchangeResponse
from cohort_tracker.services.common import get_membership

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.get("/.well-known/jwks.json")
async def get_jwks_endpoint():
    """Get JSON Web Key Set for validating internal tokens."""
    return get_token_issuer().jwks()


@router.post("/auth/exchange", response_model=TokenExchangeResponse)
async def exchange_token(
    request: TokenExchangeRequest,
    identity: Annotated[Identity, Depends(get_identity)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Exchange an identity provider token for an internal token.

    The internal token carries the user id and, when ``org_id`` is given,
    the active organization. It never carries a role.

    Raises:
        401: Invalid identity token
        403: User is not a member of the requested organization
    """
    user = await get_or_create_user(db, identity)

    if request.org_id is not None:
        membership = await get_membership(db, request.org_id, user.id)
        if membership is None:
            logger.info(
                "User %s requested token for org %s without membership",
                user.id,
                request.org_id,
            )
            raise ForbiddenError("Not a member of the requested organization")

    issuer = get_token_issuer()
    ctx = RequestContext(user_id=user.id, active_org_id=request.org_id)
    return TokenExchangeResponse(
        access_token=issuer.issue(ctx),
        expires_in=issuer.ttl_seconds,
    )
