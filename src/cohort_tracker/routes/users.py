"""User routes: the current user and the organization's students."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.auth import (
    PM_OR_ADMIN,
    Caller,
    RequestContext,
    get_current_user,
    get_request_context,
    require_role,
    resolve_role,
)
from cohort_tracker.db import get_db
from cohort_tracker.models import OrganizationRole, User
from cohort_tracker.routes.organizations import member_response
from cohort_tracker.schemas import (
    BatchResponse,
    CurrentUserResponse,
    MemberResponse,
    MembershipInfo,
    UserResponse,
)
from cohort_tracker.services import organizations as org_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """The caller with their effective role in the active organization."""
    role = await resolve_role(db, ctx)
    await db.refresh(current_user, attribute_names=["batch"])
    orgs = await org_service.list_organizations_for_user(db, current_user.id)
    return CurrentUserResponse(
        **UserResponse.model_validate(current_user).model_dump(),
        role=role,
        active_organization_id=ctx.active_org_id,
        batch=(
            BatchResponse.model_validate(current_user.batch)
            if current_user.batch is not None
            else None
        ),
        memberships=[
            MembershipInfo(
                organization_id=org.id,
                organization_name=org.name,
                organization_slug=org.slug,
                role=org_role,
            )
            for org, org_role in orgs
        ],
    )


@router.get("/students", response_model=list[MemberResponse])
async def list_students(
    caller: Annotated[Caller, Depends(require_role(PM_OR_ADMIN))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Students of the active organization, with their batches."""
    members = await org_service.list_members(
        db, caller, role=OrganizationRole.STUDENT
    )
    return [member_response(m, u) for m, u in members]
