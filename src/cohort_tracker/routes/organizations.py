"""Organization and membership routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.auth import (
    ADMIN_ONLY,
    ANY_MEMBER,
    Caller,
    get_current_user,
    require_role,
)
from cohort_tracker.db import get_db
from cohort_tracker.models import OrganizationMember, OrganizationRole, User
from cohort_tracker.schemas import (
    BatchDetailResponse,
    BatchResponse,
    MemberCreate,
    MemberResponse,
    MemberUpdateRole,
    OrganizationBySlugResponse,
    OrganizationCreate,
    OrganizationDetailResponse,
    OrganizationResponse,
    OrganizationUpdate,
    OrganizationWithRoleResponse,
    UserSummary,
)
from cohort_tracker.services import batches as batch_service
from cohort_tracker.services import organizations as org_service

router = APIRouter(prefix="/organizations", tags=["organizations"])


def member_response(membership: OrganizationMember, user: User) -> MemberResponse:
    return MemberResponse(
        id=membership.id,
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=membership.role,
        batch_id=user.batch_id,
        batch_name=user.batch.name if user.batch is not None else None,
    )


# --- Organization endpoints ---


@router.post(
    "", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED
)
async def create_organization(
    data: OrganizationCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a new organization. Creator becomes admin."""
    return await org_service.create_organization(
        db, current_user, name=data.name, logo=data.logo
    )


@router.get("", response_model=list[OrganizationWithRoleResponse])
async def list_organizations(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List organizations the current user is a member of."""
    orgs = await org_service.list_organizations_for_user(db, current_user.id)
    return [
        OrganizationWithRoleResponse(
            **OrganizationResponse.model_validate(org).model_dump(), role=role
        )
        for org, role in orgs
    ]


@router.get("/by-slug/{slug}", response_model=OrganizationBySlugResponse)
async def get_organization_by_slug(
    slug: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    org = await org_service.get_organization_by_slug(db, current_user.id, slug)
    counts = await org_service.get_organization_counts(db, org.id)
    return OrganizationBySlugResponse(
        **OrganizationResponse.model_validate(org).model_dump(),
        member_count=counts.member_count,
        batch_count=counts.batch_count,
        project_count=counts.project_count,
        batches=[BatchResponse.model_validate(b) for b in org.batches],
    )


@router.get(
    "/by-slug/{org_slug}/batches/{batch_slug}", response_model=BatchDetailResponse
)
async def get_batch_by_slug(
    org_slug: str,
    batch_slug: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    batch = await batch_service.get_batch_by_slug(
        db, current_user.id, org_slug, batch_slug
    )
    return BatchDetailResponse(
        **BatchResponse.model_validate(batch).model_dump(),
        organization_slug=batch.organization.slug,
        students=[UserSummary.model_validate(s) for s in batch.students],
    )


@router.get("/{org_id}", response_model=OrganizationDetailResponse)
async def get_organization(
    org_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ANY_MEMBER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    org = await org_service.get_organization(db, caller, str(org_id))
    counts = await org_service.get_organization_counts(db, org.id)
    return OrganizationDetailResponse(
        **OrganizationResponse.model_validate(org).model_dump(),
        member_count=counts.member_count,
        batch_count=counts.batch_count,
        project_count=counts.project_count,
    )


@router.patch("/{org_id}", response_model=OrganizationResponse)
async def update_organization(
    org_id: UUID,
    data: OrganizationUpdate,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await org_service.update_organization(
        db, caller, str(org_id), name=data.name, logo=data.logo
    )


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    org_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete an organization and everything it owns."""
    await org_service.delete_organization(db, caller, str(org_id))


# --- Member endpoints ---


@router.get("/{org_id}/members", response_model=list[MemberResponse])
async def list_members(
    org_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
    role: OrganizationRole | None = None,
):
    await org_service.get_organization(db, caller, str(org_id))
    members = await org_service.list_members(db, caller, role=role)
    return [member_response(m, u) for m, u in members]


@router.post(
    "/{org_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    org_id: UUID,
    data: MemberCreate,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Add a user by email, creating the user record if needed."""
    await org_service.get_organization(db, caller, str(org_id))
    membership, user = await org_service.add_member(
        db, caller, email=data.email, name=data.name, role=data.role
    )
    await db.refresh(user, attribute_names=["batch"])
    return member_response(membership, user)


@router.patch("/{org_id}/members/{user_id}", response_model=MemberResponse)
async def update_member_role(
    org_id: UUID,
    user_id: UUID,
    data: MemberUpdateRole,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    await org_service.get_organization(db, caller, str(org_id))
    membership, user = await org_service.update_member_role(
        db, caller, str(user_id), data.role
    )
    return member_response(membership, user)


@router.delete(
    "/{org_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def remove_member(
    org_id: UUID,
    user_id: UUID,
    caller: Annotated[Caller, Depends(require_role(ADMIN_ONLY))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Remove a member. Their assignments are kept."""
    await org_service.get_organization(db, caller, str(org_id))
    await org_service.remove_member(db, caller, str(user_id))
