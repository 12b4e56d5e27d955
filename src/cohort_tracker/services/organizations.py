"""Organization and membership management.

An organization never exists without an admin: it is created together with
its creator's admin membership, and the last admin can be neither demoted
nor removed.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cohort_tracker.auth.access import Caller, role_cache
from cohort_tracker.exceptions import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
)
from cohort_tracker.models import (
    Assignment,
    Batch,
    Feature,
    Organization,
    OrganizationMember,
    OrganizationRole,
    Project,
    StudentProject,
    User,
)
from cohort_tracker.services.common import commit_or_conflict, get_membership
from cohort_tracker.services.slug import generate_unique_slug, slugify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrganizationCounts:
    batch_count: int
    member_count: int
    project_count: int


async def _existing_slugs(db: AsyncSession, base: str) -> list[str]:
    result = await db.execute(
        select(Organization.slug).where(Organization.slug.startswith(base))
    )
    return list(result.scalars().all())


async def create_organization(
    db: AsyncSession,
    user: User,
    name: str,
    logo: str | None = None,
) -> Organization:
    """Create an organization with ``user`` as its first admin."""
    base = slugify(name)
    slug = generate_unique_slug(base, await _existing_slugs(db, base))

    org = Organization(name=name, slug=slug, logo=logo, created_by_id=user.id)
    db.add(org)
    await db.flush()

    db.add(
        OrganizationMember(
            organization_id=org.id,
            user_id=user.id,
            role=OrganizationRole.ADMIN,
        )
    )
    await commit_or_conflict(db, "Organization slug already exists")
    await db.refresh(org)
    role_cache.invalidate(user_id=user.id, org_id=org.id)

    logger.info("Created organization %s (%s) for user %s", org.id, slug, user.id)
    return org


async def list_organizations_for_user(
    db: AsyncSession, user_id: str
) -> list[tuple[Organization, OrganizationRole]]:
    result = await db.execute(
        select(Organization, OrganizationMember.role)
        .join(
            OrganizationMember,
            OrganizationMember.organization_id == Organization.id,
        )
        .where(OrganizationMember.user_id == user_id)
        .order_by(Organization.created_at.desc())
    )
    return [(org, role) for org, role in result.all()]


async def get_organization_counts(db: AsyncSession, org_id: str) -> OrganizationCounts:
    batch_count = await db.scalar(
        select(func.count(Batch.id)).where(Batch.organization_id == org_id)
    )
    member_count = await db.scalar(
        select(func.count(OrganizationMember.id)).where(
            OrganizationMember.organization_id == org_id
        )
    )
    project_count = await db.scalar(
        select(func.count(Project.id)).where(Project.organization_id == org_id)
    )
    return OrganizationCounts(
        batch_count=batch_count or 0,
        member_count=member_count or 0,
        project_count=project_count or 0,
    )


async def get_organization_by_slug(
    db: AsyncSession, user_id: str, slug: str
) -> Organization:
    """Get an organization the user belongs to, with its batches loaded."""
    result = await db.execute(
        select(Organization)
        .options(selectinload(Organization.batches))
        .join(
            OrganizationMember,
            OrganizationMember.organization_id == Organization.id,
        )
        .where(Organization.slug == slug, OrganizationMember.user_id == user_id)
    )
    org = result.scalar_one_or_none()
    if org is None:
        raise NotFoundError("Organization not found")
    return org


async def get_organization(
    db: AsyncSession, caller: Caller, org_id: str
) -> Organization:
    """Get the caller's active organization by id."""
    if org_id != caller.org_id:
        raise NotFoundError("Organization not found")
    org = await db.get(Organization, org_id)
    if org is None:
        raise NotFoundError("Organization not found")
    return org


async def update_organization(
    db: AsyncSession,
    caller: Caller,
    org_id: str,
    name: str | None = None,
    logo: str | None = None,
) -> Organization:
    org = await get_organization(db, caller, org_id)
    if name is not None:
        org.name = name
    if logo is not None:
        org.logo = logo
    await db.commit()
    await db.refresh(org)
    return org


async def delete_organization(db: AsyncSession, caller: Caller, org_id: str) -> None:
    """Delete an organization and everything it owns in one transaction."""
    org = await get_organization(db, caller, org_id)

    project_ids = select(Project.id).where(Project.organization_id == org.id)
    batch_ids = select(Batch.id).where(Batch.organization_id == org.id)
    no_sync = {"synchronize_session": False}

    await db.execute(
        delete(Assignment)
        .where(Assignment.project_id.in_(project_ids))
        .execution_options(**no_sync)
    )
    await db.execute(
        delete(StudentProject)
        .where(StudentProject.project_id.in_(project_ids))
        .execution_options(**no_sync)
    )
    await db.execute(
        delete(Feature)
        .where(Feature.project_id.in_(project_ids))
        .execution_options(**no_sync)
    )
    await db.execute(
        delete(Project)
        .where(Project.organization_id == org.id)
        .execution_options(**no_sync)
    )
    await db.execute(
        update(User)
        .where(User.batch_id.in_(batch_ids))
        .values(batch_id=None)
        .execution_options(**no_sync)
    )
    await db.execute(
        delete(Batch)
        .where(Batch.organization_id == org.id)
        .execution_options(**no_sync)
    )
    await db.execute(
        delete(OrganizationMember)
        .where(OrganizationMember.organization_id == org.id)
        .execution_options(**no_sync)
    )
    await db.execute(
        delete(Organization)
        .where(Organization.id == org.id)
        .execution_options(**no_sync)
    )
    await db.commit()
    role_cache.invalidate(org_id=org_id)

    logger.info("Deleted organization %s by user %s", org_id, caller.user_id)


# --- Members ---


async def list_members(
    db: AsyncSession,
    caller: Caller,
    role: OrganizationRole | None = None,
) -> list[tuple[OrganizationMember, User]]:
    stmt = (
        select(OrganizationMember, User)
        .join(User, OrganizationMember.user_id == User.id)
        .options(selectinload(User.batch))
        .where(OrganizationMember.organization_id == caller.org_id)
        .order_by(User.email)
    )
    if role is not None:
        stmt = stmt.where(OrganizationMember.role == role)
    result = await db.execute(stmt)
    return [(membership, user) for membership, user in result.all()]


async def _admin_count(db: AsyncSession, org_id: str) -> int:
    result = await db.execute(
        select(OrganizationMember.id)
        .where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.role == OrganizationRole.ADMIN,
        )
        .with_for_update()
    )
    return len(result.scalars().all())


async def add_member(
    db: AsyncSession,
    caller: Caller,
    email: str,
    name: str | None = None,
    role: OrganizationRole = OrganizationRole.STUDENT,
) -> tuple[OrganizationMember, User]:
    """Add a user to the caller's organization by email.

    Creates the user record when nobody has signed in with that email yet.
    An existing member with a different role gets the new role.
    """
    email = email.strip()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email, display_name=name or email.split("@")[0])
        db.add(user)
        await db.flush()
        logger.info("Created user %s for %s", user.id, email)

    membership = await get_membership(db, caller.org_id, user.id)
    if membership is not None:
        if membership.role == role:
            raise ConflictError("User is already a member of this organization")
        return await update_member_role(db, caller, user.id, role)

    membership = OrganizationMember(
        organization_id=caller.org_id,
        user_id=user.id,
        role=role,
    )
    db.add(membership)
    await commit_or_conflict(db, "User is already a member of this organization")
    await db.refresh(membership)
    role_cache.invalidate(user_id=user.id, org_id=caller.org_id)
    return membership, user


async def update_member_role(
    db: AsyncSession,
    caller: Caller,
    user_id: str,
    role: OrganizationRole,
) -> tuple[OrganizationMember, User]:
    membership = await get_membership(db, caller.org_id, user_id)
    if membership is None:
        raise NotFoundError("Member not found")

    if (
        membership.role == OrganizationRole.ADMIN
        and role != OrganizationRole.ADMIN
        and await _admin_count(db, caller.org_id) <= 1
    ):
        raise InvalidRequestError("Cannot demote the last admin")

    membership.role = role
    await db.commit()
    role_cache.invalidate(user_id=user_id, org_id=caller.org_id)

    user = await db.get(User, user_id)
    await db.refresh(user, attribute_names=["batch"])
    await db.refresh(membership)
    return membership, user


async def remove_member(db: AsyncSession, caller: Caller, user_id: str) -> None:
    """Remove a user from the organization.

    Assignments are kept as history. A batch reference pointing into this
    organization is cleared.
    """
    membership = await get_membership(db, caller.org_id, user_id)
    if membership is None:
        raise NotFoundError("Member not found")

    if (
        membership.role == OrganizationRole.ADMIN
        and await _admin_count(db, caller.org_id) <= 1
    ):
        raise InvalidRequestError("Cannot remove the last admin")

    await db.execute(
        update(User)
        .where(
            User.id == user_id,
            User.batch_id.in_(
                select(Batch.id).where(Batch.organization_id == caller.org_id)
            ),
        )
        .values(batch_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(membership)
    await db.commit()
    role_cache.invalidate(user_id=user_id, org_id=caller.org_id)

    logger.info("Removed user %s from organization %s", user_id, caller.org_id)
