"""Batch (cohort) management.

A student belongs to at most one batch at a time through ``User.batch_id``.
Deleting a batch clears that reference for its students first.
"""

import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cohort_tracker.auth.access import Caller
from cohort_tracker.exceptions import InvalidRequestError, NotFoundError
from cohort_tracker.models import Batch, Organization, OrganizationMember, User
from cohort_tracker.services.common import commit_or_conflict, get_membership
from cohort_tracker.services.slug import generate_unique_slug

logger = logging.getLogger(__name__)


async def get_batch(db: AsyncSession, caller: Caller, batch_id: str) -> Batch:
    result = await db.execute(
        select(Batch).where(
            Batch.id == batch_id,
            Batch.organization_id == caller.org_id,
        )
    )
    batch = result.scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Batch not found")
    return batch


async def create_batch(db: AsyncSession, caller: Caller, name: str) -> Batch:
    """Create a batch; the slug only has to be unique within the organization."""
    result = await db.execute(
        select(Batch.slug).where(Batch.organization_id == caller.org_id)
    )
    slug = generate_unique_slug(name, result.scalars().all())

    batch = Batch(organization_id=caller.org_id, name=name, slug=slug)
    db.add(batch)
    await commit_or_conflict(db, "Batch slug already exists in this organization")
    await db.refresh(batch)

    logger.info("Created batch %s (%s) in org %s", batch.id, slug, caller.org_id)
    return batch


async def list_batches(db: AsyncSession, caller: Caller) -> list[tuple[Batch, int]]:
    """Batches of the organization, newest first, with their student counts."""
    result = await db.execute(
        select(Batch, func.count(User.id))
        .outerjoin(User, User.batch_id == Batch.id)
        .where(Batch.organization_id == caller.org_id)
        .group_by(Batch.id)
        .order_by(Batch.created_at.desc())
    )
    return [(batch, count) for batch, count in result.all()]


async def get_batch_by_slug(
    db: AsyncSession, user_id: str, org_slug: str, batch_slug: str
) -> Batch:
    """Resolve an (organization slug, batch slug) pair for a member."""
    result = await db.execute(
        select(Batch)
        .options(selectinload(Batch.students), selectinload(Batch.organization))
        .join(Organization, Batch.organization_id == Organization.id)
        .join(
            OrganizationMember,
            OrganizationMember.organization_id == Organization.id,
        )
        .where(
            Organization.slug == org_slug,
            Batch.slug == batch_slug,
            OrganizationMember.user_id == user_id,
        )
    )
    batch = result.scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Batch not found")
    return batch


async def update_batch(
    db: AsyncSession, caller: Caller, batch_id: str, name: str
) -> Batch:
    """Rename a batch. The slug is kept so existing links keep working."""
    batch = await get_batch(db, caller, batch_id)
    batch.name = name
    await db.commit()
    await db.refresh(batch)
    return batch


async def delete_batch(db: AsyncSession, caller: Caller, batch_id: str) -> None:
    batch = await get_batch(db, caller, batch_id)

    await db.execute(
        update(User)
        .where(User.batch_id == batch.id)
        .values(batch_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(Batch)
        .where(Batch.id == batch.id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info("Deleted batch %s in org %s", batch_id, caller.org_id)


async def _get_member_user(db: AsyncSession, caller: Caller, user_id: str) -> User:
    if await get_membership(db, caller.org_id, user_id) is None:
        raise NotFoundError("Member not found")
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("Member not found")
    return user


async def assign_student_to_batch(
    db: AsyncSession, caller: Caller, batch_id: str, user_id: str
) -> User:
    """Put a member into a batch, replacing any batch they were in."""
    batch = await get_batch(db, caller, batch_id)
    user = await _get_member_user(db, caller, user_id)

    user.batch_id = batch.id
    await db.commit()
    await db.refresh(user)
    return user


async def remove_student_from_batch(
    db: AsyncSession, caller: Caller, user_id: str
) -> User:
    """Clear a member's batch. Membership and assignments are untouched."""
    user = await _get_member_user(db, caller, user_id)
    if user.batch_id is None:
        return user

    batch = await db.get(Batch, user.batch_id)
    if batch is not None and batch.organization_id != caller.org_id:
        raise InvalidRequestError("User is not in a batch of this organization")

    user.batch_id = None
    await db.commit()
    await db.refresh(user)
    return user
