"""Lookups and transaction helpers shared by the service modules."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cohort_tracker.exceptions import ConflictError, NotFoundError
from cohort_tracker.models import Feature, OrganizationMember, Project

logger = logging.getLogger(__name__)


async def commit_or_conflict(db: AsyncSession, message: str) -> None:
    """Commit the session, reporting a uniqueness violation as a conflict.

    The session is rolled back on conflict, so nothing staged persists.
    """
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info("Integrity error on commit: %s", e.orig)
        raise ConflictError(message) from e


async def get_project_in_org(
    db: AsyncSession, org_id: str, project_id: str
) -> Project:
    """Get a project of the organization. Other tenants' projects are not found."""
    result = await db.execute(
        select(Project).where(
            Project.id == project_id,
            Project.organization_id == org_id,
        )
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project not found")
    return project


async def get_feature_in_org(
    db: AsyncSession, org_id: str, feature_id: str
) -> Feature:
    result = await db.execute(
        select(Feature)
        .join(Project, Feature.project_id == Project.id)
        .where(
            Feature.id == feature_id,
            Project.organization_id == org_id,
        )
    )
    feature = result.scalar_one_or_none()
    if feature is None:
        raise NotFoundError("Feature not found")
    return feature


async def get_membership(
    db: AsyncSession, org_id: str, user_id: str
) -> OrganizationMember | None:
    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()
