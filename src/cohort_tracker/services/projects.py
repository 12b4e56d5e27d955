"""Project templates and their features."""

import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cohort_tracker.auth.access import Caller
from cohort_tracker.exceptions import NotFoundError
from cohort_tracker.models import Assignment, Feature, Project, StudentProject
from cohort_tracker.services.common import (
    commit_or_conflict,
    get_feature_in_org,
    get_project_in_org,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectSummary:
    project: Project
    feature_count: int
    assignment_count: int


def _feature_count():
    return (
        select(func.count(Feature.id))
        .where(Feature.project_id == Project.id)
        .correlate(Project)
        .scalar_subquery()
    )


def _assignment_count():
    return (
        select(func.count(Assignment.id))
        .where(Assignment.project_id == Project.id)
        .correlate(Project)
        .scalar_subquery()
    )


async def create_project(
    db: AsyncSession,
    caller: Caller,
    name: str,
    description: str | None = None,
) -> Project:
    """Create a project in the caller's organization with a fresh share id."""
    project = Project(
        organization_id=caller.org_id,
        name=name,
        description=description,
        created_by_id=caller.user_id,
    )
    db.add(project)
    await commit_or_conflict(db, "Project share id already exists")
    await db.refresh(project)

    logger.info("Created project %s in org %s", project.id, caller.org_id)
    return project


async def list_projects(db: AsyncSession, caller: Caller) -> list[ProjectSummary]:
    result = await db.execute(
        select(Project, _feature_count(), _assignment_count())
        .options(selectinload(Project.created_by))
        .where(Project.organization_id == caller.org_id)
        .order_by(Project.created_at.desc())
    )
    return [
        ProjectSummary(project=p, feature_count=f or 0, assignment_count=a or 0)
        for p, f, a in result.all()
    ]


async def get_project_detail(
    db: AsyncSession, caller: Caller, project_id: str
) -> Project:
    """Project with its features, their assignments and assigned students."""
    result = await db.execute(
        select(Project)
        .options(
            selectinload(Project.created_by),
            selectinload(Project.features)
            .selectinload(Feature.assignments)
            .selectinload(Assignment.student),
        )
        .where(
            Project.id == project_id,
            Project.organization_id == caller.org_id,
        )
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project not found")
    return project


async def update_project(
    db: AsyncSession,
    caller: Caller,
    project_id: str,
    name: str | None = None,
    description: str | None = None,
) -> Project:
    """Update name/description. The share id never changes."""
    project = await get_project_in_org(db, caller.org_id, project_id)
    if name is not None:
        project.name = name
    if description is not None:
        project.description = description
    await db.commit()
    await db.refresh(project)
    return project


async def delete_project(db: AsyncSession, caller: Caller, project_id: str) -> None:
    """Delete a project with its features, assignments and enrollments."""
    project = await get_project_in_org(db, caller.org_id, project_id)
    no_sync = {"synchronize_session": False}

    await db.execute(
        delete(Assignment)
        .where(Assignment.project_id == project.id)
        .execution_options(**no_sync)
    )
    await db.execute(
        delete(StudentProject)
        .where(StudentProject.project_id == project.id)
        .execution_options(**no_sync)
    )
    await db.execute(
        delete(Feature)
        .where(Feature.project_id == project.id)
        .execution_options(**no_sync)
    )
    await db.execute(
        delete(Project).where(Project.id == project.id).execution_options(**no_sync)
    )
    await db.commit()

    logger.info("Deleted project %s in org %s", project_id, caller.org_id)


# --- Features ---


async def list_features(
    db: AsyncSession, caller: Caller, project_id: str
) -> list[Feature]:
    await get_project_in_org(db, caller.org_id, project_id)
    result = await db.execute(
        select(Feature)
        .options(selectinload(Feature.assignments).selectinload(Assignment.student))
        .where(Feature.project_id == project_id)
        .order_by(Feature.created_at.asc())
    )
    return list(result.scalars().all())


async def get_feature(db: AsyncSession, caller: Caller, feature_id: str) -> Feature:
    result = await db.execute(
        select(Feature)
        .join(Project, Feature.project_id == Project.id)
        .options(
            selectinload(Feature.project),
            selectinload(Feature.assignments).selectinload(Assignment.student),
        )
        .where(
            Feature.id == feature_id,
            Project.organization_id == caller.org_id,
        )
    )
    feature = result.scalar_one_or_none()
    if feature is None:
        raise NotFoundError("Feature not found")
    return feature


async def create_feature(
    db: AsyncSession,
    caller: Caller,
    project_id: str,
    title: str,
    description: str = "",
    tags: list[str] | None = None,
) -> Feature:
    project = await get_project_in_org(db, caller.org_id, project_id)
    feature = Feature(
        project_id=project.id,
        title=title,
        description=description,
        tags=list(tags or []),
    )
    db.add(feature)
    await db.commit()
    await db.refresh(feature)
    return feature


async def update_feature(
    db: AsyncSession,
    caller: Caller,
    feature_id: str,
    title: str | None = None,
    description: str | None = None,
    tags: list[str] | None = None,
) -> Feature:
    feature = await get_feature_in_org(db, caller.org_id, feature_id)
    if title is not None:
        feature.title = title
    if description is not None:
        feature.description = description
    if tags is not None:
        feature.tags = list(tags)
    await db.commit()
    await db.refresh(feature)
    return feature


async def delete_feature(db: AsyncSession, caller: Caller, feature_id: str) -> None:
    """Delete a feature and every assignment of it."""
    feature = await get_feature_in_org(db, caller.org_id, feature_id)
    await db.execute(
        delete(Assignment)
        .where(Assignment.feature_id == feature.id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(Feature)
        .where(Feature.id == feature.id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
