"""Student self-service: joining projects and taking features.

A student joins a project first, which creates a StudentProject
enrollment, and can then take any feature of that project they are not
already assigned to. Leaving removes the student's assignments in the
project and the enrollment together.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cohort_tracker.auth.access import Caller
from cohort_tracker.exceptions import ConflictError, ForbiddenError, NotFoundError
from cohort_tracker.models import (
    Assignment,
    AssignmentOrigin,
    AssignmentStatus,
    Feature,
    Project,
    StudentProject,
)
from cohort_tracker.services.assignments import group_by_status
from cohort_tracker.services.common import commit_or_conflict, get_project_in_org
from cohort_tracker.services.progress import Progress, compute_progress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JoinedProject:
    project: Project
    joined_at: datetime
    feature_count: int
    progress: Progress


@dataclass(frozen=True)
class AvailableProject:
    project: Project
    feature_count: int


@dataclass(frozen=True)
class StudentBoard:
    project: Project
    joined_at: datetime
    assignments: dict[AssignmentStatus, list[Assignment]]
    progress: Progress
    available_features: list[Feature]


async def _get_enrollment(
    db: AsyncSession, student_id: str, project_id: str
) -> StudentProject | None:
    result = await db.execute(
        select(StudentProject).where(
            StudentProject.student_id == student_id,
            StudentProject.project_id == project_id,
        )
    )
    return result.scalar_one_or_none()


async def join_project(
    db: AsyncSession, caller: Caller, project_id: str
) -> StudentProject:
    project = await get_project_in_org(db, caller.org_id, project_id)
    if await _get_enrollment(db, caller.user_id, project.id) is not None:
        raise ConflictError("Already joined this project")

    enrollment = StudentProject(student_id=caller.user_id, project_id=project.id)
    db.add(enrollment)
    await commit_or_conflict(db, "Already joined this project")
    await db.refresh(enrollment)

    logger.info("User %s joined project %s", caller.user_id, project.id)
    return enrollment


async def take_feature(
    db: AsyncSession,
    caller: Caller,
    project_id: str,
    feature_id: str,
    status: AssignmentStatus = AssignmentStatus.BACKLOG,
) -> Assignment:
    """Self-assign one feature of a joined project.

    Raises:
        ForbiddenError: The caller has not joined the project.
        NotFoundError: The feature is not part of the project.
        ConflictError: The caller is already assigned to the feature.
    """
    if await _get_enrollment(db, caller.user_id, project_id) is None:
        raise ForbiddenError("Join the project before taking features")

    project = await get_project_in_org(db, caller.org_id, project_id)
    result = await db.execute(
        select(Feature).where(
            Feature.id == feature_id,
            Feature.project_id == project.id,
        )
    )
    feature = result.scalar_one_or_none()
    if feature is None:
        raise NotFoundError("Feature not found in this project")

    result = await db.execute(
        select(Assignment.id).where(
            Assignment.student_id == caller.user_id,
            Assignment.feature_id == feature.id,
        )
    )
    if result.scalar_one_or_none() is not None:
        raise ConflictError("Feature already assigned")

    assignment = Assignment(
        project_id=feature.project_id,
        feature_id=feature.id,
        student_id=caller.user_id,
        status=status,
        origin=AssignmentOrigin.SELF,
    )
    db.add(assignment)
    await commit_or_conflict(db, "Feature already assigned")
    await db.refresh(assignment)
    return assignment


async def leave_project(db: AsyncSession, caller: Caller, project_id: str) -> int:
    """Drop the enrollment and every assignment of the caller in the project.

    Both deletions are committed together. Returns the number of
    assignments removed.
    """
    project = await get_project_in_org(db, caller.org_id, project_id)
    enrollment = await _get_enrollment(db, caller.user_id, project.id)
    if enrollment is None:
        raise NotFoundError("Project not joined")

    result = await db.execute(
        delete(Assignment)
        .where(
            Assignment.student_id == caller.user_id,
            Assignment.project_id == project.id,
        )
        .execution_options(synchronize_session=False)
    )
    await db.delete(enrollment)
    await db.commit()

    logger.info(
        "User %s left project %s (%d assignment(s) removed)",
        caller.user_id,
        project.id,
        result.rowcount,
    )
    return result.rowcount


def _feature_count():
    return (
        select(func.count(Feature.id))
        .where(Feature.project_id == Project.id)
        .correlate(Project)
        .scalar_subquery()
    )


async def _statuses_by_project(
    db: AsyncSession, student_id: str, project_ids: list[str]
) -> dict[str, list[AssignmentStatus]]:
    statuses: dict[str, list[AssignmentStatus]] = {pid: [] for pid in project_ids}
    if not project_ids:
        return statuses
    result = await db.execute(
        select(Assignment.project_id, Assignment.status).where(
            Assignment.student_id == student_id,
            Assignment.project_id.in_(project_ids),
        )
    )
    for project_id, status in result.all():
        statuses[project_id].append(status)
    return statuses


async def list_joined_projects(db: AsyncSession, caller: Caller) -> list[JoinedProject]:
    result = await db.execute(
        select(Project, StudentProject.joined_at, _feature_count())
        .join(StudentProject, StudentProject.project_id == Project.id)
        .where(
            StudentProject.student_id == caller.user_id,
            Project.organization_id == caller.org_id,
        )
        .order_by(StudentProject.joined_at.desc())
    )
    rows = result.all()
    statuses = await _statuses_by_project(
        db, caller.user_id, [project.id for project, _, _ in rows]
    )
    return [
        JoinedProject(
            project=project,
            joined_at=joined_at,
            feature_count=feature_count or 0,
            progress=compute_progress(statuses[project.id]),
        )
        for project, joined_at, feature_count in rows
    ]


async def list_available_projects(
    db: AsyncSession, caller: Caller
) -> list[AvailableProject]:
    """Projects of the organization the caller has not joined yet."""
    joined = select(StudentProject.project_id).where(
        StudentProject.student_id == caller.user_id
    )
    result = await db.execute(
        select(Project, _feature_count())
        .where(
            Project.organization_id == caller.org_id,
            Project.id.not_in(joined),
        )
        .order_by(Project.created_at.desc())
    )
    return [
        AvailableProject(project=project, feature_count=count or 0)
        for project, count in result.all()
    ]


async def preview_project(
    db: AsyncSession, caller: Caller, project_id: str
) -> tuple[Project, list[Feature], bool]:
    """A project with its features, and whether the caller has joined it."""
    project = await get_project_in_org(db, caller.org_id, project_id)
    result = await db.execute(
        select(Feature)
        .where(Feature.project_id == project.id)
        .order_by(Feature.created_at.asc())
    )
    joined = await _get_enrollment(db, caller.user_id, project.id) is not None
    return project, list(result.scalars().all()), joined


async def get_student_board(
    db: AsyncSession, caller: Caller, project_id: str
) -> StudentBoard:
    """The caller's kanban view of a joined project."""
    project = await get_project_in_org(db, caller.org_id, project_id)
    enrollment = await _get_enrollment(db, caller.user_id, project.id)
    if enrollment is None:
        raise NotFoundError("Project not joined")

    result = await db.execute(
        select(Feature)
        .where(Feature.project_id == project.id)
        .order_by(Feature.created_at.asc())
    )
    features = list(result.scalars().all())

    result = await db.execute(
        select(Assignment)
        .join(Feature, Assignment.feature_id == Feature.id)
        .options(selectinload(Assignment.feature))
        .where(
            Assignment.student_id == caller.user_id,
            Assignment.project_id == project.id,
        )
        .order_by(Feature.created_at.asc())
    )
    assignments = list(result.scalars().all())

    assigned = {assignment.feature_id for assignment in assignments}

    return StudentBoard(
        project=project,
        joined_at=enrollment.joined_at,
        assignments=group_by_status(assignments),
        progress=compute_progress(a.status for a in assignments),
        available_features=[f for f in features if f.id not in assigned],
    )
