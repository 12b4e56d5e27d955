"""PM-driven assignment of students to projects, and assignment status.

Bulk assignment creates one Backlog assignment per (student, feature) of the
project and silently skips pairs that already exist, so it can be repeated
safely. Status may move freely between the five states; ownership is the
only restriction.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass

from sqlalchemy import delete, func, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cohort_tracker.auth.access import Caller
from cohort_tracker.exceptions import ConflictError, ForbiddenError, NotFoundError
from cohort_tracker.models import (
    Assignment,
    AssignmentOrigin,
    AssignmentStatus,
    Feature,
    OrganizationMember,
    Project,
    User,
)
from cohort_tracker.models.base import generate_uuid, utc_now
from cohort_tracker.services.common import commit_or_conflict, get_project_in_org
from cohort_tracker.services.progress import Progress, compute_progress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectProgress:
    project: Project
    progress: Progress


def _insert_skipping_duplicates(dialect_name: str, rows: list[dict]):
    """INSERT ... ON CONFLICT (student_id, feature_id) DO NOTHING.

    Dialects without that clause get a plain INSERT, so a concurrent
    duplicate surfaces as a conflict instead of being skipped.
    """
    if dialect_name == "postgresql":
        stmt = pg_insert(Assignment)
    elif dialect_name == "sqlite":
        stmt = sqlite_insert(Assignment)
    else:
        return insert(Assignment).values(rows)
    return stmt.values(rows).on_conflict_do_nothing(
        index_elements=["student_id", "feature_id"]
    )


async def bulk_assign(
    db: AsyncSession,
    caller: Caller,
    project_id: str,
    student_ids: list[str],
) -> int:
    """Assign every feature of a project to each student.

    Returns the number of assignments created. Existing (student, feature)
    pairs are skipped, including ones inserted concurrently.

    Raises:
        NotFoundError: Project missing, or a student is not a member of the
            organization.
    """
    project = await get_project_in_org(db, caller.org_id, project_id)
    student_ids = list(dict.fromkeys(student_ids))
    if not student_ids:
        return 0

    result = await db.execute(
        select(OrganizationMember.user_id).where(
            OrganizationMember.organization_id == caller.org_id,
            OrganizationMember.user_id.in_(student_ids),
        )
    )
    members = set(result.scalars().all())
    unknown = [s for s in student_ids if s not in members]
    if unknown:
        raise NotFoundError(
            f"Students not found in organization: {', '.join(unknown)}"
        )

    result = await db.execute(
        select(Feature.id)
        .where(Feature.project_id == project.id)
        .order_by(Feature.created_at.asc())
    )
    feature_ids = list(result.scalars().all())
    if not feature_ids:
        return 0

    result = await db.execute(
        select(Assignment.student_id, Assignment.feature_id).where(
            Assignment.student_id.in_(student_ids),
            Assignment.feature_id.in_(feature_ids),
        )
    )
    existing = {(student_id, feature_id) for student_id, feature_id in result.all()}

    now = utc_now()
    rows = [
        {
            "id": generate_uuid(),
            "project_id": project.id,
            "feature_id": feature_id,
            "student_id": student_id,
            "status": AssignmentStatus.BACKLOG,
            "origin": AssignmentOrigin.BULK,
            "assigned_at": now,
        }
        for student_id in student_ids
        for feature_id in feature_ids
        if (student_id, feature_id) not in existing
    ]
    created = 0
    if rows:
        dialect_name = db.get_bind().dialect.name
        try:
            result = await db.execute(_insert_skipping_duplicates(dialect_name, rows))
        except IntegrityError as e:
            await db.rollback()
            raise ConflictError("Assignment already exists") from e
        # Pairs inserted concurrently since the read above are not counted
        created = result.rowcount
    await commit_or_conflict(db, "Assignment already exists")

    logger.info(
        "Bulk assigned project %s to %d student(s): %d assignment(s) created",
        project.id,
        len(student_ids),
        created,
    )
    return created


async def remove_student_from_project(
    db: AsyncSession, caller: Caller, project_id: str, student_id: str
) -> int:
    """Delete all of a student's assignments in a project. Returns the count."""
    project = await get_project_in_org(db, caller.org_id, project_id)
    result = await db.execute(
        delete(Assignment)
        .where(
            Assignment.project_id == project.id,
            Assignment.student_id == student_id,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info(
        "Removed student %s from project %s (%d assignment(s))",
        student_id,
        project.id,
        result.rowcount,
    )
    return result.rowcount


async def list_project_assignments(
    db: AsyncSession, caller: Caller, project_id: str
) -> list[Assignment]:
    project = await get_project_in_org(db, caller.org_id, project_id)
    result = await db.execute(
        select(Assignment)
        .options(selectinload(Assignment.student), selectinload(Assignment.feature))
        .where(Assignment.project_id == project.id)
        .order_by(Assignment.assigned_at.desc())
    )
    return list(result.scalars().all())


async def list_assigned_students(
    db: AsyncSession, caller: Caller, project_id: str
) -> list[User]:
    project = await get_project_in_org(db, caller.org_id, project_id)
    result = await db.execute(
        select(User)
        .where(
            User.id.in_(
                select(Assignment.student_id).where(
                    Assignment.project_id == project.id
                )
            )
        )
        .order_by(User.email)
    )
    return list(result.scalars().all())


async def _get_assignment_for_caller(
    db: AsyncSession, caller: Caller, assignment_id: str
) -> Assignment:
    """Load an assignment of the caller's organization and check ownership.

    Students may only reach their own assignments; pm/admin reach all.
    """
    result = await db.execute(
        select(Assignment)
        .join(Project, Assignment.project_id == Project.id)
        .options(selectinload(Assignment.feature), selectinload(Assignment.project))
        .where(
            Assignment.id == assignment_id,
            Project.organization_id == caller.org_id,
        )
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise NotFoundError("Assignment not found")
    if not caller.is_manager and assignment.student_id != caller.user_id:
        raise ForbiddenError("Not your assignment")
    return assignment


async def get_assignment(
    db: AsyncSession, caller: Caller, assignment_id: str
) -> Assignment:
    return await _get_assignment_for_caller(db, caller, assignment_id)


async def update_assignment_status(
    db: AsyncSession,
    caller: Caller,
    assignment_id: str,
    status: AssignmentStatus,
) -> Assignment:
    """Set an assignment's status. Any status can follow any other."""
    assignment = await _get_assignment_for_caller(db, caller, assignment_id)
    assignment.status = status
    await db.commit()

    logger.info(
        "Assignment %s moved to %s by user %s",
        assignment.id,
        status.value,
        caller.user_id,
    )
    return assignment


async def my_assignments(db: AsyncSession, caller: Caller) -> list[Assignment]:
    """The caller's assignments in the active organization."""
    result = await db.execute(
        select(Assignment)
        .join(Project, Assignment.project_id == Project.id)
        .join(Feature, Assignment.feature_id == Feature.id)
        .options(selectinload(Assignment.project), selectinload(Assignment.feature))
        .where(
            Assignment.student_id == caller.user_id,
            Project.organization_id == caller.org_id,
        )
        .order_by(Project.name.asc(), Feature.created_at.asc())
    )
    return list(result.scalars().all())


async def my_projects(db: AsyncSession, caller: Caller) -> list[ProjectProgress]:
    """Projects the caller has assignments in, with progress per project."""
    done = func.count(Assignment.id).filter(
        Assignment.status == AssignmentStatus.DONE
    )
    result = await db.execute(
        select(Project, func.count(Assignment.id), done)
        .join(Assignment, Assignment.project_id == Project.id)
        .where(
            Assignment.student_id == caller.user_id,
            Project.organization_id == caller.org_id,
        )
        .group_by(Project.id)
        .order_by(Project.name.asc())
    )
    return [
        ProjectProgress(project=project, progress=_progress(total, done_count))
        for project, total, done_count in result.all()
    ]


def _progress(total: int, done: int) -> Progress:
    return compute_progress(
        [AssignmentStatus.DONE] * done + [AssignmentStatus.BACKLOG] * (total - done)
    )


def group_by_status(
    assignments: list[Assignment],
) -> dict[AssignmentStatus, list[Assignment]]:
    """Bucket assignments by status, active work first."""
    order = [
        AssignmentStatus.IN_PROGRESS,
        AssignmentStatus.TODO,
        AssignmentStatus.BACKLOG,
        AssignmentStatus.DONE,
        AssignmentStatus.CANCELED,
    ]
    grouped: dict[AssignmentStatus, list[Assignment]] = defaultdict(list)
    for assignment in assignments:
        grouped[assignment.status].append(assignment)
    return {status: grouped[status] for status in order}
