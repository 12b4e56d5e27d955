"""Read-only access to a project through its share id.

Share ids are unguessable UUIDs handed out by project owners. Lookups
never list projects and never expose student identities; aggregates are
computed from the current rows on every call.
"""

import re
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cohort_tracker.exceptions import InvalidRequestError, NotFoundError
from cohort_tracker.models import Assignment, AssignmentStatus, Feature, Project
from cohort_tracker.services.progress import (
    completion_percentage,
    empty_status_counts,
)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ProjectStats:
    total_students: int
    total_assignments: int
    status_breakdown: dict[str, int]
    completion_percentage: int


@dataclass(frozen=True)
class FeatureStats:
    feature: Feature
    status_counts: dict[str, int] | None


def validate_uuid(value: str, what: str = "id") -> str:
    """Reject malformed ids before they reach the database."""
    if not UUID_PATTERN.match(value):
        raise InvalidRequestError(f"Invalid {what} format")
    return value.lower()


async def get_shared_project(db: AsyncSession, share_id: str) -> Project:
    share_id = validate_uuid(share_id, "share id")
    result = await db.execute(
        select(Project)
        .options(selectinload(Project.organization), selectinload(Project.features))
        .where(Project.share_id == share_id)
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project not found")
    return project


async def _status_counts_by_feature(
    db: AsyncSession, project_id: str
) -> dict[str, dict[str, int]]:
    result = await db.execute(
        select(Assignment.feature_id, Assignment.status, func.count(Assignment.id))
        .where(Assignment.project_id == project_id)
        .group_by(Assignment.feature_id, Assignment.status)
    )
    counts: dict[str, dict[str, int]] = {}
    for feature_id, status, count in result.all():
        counts.setdefault(feature_id, empty_status_counts())[status.value] = count
    return counts


async def get_shared_project_stats(db: AsyncSession, share_id: str) -> ProjectStats:
    project = await get_shared_project(db, share_id)

    total_students = await db.scalar(
        select(func.count(func.distinct(Assignment.student_id))).where(
            Assignment.project_id == project.id
        )
    )
    result = await db.execute(
        select(Assignment.status, func.count(Assignment.id))
        .where(Assignment.project_id == project.id)
        .group_by(Assignment.status)
    )
    breakdown = empty_status_counts()
    for status, count in result.all():
        breakdown[status.value] = count

    total = sum(breakdown.values())
    return ProjectStats(
        total_students=total_students or 0,
        total_assignments=total,
        status_breakdown=breakdown,
        completion_percentage=completion_percentage(
            breakdown[AssignmentStatus.DONE.value], total
        ),
    )


async def list_shared_features(
    db: AsyncSession, share_id: str, include_stats: bool = False
) -> list[FeatureStats]:
    project = await get_shared_project(db, share_id)
    counts = await _status_counts_by_feature(db, project.id) if include_stats else {}
    return [
        FeatureStats(
            feature=feature,
            status_counts=(
                counts.get(feature.id, empty_status_counts()) if include_stats else None
            ),
        )
        for feature in project.features
    ]


async def get_shared_feature(
    db: AsyncSession, share_id: str, feature_id: str
) -> FeatureStats:
    """A feature of the shared project with its status counts."""
    feature_id = validate_uuid(feature_id, "feature id")
    project = await get_shared_project(db, share_id)

    result = await db.execute(
        select(Feature).where(
            Feature.id == feature_id,
            Feature.project_id == project.id,
        )
    )
    feature = result.scalar_one_or_none()
    if feature is None:
        raise NotFoundError("Feature not found")

    result = await db.execute(
        select(Assignment.status, func.count(Assignment.id))
        .where(Assignment.feature_id == feature.id)
        .group_by(Assignment.status)
    )
    counts = empty_status_counts()
    for status, count in result.all():
        counts[status.value] = count
    return FeatureStats(feature=feature, status_counts=counts)
