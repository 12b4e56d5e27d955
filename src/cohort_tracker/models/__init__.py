"""Database models."""

from cohort_tracker.models.assignment import Assignment
from cohort_tracker.models.base import Base, TimestampMixin
from cohort_tracker.models.batch import Batch
from cohort_tracker.models.enums import (
    AssignmentOrigin,
    AssignmentStatus,
    OrganizationRole,
)
from cohort_tracker.models.feature import Feature
from cohort_tracker.models.organization import Organization
from cohort_tracker.models.organization_member import OrganizationMember
from cohort_tracker.models.project import Project
from cohort_tracker.models.student_project import StudentProject
from cohort_tracker.models.user import User

__all__ = [
    "Assignment",
    "AssignmentOrigin",
    "AssignmentStatus",
    "Base",
    "Batch",
    "Feature",
    "Organization",
    "OrganizationMember",
    "OrganizationRole",
    "Project",
    "StudentProject",
    "TimestampMixin",
    "User",
]
