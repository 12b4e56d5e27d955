"""Assignment model: a student working on a feature of a project."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cohort_tracker.models.base import Base, generate_uuid, utc_now
from cohort_tracker.models.enums import AssignmentOrigin, AssignmentStatus

if TYPE_CHECKING:
    from cohort_tracker.models.feature import Feature
    from cohort_tracker.models.project import Project
    from cohort_tracker.models.user import User


class Assignment(Base):
    """Carries the only mutable workflow state in the domain.

    ``project_id`` mirrors ``feature.project_id`` and is always copied from
    the feature row by the writer. At most one assignment exists per
    (student, feature).
    """

    __tablename__ = "assignments"
    __table_args__ = (
        UniqueConstraint(
            "student_id", "feature_id", name="uq_assignment_student_feature"
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    feature_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("features.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[AssignmentStatus] = mapped_column(
        Enum(AssignmentStatus),
        nullable=False,
        default=AssignmentStatus.BACKLOG,
    )
    origin: Mapped[AssignmentOrigin] = mapped_column(
        Enum(AssignmentOrigin),
        nullable=False,
        default=AssignmentOrigin.BULK,
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    # Relationships
    project: Mapped[Project] = relationship(back_populates="assignments")
    feature: Mapped[Feature] = relationship(back_populates="assignments")
    student: Mapped[User] = relationship()
