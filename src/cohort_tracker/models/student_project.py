"""StudentProject model: a student's voluntary enrollment in a project."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cohort_tracker.models.base import Base, generate_uuid, utc_now

if TYPE_CHECKING:
    from cohort_tracker.models.project import Project
    from cohort_tracker.models.user import User


class StudentProject(Base):
    """Enrollment record that allows a student to take features."""

    __tablename__ = "student_projects"
    __table_args__ = (
        UniqueConstraint("student_id", "project_id", name="uq_student_project"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )
    student_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    # Relationships
    project: Mapped[Project] = relationship()
    student: Mapped[User] = relationship()
