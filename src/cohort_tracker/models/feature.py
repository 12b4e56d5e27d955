"""Feature model: a unit of work within a project."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import JSON, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cohort_tracker.models.base import Base, TimestampMixin, generate_uuid

if TYPE_CHECKING:
    from cohort_tracker.models.assignment import Assignment
    from cohort_tracker.models.project import Project


class Feature(Base, TimestampMixin):
    """Feature template. Description is markdown; tags keep their order."""

    __tablename__ = "features"

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
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Relationships
    project: Mapped[Project] = relationship(back_populates="features")
    assignments: Mapped[list[Assignment]] = relationship(
        back_populates="feature",
        passive_deletes=True,
    )
